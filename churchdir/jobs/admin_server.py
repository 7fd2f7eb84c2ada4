"""Admin HTTP endpoints that trigger church imports and drain the enrichment queue."""

from __future__ import annotations

import hmac
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from churchdir.core.config import ConfigError, get_settings
from churchdir.core.db import ChurchStore
from churchdir.core.enrichment import MAX_QUEUE_BATCH, QUEUE_BATCH_SIZE, EnrichmentQueue
from churchdir.core.ingestion import (
    DEFAULT_LIMIT_PER_LOCATION,
    MAX_BATCH_LOCATIONS,
    IngestionOptions,
    IngestionService,
)
from churchdir.models import ChurchSearchParams
from churchdir.vendors.ai_client import ai_provider_name, create_ai_client
from churchdir.vendors.manager import create_provider_manager

logger = logging.getLogger(__name__)

app = Flask(__name__)


@lru_cache(maxsize=1)
def get_store() -> Optional[ChurchStore]:
    settings = get_settings()
    if not settings.database_url:
        return None
    return ChurchStore(settings.database_url)


@lru_cache(maxsize=1)
def get_ingestion_service() -> Optional[IngestionService]:
    """Build the ingestion service once; ``None`` when the store is not configured."""
    store = get_store()
    if store is None:
        return None
    return IngestionService(store, create_provider_manager(get_settings()))


@lru_cache(maxsize=1)
def get_enrichment_queue() -> Optional[EnrichmentQueue]:
    """``None`` unless both the store and an AI provider are configured."""
    store = get_store()
    if store is None:
        return None
    try:
        ai_client = create_ai_client(get_settings())
    except ConfigError as exc:
        logger.warning("Enrichment queue disabled: %s", exc)
        return None
    return EnrichmentQueue(store, ai_client)


def _is_authorized() -> bool:
    api_key = get_settings().admin_api_key
    if not api_key:
        logger.warning("ADMIN_API_KEY not set - admin routes disabled")
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header.encode("utf-8"), f"Bearer {api_key}".encode("utf-8"))


def _unauthorized() -> Tuple[Any, int]:
    return jsonify({"error": "Unauthorized"}), 401


def _service_unavailable() -> Tuple[Any, int]:
    return jsonify({"error": "Ingestion service not configured"}), 500


def _optional_number(payload: Dict[str, Any], key: str, cast) -> Any:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{key} must be numeric")
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be numeric") from exc


def _options_from(payload: Dict[str, Any]) -> IngestionOptions:
    return IngestionOptions(
        skip_duplicates=bool(payload.get("skipDuplicates", True)),
        update_existing=bool(payload.get("updateExisting", False)),
        queue_enrichment=bool(payload.get("queueEnrichment", True)),
        dry_run=bool(payload.get("dryRun", False)),
    )


def _validate_locations(locations: Any) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
    if not isinstance(locations, list) or not locations:
        return None, "Must provide locations array with city/state objects"
    if len(locations) > MAX_BATCH_LOCATIONS:
        return None, f"Maximum {MAX_BATCH_LOCATIONS} locations per batch request"

    parsed: List[Dict[str, Any]] = []
    for position, location in enumerate(locations, start=1):
        if not isinstance(location, dict) or not location.get("city") or not location.get("state"):
            return None, f"Location {position} must include city and state"
        try:
            radius = _optional_number(location, "radiusMiles", float)
        except ValueError as exc:
            return None, f"Location {position}: {exc}"
        parsed.append({"city": str(location["city"]).strip(), "state": str(location["state"]).strip(), "radius_miles": radius})
    return parsed, None


@app.get("/healthz")
def healthcheck() -> Any:
    return jsonify({"status": "ok"}), 200


@app.post("/api/admin/import/batch")
def import_batch() -> Any:
    if not _is_authorized():
        return _unauthorized()

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    locations, error = _validate_locations(payload.get("locations"))
    if error:
        return jsonify({"error": error}), 400

    try:
        limit = _optional_number(payload, "limitPerLocation", int) or DEFAULT_LIMIT_PER_LOCATION
        delay_ms = _optional_number(payload, "delayBetweenMs", float)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if limit <= 0:
        return jsonify({"error": "limitPerLocation must be positive"}), 400
    delay_ms = 1000.0 if delay_ms is None else max(delay_ms, 0.0)

    service = get_ingestion_service()
    if service is None:
        return _service_unavailable()

    provider = payload.get("provider")
    if provider and provider not in service.provider_manager.available_providers():
        return jsonify({
            "error": f"Provider {provider} not configured",
            "availableProviders": service.provider_manager.available_providers(),
        }), 400

    options = _options_from(payload)
    logger.info("Batch import of %s locations (provider=%s, dry_run=%s)", len(locations), provider or "default", options.dry_run)
    batch = service.import_locations(
        locations,
        provider,
        options,
        limit_per_location=limit,
        delay_seconds=delay_ms / 1000.0,
    )

    return jsonify({
        "success": True,
        "dryRun": options.dry_run,
        "provider": provider or "default",
        "summary": batch.summary(),
        "results": [entry.to_dict() for entry in batch.results],
    }), 200


@app.post("/api/admin/import")
def import_location() -> Any:
    if not _is_authorized():
        return _unauthorized()

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        lat = _optional_number(payload, "lat", float)
        lng = _optional_number(payload, "lng", float)
        radius = _optional_number(payload, "radiusMiles", float)
        limit = _optional_number(payload, "limit", int)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    city, state = payload.get("city"), payload.get("state")
    has_place = bool(city and state)
    has_coordinates = lat is not None and lng is not None
    if not has_place and not has_coordinates:
        return jsonify({"error": "Must provide either city/state or lat/lng coordinates"}), 400

    service = get_ingestion_service()
    if service is None:
        return _service_unavailable()

    provider = payload.get("provider")
    available = service.provider_manager.available_providers()
    if provider and provider not in available:
        return jsonify({"error": f"Provider {provider} not configured", "availableProviders": available}), 400

    options = _options_from(payload)
    params = ChurchSearchParams(city=city, state=state, lat=lat, lng=lng, radius_miles=radius, limit=limit)
    try:
        result = service.import_from_provider(params, provider, options)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Import failed: %s", exc)
        return jsonify({"error": "Import failed", "details": str(exc)}), 500

    return jsonify({
        "success": True,
        "dryRun": options.dry_run,
        "provider": provider or "default",
        "location": f"{city}, {state}" if has_place else f"{lat}, {lng}",
        "result": result.to_dict(),
    }), 200


@app.get("/api/admin/import")
def import_stats() -> Any:
    if not _is_authorized():
        return _unauthorized()

    service = get_ingestion_service()
    if service is None:
        return _service_unavailable()

    try:
        stats = service.get_stats()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Stats error: %s", exc)
        return jsonify({"error": "Failed to get stats"}), 500

    return jsonify({"availableProviders": service.provider_manager.available_providers(), "stats": stats}), 200


def _queue_unavailable() -> Tuple[Any, int]:
    return jsonify({"error": "Enrichment service not configured (check DATABASE_URL and AI provider keys)"}), 500


@app.post("/api/admin/enrich")
def process_enrichment_queue() -> Any:
    if not _is_authorized():
        return _unauthorized()

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        batch_size = _optional_number(payload, "batchSize", int) or QUEUE_BATCH_SIZE
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if batch_size <= 0:
        return jsonify({"error": "batchSize must be positive"}), 400

    queue = get_enrichment_queue()
    if queue is None:
        return _queue_unavailable()

    church_id = payload.get("churchId")
    try:
        if church_id:
            result = queue.enrich_church(church_id)
            return jsonify({"success": result.success, "result": result.to_dict()}), 200

        results = queue.process(min(batch_size, MAX_QUEUE_BATCH))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Enrichment failed: %s", exc)
        return jsonify({"error": "Enrichment failed", "details": str(exc)}), 500

    successful = sum(1 for result in results if result.success)
    return jsonify({
        "success": True,
        "processed": len(results),
        "successful": successful,
        "failed": len(results) - successful,
        "results": [result.to_dict() for result in results],
    }), 200


@app.get("/api/admin/enrich")
def enrichment_queue_stats() -> Any:
    if not _is_authorized():
        return _unauthorized()

    queue = get_enrichment_queue()
    if queue is None:
        return _queue_unavailable()

    try:
        stats = queue.stats()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Queue stats error: %s", exc)
        return jsonify({"error": "Failed to get stats"}), 500

    return jsonify({"queue": stats, "aiProvider": ai_provider_name(get_settings())}), 200


@app.put("/api/admin/enrich")
def retry_failed_enrichment() -> Any:
    if not _is_authorized():
        return _unauthorized()

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        limit = _optional_number(payload, "limit", int) or 100
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    queue = get_enrichment_queue()
    if queue is None:
        return _queue_unavailable()

    try:
        retried = queue.retry_failed(max(limit, 1))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Retry error: %s", exc)
        return jsonify({"error": "Retry failed"}), 500

    return jsonify({"success": True, "retriedCount": retried}), 200


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    port = get_settings().admin_port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
