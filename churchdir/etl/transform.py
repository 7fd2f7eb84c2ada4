"""Utilities for transforming acquired church records into database rows."""

import logging
from typing import Any, Dict

from churchdir.etl.normalize import build_church_slug, resolve_denomination
from churchdir.etl.states import state_abbr_for, state_name_for
from churchdir.models import RawChurchRecord

logger = logging.getLogger(__name__)

# Fields a re-import may refresh on an existing row.
REFRESHABLE_FIELDS = ("address", "city", "state", "state_abbr", "zip", "lat", "lng", "phone", "email", "website", "denomination")


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


def to_church_row(record: RawChurchRecord) -> Dict[str, Any]:
    """Build the insert payload for a new ``churches`` row."""
    state_abbr = (record.state_abbr or state_abbr_for(record.state)).upper()
    # churches.state holds the full name; the workers shard on it.
    state = state_name_for(state_abbr) or record.state or ""

    return {
        "slug": build_church_slug(record.name, record.city, state_abbr, record.source_id),
        "name": record.name.strip(),
        "address": _clean(record.street) or "",
        "city": _clean(record.city) or "",
        "state": state,
        "state_abbr": state_abbr,
        "zip": _clean(record.zip) or "",
        "lat": record.lat,
        "lng": record.lng,
        "phone": _clean(record.phone),
        "email": _clean(record.email),
        "website": _clean(record.website),
        "denomination": resolve_denomination(record.denomination, record.name),
        "has_kids_ministry": False,
        "has_youth_group": False,
        "has_small_groups": False,
        "source": record.source,
        "source_id": record.source_id,
    }


def to_update_fields(record: RawChurchRecord) -> Dict[str, Any]:
    """Partial update payload: only refreshable fields the record actually carries."""
    row = to_church_row(record)
    return {field: row[field] for field in REFRESHABLE_FIELDS if row.get(field) not in (None, "")}
