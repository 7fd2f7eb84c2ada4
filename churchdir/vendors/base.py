"""Shared contract and helpers for church data acquisition sources."""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from churchdir.models import ChurchSearchParams, ChurchSearchResult, RawChurchRecord

MILES_TO_METERS = 1609.34


class ProviderError(RuntimeError):
    """Raised when an acquisition source answers with a failure."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = (body or "")[:200]


@runtime_checkable
class ChurchDataProvider(Protocol):
    name: str

    def search_churches(self, params: ChurchSearchParams) -> ChurchSearchResult:
        ...

    def is_configured(self) -> bool:
        ...


def supports_details(provider: Any) -> bool:
    return callable(getattr(provider, "get_church_details", None))


def get_details(provider: Any, source_id: str) -> Optional[RawChurchRecord]:
    if not supports_details(provider):
        raise ProviderError(f"Provider {provider.name} does not support church details")
    return provider.get_church_details(source_id)


def strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)

    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit())
        if digits:
            return int(digits)
    return None
