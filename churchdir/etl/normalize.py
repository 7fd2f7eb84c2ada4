"""Pure normalisation helpers used for deduplication and storage."""

import hashlib
import re
from typing import Iterable, List, Optional

from churchdir.etl.denominations import (
    CANONICAL_DENOMINATIONS,
    CHURCH_NAME_PATTERN,
    DENOMINATION_MAP,
    NAME_RULES,
    WORSHIP_STYLES,
)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGITS = re.compile(r"\D")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")

ADDRESS_TOKEN_MAP = {
    "street": "st",
    "avenue": "ave",
    "av": "ave",
    "boulevard": "blvd",
    "drive": "dr",
    "road": "rd",
    "lane": "ln",
    "court": "ct",
    "place": "pl",
    "highway": "hwy",
    "parkway": "pkwy",
    "circle": "cir",
    "terrace": "ter",
    "trail": "trl",
    "square": "sq",
    "expressway": "expy",
    "freeway": "fwy",
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
    "northeast": "ne",
    "northwest": "nw",
    "southeast": "se",
    "southwest": "sw",
    "suite": "ste",
    "apartment": "apt",
    "building": "bldg",
    "floor": "fl",
    "mount": "mt",
    "fort": "ft",
}

_DENOMINATION_LOOKUP = {key.lower(): value for key, value in DENOMINATION_MAP.items()}
_CANONICAL_LOOKUP = {value.lower(): value for value in CANONICAL_DENOMINATIONS}
_WORSHIP_LOOKUP = {style.lower(): style for style in WORSHIP_STYLES}


def normalize_address_text(text: Optional[str]) -> str:
    """Normalise one address fragment into a canonical token sequence."""
    if not text:
        return ""
    cleaned = _PUNCTUATION.sub("", text.lower()).replace("_", " ")
    tokens = [ADDRESS_TOKEN_MAP.get(token, token) for token in _WHITESPACE.split(cleaned) if token]
    return " ".join(tokens)


def normalize_address(street: Optional[str], city: Optional[str], state: Optional[str]) -> str:
    """Build the address dedup key; equal keys mean the same physical address."""
    return "|".join(normalize_address_text(part) for part in (street, city, state))


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Return a comparable 10-digit NANP phone number or ``None``."""
    if not phone:
        return None
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 10:
        return digits
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return None


def map_denomination(raw_category: Optional[str]) -> Optional[str]:
    if not raw_category:
        return None
    return _DENOMINATION_LOOKUP.get(raw_category.strip().lower())


def infer_denomination_from_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    lowered = name.lower()
    for pattern, denomination in NAME_RULES:
        if pattern.search(lowered):
            return denomination
    return None


def canonical_denomination(value: Optional[str]) -> Optional[str]:
    """Return ``value`` spelled as in the canonical vocabulary, if it belongs to it."""
    if not value:
        return None
    return _CANONICAL_LOOKUP.get(value.strip().lower())


def resolve_denomination(explicit: Optional[str], name: Optional[str]) -> Optional[str]:
    """Explicit canonical value, then category lookup, then name inference."""
    return (
        canonical_denomination(explicit)
        or map_denomination(explicit)
        or infer_denomination_from_name(name)
    )


def looks_like_church(name: Optional[str]) -> bool:
    return bool(name and CHURCH_NAME_PATTERN.search(name))


def normalize_worship_styles(values: Optional[Iterable[object]]) -> List[str]:
    styles: List[str] = []
    for value in values or []:
        if not isinstance(value, str):
            continue
        style = _WORSHIP_LOOKUP.get(value.strip().lower())
        if style and style not in styles:
            styles.append(style)
    return styles


def slugify(text: str) -> str:
    return _SLUG_INVALID.sub("-", (text or "").lower()).strip("-")


def build_church_slug(name: str, city: str, state_abbr: str, source_id: str) -> str:
    """``first-baptist-church-springfield-il-3f2a1c``; the suffix keeps slugs unique."""
    base = slugify(f"{name} {city} {state_abbr}")[:100].rstrip("-")
    suffix = hashlib.sha1((source_id or base).encode("utf-8")).hexdigest()[:6]
    return f"{base}-{suffix}"
