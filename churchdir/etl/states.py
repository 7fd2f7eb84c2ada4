"""Static US state lookup tables used for address parsing and worker sharding."""

from typing import Dict, List, Optional

STATE_ABBR_MAP: Dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

ABBR_TO_STATE: Dict[str, str] = {abbr: name for name, abbr in STATE_ABBR_MAP.items()}


def _title_case(name: str) -> str:
    words = [word.capitalize() if word != "of" else word for word in name.split(" ")]
    return " ".join(words)


# Shard set for the enrichment workers. Matches the ``state`` column values.
ALL_STATES: List[str] = sorted(_title_case(name) for name in STATE_ABBR_MAP)


def state_abbr_for(state: Optional[str]) -> str:
    """Return the postal abbreviation for a state name or abbreviation."""
    if not state:
        return ""
    cleaned = state.strip()
    if cleaned.upper() in ABBR_TO_STATE:
        return cleaned.upper()
    return STATE_ABBR_MAP.get(cleaned.lower(), "")


def state_name_for(abbr: Optional[str]) -> str:
    """Return the display name (``New York``) for a postal abbreviation."""
    if not abbr:
        return ""
    name = ABBR_TO_STATE.get(abbr.strip().upper())
    return _title_case(name) if name else ""
