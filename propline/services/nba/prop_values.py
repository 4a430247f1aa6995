"""
Prop type definitions and per-game stat extraction.

A prop type is either a single stat (points, rebounds, ...) or a combined
prop whose value is the sum of its components (points_rebounds = points +
rebounds). Values are read from canonical Game fields only.
"""
from typing import Dict, List, Optional, Tuple, Union

from propline.core.errors import InvalidInput
from propline.models import Game

# Prop type → canonical Game fields summed to produce its value
PROP_COMPONENTS: Dict[str, Tuple[str, ...]] = {
    "points": ("points",),
    "rebounds": ("rebounds",),
    "assists": ("assists",),
    "steals": ("steals",),
    "blocks": ("blocks",),
    "threes": ("threes_made",),
    "turnovers": ("turnovers",),
    "points_rebounds": ("points", "rebounds"),
    "points_assists": ("points", "assists"),
    "rebounds_assists": ("rebounds", "assists"),
    "points_rebounds_assists": ("points", "rebounds", "assists"),
}

# Short codes used in logs and diagnostics
PROP_ABBREVIATIONS = {
    "points": "PTS",
    "rebounds": "REB",
    "assists": "AST",
    "steals": "STL",
    "blocks": "BLK",
    "threes": "3PM",
    "turnovers": "TO",
    "points_rebounds": "PR",
    "points_assists": "PA",
    "rebounds_assists": "RA",
    "points_rebounds_assists": "PRA",
}

_ALIASES = {
    "threes_made": "threes",
    "3pm": "threes",
    "pts": "points",
    "reb": "rebounds",
    "ast": "assists",
    "pra": "points_rebounds_assists",
    "pr": "points_rebounds",
    "pa": "points_assists",
    "ra": "rebounds_assists",
}


def canonical_prop_type(prop_type: str) -> str:
    """
    Resolve aliases ("threes_made", "pts", "points+rebounds") to a prop type.

    Raises:
        InvalidInput: unknown prop type
    """
    key = (prop_type or "").strip().lower().replace("+", "_").replace(" ", "_")
    key = _ALIASES.get(key, key)
    if key not in PROP_COMPONENTS:
        raise InvalidInput(f"Unknown prop type: {prop_type!r}")
    return key


def is_combined(prop_type: str) -> bool:
    return len(PROP_COMPONENTS[canonical_prop_type(prop_type)]) > 1


def components(prop_type: str) -> List[str]:
    """Single prop types that make up ``prop_type``."""
    fields = PROP_COMPONENTS[canonical_prop_type(prop_type)]
    return ["threes" if f == "threes_made" else f for f in fields]


def prop_value(game: Game, prop_type: str) -> float:
    """Value of a prop for one game."""
    return float(sum(getattr(game, f) for f in PROP_COMPONENTS[canonical_prop_type(prop_type)]))


def parse_minutes(raw: Union[str, int, float, None]) -> Optional[float]:
    """
    Parse minutes played from provider formats.

    Examples:
        >>> parse_minutes("34:30")
        34.5
        >>> parse_minutes("28")
        28.0
        >>> parse_minutes(0) is None
        True
    """
    if raw is None or raw == "" or raw == 0 or raw == "0":
        return None
    if isinstance(raw, (int, float)):
        return float(raw)

    text = str(raw).strip()
    if ":" in text:
        mins, _, secs = text.partition(":")
        try:
            return int(mins or 0) + int(secs or 0) / 60
        except ValueError:
            return None
    try:
        return float(text)
    except ValueError:
        return None
