"""
Player Props Parser for Odds API event payloads.

Picks exactly one line per (player, prop) from a pool of sportsbooks.

The Odds API returns player props in a nested structure:
{
    "home_team": "Los Angeles Lakers",
    "away_team": "Golden State Warriors",
    "bookmakers": [
        {
            "key": "draftkings",
            "title": "DraftKings",
            "markets": [
                {
                    "key": "player_points",
                    "outcomes": [
                        {"name": "Over", "description": "LeBron James", "point": 25.5, "price": -110},
                        {"name": "Under", "description": "LeBron James", "point": 25.5, "price": -110}
                    ]
                }
            ]
        }
    ]
}

The payload may also arrive wrapped as {"data": {...}} or as a list of events.

Selection rules, in order:
1. Market must carry exactly the prop's stats (player_points_rebounds never
   answers a points or a points+rebounds+assists request)
2. Outcome must name the player (full name, prefix, or first+last token)
3. Line must fall inside the prop's plausible range
4. A single-stat line >= a combined line containing that stat is dropped
5. Deduplicate by (bookmaker, line); sort by bookmaker preference,
   unranked bookmakers last, payload order breaking ties
6. A points line below the low-line threshold is swapped for the first
   candidate inside [threshold, 60] if one exists, and flagged
"""
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from propline.core.config import DEFAULT_BOOKMAKER_PRIORITY, get_settings
from propline.core.errors import InvalidInput
from propline.core.logging import get_logger
from propline.models import PropLine
from propline.services.nba.prop_values import PROP_COMPONENTS, canonical_prop_type, components
from propline.services.sync.utils.name_normalizer import (
    normalize,
    player_name_matches,
    team_abbrev_from_name,
)

logger = get_logger(__name__)

DEFAULT_LOW_LINE_THRESHOLD = 8.0
LOW_LINE_CEILING = 60.0

# Map prop types to Odds API market keys
MARKET_MAP = {
    "points": "player_points",
    "rebounds": "player_rebounds",
    "assists": "player_assists",
    "threes": "player_threes",
    "points_rebounds": "player_points_rebounds",
    "points_assists": "player_points_assists",
    "rebounds_assists": "player_rebounds_assists",
    "points_rebounds_assists": "player_points_rebounds_assists",
}

# (low, high] line bounds per prop type
PLAUSIBLE_RANGES = {
    "points": (0.0, 60.0),
    "rebounds": (0.0, 25.0),
    "assists": (0.0, 20.0),
    "threes": (0.0, 12.0),
    "steals": (0.0, 8.0),
    "blocks": (0.0, 8.0),
    "turnovers": (0.0, 10.0),
    "points_rebounds": (0.0, 50.0),
    "points_assists": (0.0, 55.0),
    "rebounds_assists": (0.0, 35.0),
    "points_rebounds_assists": (0.0, 70.0),
}

# Market key tokens → prop type component
_MARKET_TOKENS = {
    "points": "points",
    "pts": "points",
    "rebounds": "rebounds",
    "reb": "rebounds",
    "rebs": "rebounds",
    "assists": "assists",
    "ast": "assists",
    "asts": "assists",
    "threes": "threes",
    "steals": "steals",
    "blocks": "blocks",
    "turnovers": "turnovers",
}
_MARKET_NOISE = {"player", "over", "under"}

_SIDES = ("over", "under")


def market_components(market_key: str) -> Optional[frozenset]:
    """
    Stats a market key covers, or None when the key is not a plain player prop.

    Examples:
        >>> sorted(market_components("player_points_rebounds"))
        ['points', 'rebounds']
        >>> market_components("player_points_alternate") is None
        True
    """
    tokens = (market_key or "").lower().replace("+", "_").replace(" ", "_").split("_")
    stats = set()
    for token in tokens:
        if not token or token in _MARKET_NOISE:
            continue
        stat = _MARKET_TOKENS.get(token)
        if stat is None:
            return None
        stats.add(stat)
    return frozenset(stats) or None


def market_matches(market_key: str, prop_type: str) -> bool:
    """Whether a market carries exactly the stats of ``prop_type``."""
    return market_components(market_key) == frozenset(components(prop_type))


def is_plausible(prop_type: str, line: float) -> bool:
    low, high = PLAUSIBLE_RANGES.get(prop_type, (0.0, LOW_LINE_CEILING))
    return low < line <= high


def _events(payload: Any) -> List[Dict[str, Any]]:
    """Normalize the accepted payload shapes to a list of event dicts."""
    if isinstance(payload, dict) and "data" in payload and "bookmakers" not in payload:
        payload = payload["data"]
    if payload is None:
        return []
    if isinstance(payload, dict):
        events = [payload]
    elif isinstance(payload, list):
        events = payload
    else:
        raise InvalidInput(f"Odds payload must be an object or a list, got {type(payload).__name__}")

    for event in events:
        if not isinstance(event, dict):
            raise InvalidInput("Odds payload events must be objects")
        for bookmaker in _objects(event, "bookmakers", "event"):
            for market in _objects(bookmaker, "markets", "bookmaker"):
                _objects(market, "outcomes", "market")
    return events


def _objects(parent: Dict[str, Any], field: str, owner: str) -> List[Dict[str, Any]]:
    """``parent[field]`` checked to be a list of objects; missing or null is empty."""
    items = parent.get(field)
    if items is None:
        return []
    if not isinstance(items, list):
        raise InvalidInput(f"Odds payload {owner} '{field}' must be a list, got {type(items).__name__}")
    for item in items:
        if not isinstance(item, dict):
            raise InvalidInput(f"Odds payload {owner} '{field}' entries must be objects, got {type(item).__name__}")
    return items


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _outcome_side(outcome: Dict[str, Any]) -> Optional[str]:
    name = normalize(str(outcome.get("name") or ""))
    for side in _SIDES:
        if side in name.split():
            return side
    return None


def _outcome_label(outcome: Dict[str, Any]) -> str:
    """Player part of an outcome ("LeBron James - Points" → "LeBron James")."""
    description = str(outcome.get("description") or "")
    if description:
        return description.split(" - ")[0].split(" | ")[0].strip()
    words = [w for w in str(outcome.get("name") or "").split() if w.lower() not in _SIDES]
    return " ".join(words)


def event_teams(payload: Any) -> List[str]:
    """Canonical abbreviations of the teams in an odds payload."""
    teams = []
    for event in _events(payload):
        for field in ("home_team", "away_team"):
            abbrev = team_abbrev_from_name(str(event.get(field) or ""))
            if abbrev and abbrev not in teams:
                teams.append(abbrev)
    return teams


class PlayerPropsParser:
    """
    Parse player props from an odds payload.

    Args:
        bookmaker_priority: Ordered preferred bookmakers, best first
        low_line_threshold: Points lines below this trigger a substitution search
    """

    def __init__(
        self,
        bookmaker_priority: Optional[Sequence[str]] = None,
        low_line_threshold: float = DEFAULT_LOW_LINE_THRESHOLD,
    ):
        self.bookmaker_priority = [b.lower() for b in (bookmaker_priority or DEFAULT_BOOKMAKER_PRIORITY)]
        self.low_line_threshold = low_line_threshold

    @classmethod
    def from_settings(cls, settings) -> "PlayerPropsParser":
        return cls(settings.BOOKMAKER_PRIORITY, settings.LOW_LINE_THRESHOLD)

    # ==================== Candidate extraction ====================

    def _candidates(self, payload: Any, player_name: str, prop: str) -> List[PropLine]:
        """Every line for the player in markets matching ``prop``, payload order."""
        lines: List[PropLine] = []
        for event in _events(payload):
            for bookmaker in event.get("bookmakers") or []:
                key = str(bookmaker.get("key") or "").lower()
                title = str(bookmaker.get("title") or key)
                for market in bookmaker.get("markets") or []:
                    if not market_matches(str(market.get("key") or ""), prop):
                        continue
                    lines.extend(self._lines_from_outcomes(market.get("outcomes") or [], player_name, prop, key, title))
        return lines

    def _lines_from_outcomes(
        self,
        outcomes: List[Dict[str, Any]],
        player_name: str,
        prop: str,
        bookmaker_key: str,
        bookmaker_title: str,
    ) -> Iterator[PropLine]:
        """Pair OVER/UNDER outcomes for the player by point."""
        by_point: Dict[float, Dict[str, Optional[float]]] = {}
        for outcome in outcomes:
            if not player_name_matches(player_name, _outcome_label(outcome)):
                continue
            point = _to_float(outcome.get("point"))
            if point is None:
                continue
            side = _outcome_side(outcome)
            prices = by_point.setdefault(point, {"over": None, "under": None})
            if side is not None:
                prices[side] = _to_float(outcome.get("price"))

        for point, prices in by_point.items():
            yield PropLine(
                prop_type=prop,
                line=point,
                over_odds=prices["over"],
                under_odds=prices["under"],
                bookmaker=bookmaker_key,
                bookmaker_title=bookmaker_title,
                priority_rank=self._get_bookmaker_priority(bookmaker_key, bookmaker_title),
            )

    def _get_bookmaker_priority(self, bookmaker_key: str, bookmaker_title: str = "") -> Optional[int]:
        """0-based rank on the preference list, None when unranked."""
        key = bookmaker_key.lower()
        if key in self.bookmaker_priority:
            return self.bookmaker_priority.index(key)
        title = normalize(bookmaker_title).replace(" ", "")
        for rank, preferred in enumerate(self.bookmaker_priority):
            if preferred in key or (title and preferred in title):
                return rank
        return None

    # ==================== Validation ====================

    def _combined_lines(self, payload: Any, player_name: str, prop: str) -> Dict[str, List[float]]:
        """Lines of every combined prop containing ``prop``, by bookmaker."""
        by_bookmaker: Dict[str, List[float]] = {}
        for combined, fields in PROP_COMPONENTS.items():
            if len(fields) < 2 or prop not in components(combined):
                continue
            for line in self._candidates(payload, player_name, combined):
                if is_plausible(combined, line.line):
                    by_bookmaker.setdefault(line.bookmaker, []).append(line.line)
        return by_bookmaker

    def _consistent(self, lines: List[PropLine], payload: Any, player_name: str, prop: str) -> List[PropLine]:
        """Drop single-stat lines at or above a combined line that contains them."""
        if len(components(prop)) > 1:
            return lines
        combined = self._combined_lines(payload, player_name, prop)
        if not combined:
            return lines
        pool = [value for values in combined.values() for value in values]

        kept = []
        for line in lines:
            ceiling = min(combined.get(line.bookmaker) or pool)
            if line.line >= ceiling:
                logger.warning(
                    f"Rejecting {prop} line {line.line} for {player_name} ({line.bookmaker}): "
                    f"not below combined line {ceiling}"
                )
                continue
            kept.append(line)
        return kept

    @staticmethod
    def _dedupe(lines: List[PropLine]) -> List[PropLine]:
        seen = set()
        unique = []
        for line in lines:
            key = (line.bookmaker, line.line)
            if key in seen:
                continue
            seen.add(key)
            unique.append(line)
        return unique

    @staticmethod
    def _sort_key(line: PropLine) -> Tuple[int, int]:
        rank = line.priority_rank
        return (1, 0) if rank is None else (0, rank)

    # ==================== Public API ====================

    def candidate_lines(self, payload: Any, player_name: str, prop_type: str) -> List[PropLine]:
        """
        All valid lines for a player and prop, best first.

        Raises:
            InvalidInput: malformed payload or unknown prop type
        """
        prop = canonical_prop_type(prop_type)
        if not normalize(player_name):
            raise InvalidInput("Player name is empty")

        lines = self._candidates(payload, player_name, prop)
        plausible = []
        for line in lines:
            if is_plausible(prop, line.line):
                plausible.append(line)
            else:
                logger.debug(f"Discarding implausible {prop} line {line.line} ({line.bookmaker})")

        valid = self._dedupe(self._consistent(plausible, payload, player_name, prop))
        return sorted(valid, key=self._sort_key)

    def best_line(self, payload: Any, player_name: str, prop_type: str) -> Optional[PropLine]:
        """
        The single best line for a player and prop, or None if unavailable.

        Example:
            >>> parser = PlayerPropsParser()
            >>> line = parser.best_line(odds_payload, "LeBron James", "points")
            >>> line.line, line.bookmaker
            (25.5, 'draftkings')
        """
        lines = self.candidate_lines(payload, player_name, prop_type)
        if not lines:
            logger.debug(f"No lines found for player={player_name}, prop_type={prop_type}")
            return None

        best = lines[0]
        if best.prop_type == "points" and best.line < self.low_line_threshold:
            alternative = next(
                (l for l in lines[1:] if self.low_line_threshold <= l.line <= LOW_LINE_CEILING),
                None,
            )
            if alternative is not None:
                logger.warning(
                    f"Points line {best.line} for {player_name} ({best.bookmaker}) is suspiciously low, "
                    f"using {alternative.line} ({alternative.bookmaker})"
                )
                best = alternative.model_copy(update={"substituted": True, "original_line": best.line})

        logger.info(f"Found line for {player_name} {best.prop_type}: {best.line} ({best.bookmaker})")
        return best

    def extract_all_lines(self, payload: Any, player_name: str) -> Dict[str, PropLine]:
        """Best line per supported market for one player."""
        lines = {}
        for prop in MARKET_MAP:
            line = self.best_line(payload, player_name, prop)
            if line is not None:
                lines[prop] = line
        return lines

    def extract_all_player_lines(self, payload: Any, prop_type: str) -> Dict[str, PropLine]:
        """
        Best line for every player offered in a prop's markets.

        Useful for a "players with lines" view of one game.
        """
        prop = canonical_prop_type(prop_type)
        names: List[str] = []
        for event in _events(payload):
            for bookmaker in event.get("bookmakers") or []:
                for market in bookmaker.get("markets") or []:
                    if not market_matches(str(market.get("key") or ""), prop):
                        continue
                    for outcome in market.get("outcomes") or []:
                        label = _outcome_label(outcome)
                        if label and not any(normalize(label) == normalize(n) for n in names):
                            names.append(label)

        lines = {}
        for name in names:
            line = self.best_line(payload, name, prop)
            if line is not None:
                lines[name] = line
        return lines

    def get_market_key(self, prop_type: str) -> Optional[str]:
        return MARKET_MAP.get(canonical_prop_type(prop_type))

    def get_supported_prop_types(self) -> List[str]:
        return list(MARKET_MAP.keys())


# Singleton instance for convenience
_default_parser: Optional[PlayerPropsParser] = None


def get_player_props_parser(
    bookmaker_priority: Optional[Sequence[str]] = None,
    low_line_threshold: Optional[float] = None,
) -> PlayerPropsParser:
    """
    Get or create the shared PlayerPropsParser.

    Passing either argument replaces the shared instance.
    """
    global _default_parser
    if _default_parser is None or bookmaker_priority is not None or low_line_threshold is not None:
        settings = get_settings()
        _default_parser = PlayerPropsParser(
            bookmaker_priority or settings.BOOKMAKER_PRIORITY,
            settings.LOW_LINE_THRESHOLD if low_line_threshold is None else low_line_threshold,
        )
    return _default_parser
