"""ESPN adapter (roster/schedule fallback provider).

ESPN's public JSON API returns object rows rather than tables:
- common/v3/search: player search results in ``items``
- common/v3/sports/basketball/nba/athletes/{id}/gamelog: per-season log with
  ``labels`` naming the positions of each event's ``stats`` array and an
  ``events`` map holding date/opponent/home-away per event id
- site/v2/sports/basketball/nba/teams/{team}/schedule: the team's fixtures
- site/v2/sports/basketball/nba/injuries: league injury report grouped by team

ESPN seasons are labelled by their ending year (2025-26 is season=2026)
and dates are UTC; fixtures are assigned to their US Eastern calendar day.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from propline.core.logging import get_logger
from propline.models import Game, Identity, InjuryReport, NextGame
from propline.services.nba.prop_values import parse_minutes
from propline.services.sync.adapters.base_adapter import BaseProviderAdapter, malformed_payload
from propline.services.sync.utils.name_normalizer import team_abbrev_from_name, team_alias
from propline.utils.season import season_start_year

logger = get_logger(__name__)

SPORT_PATH = "basketball/nba"

# Eastern standard offset; games are listed on their local calendar day
EASTERN_OFFSET = timedelta(hours=-5)

# ESPN URL slugs that differ from the canonical code
ESPN_TEAM_SLUGS = {"GSW": "gs", "SAS": "sa", "NYK": "ny", "NOP": "no", "UTA": "utah", "WAS": "wsh"}

# Single-value labels → canonical Game field
SIMPLE_LABELS = {
    "PTS": "points",
    "REB": "rebounds",
    "AST": "assists",
    "STL": "steals",
    "BLK": "blocks",
    "TO": "turnovers",
}

# "made-attempted" labels → (made field, attempted field)
SPLIT_LABELS = {
    "FG": ("fg_made", "fg_attempted"),
    "3PT": ("threes_made", "threes_attempted"),
    "FT": ("ft_made", "ft_attempted"),
}


def split_made_attempted(value: Any) -> Tuple[int, int]:
    """
    Examples:
        >>> split_made_attempted("10-20")
        (10, 20)
        >>> split_made_attempted(None)
        (0, 0)
    """
    made, _, attempted = str(value or "").partition("-")
    try:
        return int(made), int(attempted)
    except ValueError:
        return 0, 0


def eastern_date(raw: Optional[str]) -> Optional[date]:
    """Calendar day (US Eastern) of an ESPN UTC timestamp like '2025-11-12T00:30Z'."""
    if not raw:
        return None
    try:
        utc = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return (utc + EASTERN_OFFSET).date()


class EspnAdapter(BaseProviderAdapter):
    """Adapter for ESPN's public JSON API."""

    name = "espn"
    default_headers = {
        "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)",
        "Accept": "application/json",
    }

    def __init__(self, client, base_url: str = "https://site.web.api.espn.com/apis", **kwargs):
        super().__init__(client, base_url, **kwargs)

    async def search_candidates(self, name: str) -> List[Tuple[str, Dict[str, Any]]]:
        payload = await self._get_json(
            "common/v3/search",
            {"query": name, "type": "player", "sport": "basketball", "league": "nba", "limit": 25},
        )
        items = [i for i in payload.get("items") or [] if i.get("type", "player") == "player"]
        return [(i.get("displayName") or "", i) for i in items]

    def identity_from(self, item: Dict[str, Any]) -> Identity:
        return self._identity(item.get("id"), item.get("displayName") or "", self._team_of(item))

    @staticmethod
    def _team_of(item: Dict[str, Any]) -> Optional[str]:
        team = item.get("team") or {}
        if team.get("abbreviation"):
            return team_alias(team["abbreviation"])
        for rel in item.get("teamRelationships") or []:
            abbrev = (rel.get("core") or {}).get("abbreviation")
            if abbrev:
                return team_alias(abbrev)
        return None

    async def fetch_season_games(self, identity: Identity, season: str) -> List[Game]:
        espn_season = season_start_year(season) + 1
        payload = await self._get_json(
            f"common/v3/sports/{SPORT_PATH}/athletes/{identity.provider_id}/gamelog",
            {"season": espn_season},
        )
        labels = payload.get("labels") or []
        events_meta = payload.get("events") or {}

        season_types = payload.get("seasonTypes") or []
        regular = [st for st in season_types if "regular" in (st.get("displayName") or "").lower()]

        games = []
        for season_type in regular or season_types:
            for category in season_type.get("categories") or []:
                for event in category.get("events") or []:
                    game = self._parse_event(event, events_meta, labels, season)
                    if game is not None:
                        games.append(game)
        return games

    @staticmethod
    def _parse_event(
        event: Dict[str, Any],
        events_meta: Dict[str, Any],
        labels: List[str],
        season: str,
    ) -> Optional[Game]:
        event_id = str(event.get("eventId") or "")
        meta = events_meta.get(event_id) or {}
        game_date = eastern_date(meta.get("gameDate"))
        if game_date is None:
            return None

        stats = dict(zip(labels, event.get("stats") or []))
        fields: Dict[str, Any] = {
            field: stats.get(label) for label, field in SIMPLE_LABELS.items()
        }
        for label, (made_field, attempted_field) in SPLIT_LABELS.items():
            fields[made_field], fields[attempted_field] = split_made_attempted(stats.get(label))

        return Game(
            date=game_date,
            opponent_abbrev=team_alias((meta.get("opponent") or {}).get("abbreviation") or ""),
            is_home=(meta.get("atVs") or "").lower().startswith("vs"),
            minutes=parse_minutes(stats.get("MIN")) or 0.0,
            season=season,
            game_id=event_id or None,
            **fields,
        )

    async def fetch_next_game(self, team_abbrev: str) -> Optional[NextGame]:
        team = team_alias(team_abbrev)
        slug = ESPN_TEAM_SLUGS.get(team, team.lower())
        payload = await self._get_json(f"site/v2/sports/{SPORT_PATH}/teams/{slug}/schedule")

        window = self._lookahead_dates()
        first_day, last_day = window[0], window[-1]
        upcoming = []

        for event in payload.get("events") or []:
            game_day = eastern_date(event.get("date"))
            if game_day is None or not (first_day <= game_day <= last_day):
                continue
            competitions = event.get("competitions") or [{}]
            sides = {
                c.get("homeAway"): team_alias((c.get("team") or {}).get("abbreviation") or "")
                for c in competitions[0].get("competitors") or []
            }
            home, away = sides.get("home"), sides.get("away")
            if team not in (home, away):
                continue
            upcoming.append((game_day, event, home, away))

        if not upcoming:
            return None

        game_day, event, home, away = min(upcoming, key=lambda item: item[0])
        is_home = team == home
        return NextGame(
            team_abbrev=team,
            opponent_abbrev=(away if is_home else home) or "",
            date=game_day,
            is_home=is_home,
            event_id=str(event.get("id")) if event.get("id") else None,
            tip_off=event.get("date"),
        )

    # ==================== Injuries ====================

    async def _injury_groups(self) -> Dict[str, List[InjuryReport]]:
        """League injury report as canonical team code -> listed injuries."""
        payload = await self._get_json(f"site/v2/sports/{SPORT_PATH}/injuries")
        groups: Dict[str, List[InjuryReport]] = {}
        with malformed_payload(self.name, "injuries"):
            for group in payload.get("injuries") or []:
                team = (
                    team_abbrev_from_name(group.get("displayName") or "")
                    or team_alias(group.get("abbreviation") or "")
                )
                for item in group.get("injuries") or []:
                    report = self._parse_injury(item)
                    if report is None:
                        continue
                    code = team or team_alias(((item.get("athlete") or {}).get("team") or {}).get("abbreviation") or "")
                    if code:
                        groups.setdefault(code, []).append(report)
        return groups

    @staticmethod
    def _parse_injury(item: Dict[str, Any]) -> Optional[InjuryReport]:
        athlete = item.get("athlete") or {}
        name = athlete.get("displayName") or ""
        if not name:
            return None
        details = item.get("details") or {}
        description = item.get("shortComment") or details.get("type") or ""
        if details.get("returnDate"):
            description = f"{description} (expected return {details['returnDate']})".strip()
        return InjuryReport(
            player_name=name,
            status=item.get("status") or (item.get("type") or {}).get("description") or "out",
            description=description,
            position=(athlete.get("position") or {}).get("abbreviation") or "",
        )

    async def get_team_injuries(self, team_abbrev: str) -> List[InjuryReport]:
        """
        Players currently listed on the injury report for one team.

        Raises:
            ProviderUnavailable: ESPN failed or answered with a malformed report
        """
        team = team_alias(team_abbrev)
        injuries = (await self._injury_groups()).get(team, [])
        logger.info(f"{self.name}: {len(injuries)} injuries listed for {team}")
        return injuries

    async def get_matchup_injuries(
        self,
        team_abbrev: str,
        opponent_abbrev: Optional[str] = None,
    ) -> Tuple[List[InjuryReport], List[InjuryReport]]:
        """(team injuries, opponent injuries) from a single report fetch."""
        groups = await self._injury_groups()
        team = groups.get(team_alias(team_abbrev), [])
        opponent = groups.get(team_alias(opponent_abbrev), []) if opponent_abbrev else []
        logger.info(
            f"{self.name}: {len(team)} injuries for {team_alias(team_abbrev)}, "
            f"{len(opponent)} for {team_alias(opponent_abbrev or '') or 'no opponent'}"
        )
        return team, opponent
