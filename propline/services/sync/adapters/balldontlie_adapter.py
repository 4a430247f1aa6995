"""balldontlie.io adapter (legacy/basic provider, last in the fallback order).

Endpoints used:
- /players?search=: player search (``data`` list of JSON objects)
- /stats?player_ids[]=&seasons[]=: box scores, cursor paginated
- /games?team_ids[]=&start_date=&end_date=: fixtures in a date window
- /teams: team id ↔ abbreviation lookup (fetched once per adapter)

balldontlie seasons are labelled by their starting year (2025-26 is 2025).
The free tier is heavily rate limited, so 429s are routine and go
through the shared retry policy.
"""
from typing import Any, Dict, List, Optional, Tuple

from propline.core.logging import get_logger
from propline.models import Game, Identity, NextGame
from propline.services.nba.prop_values import parse_minutes
from propline.services.sync.adapters.base_adapter import BaseProviderAdapter, parse_game_date
from propline.services.sync.utils.name_normalizer import team_alias
from propline.utils.season import season_start_year

logger = get_logger(__name__)

PER_PAGE = 100
MAX_PAGES = 5

STAT_FIELDS = {
    "pts": "points",
    "reb": "rebounds",
    "ast": "assists",
    "stl": "steals",
    "blk": "blocks",
    "fg3m": "threes_made",
    "fg3a": "threes_attempted",
    "fgm": "fg_made",
    "fga": "fg_attempted",
    "ftm": "ft_made",
    "fta": "ft_attempted",
    "turnover": "turnovers",
}


class BallDontLieAdapter(BaseProviderAdapter):
    """Adapter for the balldontlie.io v1 API."""

    name = "balldontlie"

    def __init__(
        self,
        client,
        base_url: str = "https://api.balldontlie.io/v1",
        api_key: str = "",
        **kwargs,
    ):
        super().__init__(client, base_url, **kwargs)
        self.default_headers = {"Authorization": api_key} if api_key else {}
        self._teams: Optional[Dict[int, str]] = None

    async def _team_abbrevs(self) -> Dict[int, str]:
        """team id → canonical abbreviation, loaded on first use."""
        if self._teams is None:
            payload = await self._get_json("teams")
            self._teams = {
                t["id"]: team_alias(t.get("abbreviation") or "")
                for t in payload.get("data") or []
                if t.get("id") is not None
            }
        return self._teams

    @staticmethod
    def _full_name(row: Dict[str, Any]) -> str:
        return f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip()

    async def search_candidates(self, name: str) -> List[Tuple[str, Dict[str, Any]]]:
        # The search endpoint matches single terms best; ranking happens locally
        query = name.split()[-1] if name.split() else name
        payload = await self._get_json("players", {"search": query, "per_page": 25})
        return [(self._full_name(r), r) for r in payload.get("data") or []]

    def identity_from(self, row: Dict[str, Any]) -> Identity:
        team = (row.get("team") or {}).get("abbreviation")
        return self._identity(row.get("id"), self._full_name(row), team_alias(team or ""))

    async def fetch_season_games(self, identity: Identity, season: str) -> List[Game]:
        rows: List[Dict[str, Any]] = []
        cursor = None
        for _ in range(MAX_PAGES):
            params: Dict[str, Any] = {
                "player_ids[]": identity.provider_id,
                "seasons[]": season_start_year(season),
                "per_page": PER_PAGE,
            }
            if cursor:
                params["cursor"] = cursor
            payload = await self._get_json("stats", params)
            rows.extend(payload.get("data") or [])
            cursor = (payload.get("meta") or {}).get("next_cursor")
            if not cursor:
                break

        teams = await self._team_abbrevs() if rows else {}
        games = []
        for row in rows:
            game = self._parse_stat_row(row, teams, season)
            if game is not None:
                games.append(game)
        return games

    @staticmethod
    def _parse_stat_row(row: Dict[str, Any], teams: Dict[int, str], season: str) -> Optional[Game]:
        game_info = row.get("game") or {}
        game_date = parse_game_date(game_info.get("date"))
        if game_date is None:
            return None

        # Did-not-play rows come back with empty minutes
        minutes = parse_minutes(row.get("min"))
        if minutes is None:
            return None

        team_id = (row.get("team") or {}).get("id")
        home_id = game_info.get("home_team_id")
        visitor_id = game_info.get("visitor_team_id")
        is_home = team_id is not None and team_id == home_id
        opponent_id = visitor_id if is_home else home_id

        return Game(
            date=game_date,
            opponent_abbrev=teams.get(opponent_id, ""),
            is_home=is_home,
            minutes=minutes,
            season=season,
            game_id=str(game_info.get("id")) if game_info.get("id") else None,
            **{field: row.get(key) for key, field in STAT_FIELDS.items()},
        )

    async def fetch_next_game(self, team_abbrev: str) -> Optional[NextGame]:
        team = team_alias(team_abbrev)
        teams = await self._team_abbrevs()
        team_id = next((tid for tid, abbrev in teams.items() if abbrev == team), None)
        if team_id is None:
            logger.info(f"{self.name}: unknown team {team_abbrev!r}")
            return None

        window = self._lookahead_dates()
        payload = await self._get_json(
            "games",
            {
                "team_ids[]": team_id,
                "start_date": window[0].isoformat(),
                "end_date": window[-1].isoformat(),
                "per_page": PER_PAGE,
            },
        )

        fixtures = []
        for game in payload.get("data") or []:
            if (game.get("status") or "").lower() == "final":
                continue
            game_day = parse_game_date(game.get("date"))
            if game_day is None:
                continue
            fixtures.append((game_day, game))

        if not fixtures:
            return None

        game_day, game = min(fixtures, key=lambda item: item[0])
        home = team_alias((game.get("home_team") or {}).get("abbreviation") or "") or teams.get(game.get("home_team_id"), "")
        visitor = team_alias((game.get("visitor_team") or {}).get("abbreviation") or "") or teams.get(game.get("visitor_team_id"), "")
        is_home = home == team
        return NextGame(
            team_abbrev=team,
            opponent_abbrev=visitor if is_home else home,
            date=game_day,
            is_home=is_home,
            event_id=str(game.get("id")) if game.get("id") else None,
            tip_off=game.get("status"),
        )
