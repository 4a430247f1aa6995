"""NBA.com stats API adapter (authoritative provider).

Talks to the same stats.nba.com endpoints the nba_api package wraps:
- commonallplayers: roster of every player (search)
- playergamelog: per-season game logs
- scoreboardv2: fixtures for one day (next game scan)

Responses are tabular: ``resultSets[i].headers`` names the columns of
``resultSets[i].rowSet`` rows. Columns are located by header name, never
by position.

stats.nba.com rejects requests without browser-like headers and answers
throttled clients with 403, which the shared retry policy treats as
transient.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from propline.core.errors import ProviderUnavailable
from propline.core.logging import get_logger
from propline.models import Game, Identity, NextGame
from propline.services.nba.prop_values import parse_minutes
from propline.services.sync.adapters.base_adapter import BaseProviderAdapter, parse_game_date
from propline.services.sync.utils.name_normalizer import team_alias
from propline.utils.season import season_label

logger = get_logger(__name__)

NBA_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.nba.com/",
    "Origin": "https://www.nba.com",
}

# playergamelog column → canonical Game field
GAME_LOG_COLUMNS = {
    "PTS": "points",
    "REB": "rebounds",
    "AST": "assists",
    "STL": "steals",
    "BLK": "blocks",
    "FG3M": "threes_made",
    "FG3A": "threes_attempted",
    "FGM": "fg_made",
    "FGA": "fg_attempted",
    "FTM": "ft_made",
    "FTA": "ft_attempted",
    "TOV": "turnovers",
}

_MATCHUP = re.compile(r"^\s*([A-Za-z]{2,4})\s*(vs\.?|@)\s*([A-Za-z]{2,4})")
# GAMECODE looks like "20251112/LALGSW" (away then home)
_GAMECODE = re.compile(r"/([A-Z]{3})([A-Z]{3})$")


def parse_matchup(matchup: str) -> Tuple[Optional[str], Optional[str], bool]:
    """
    Decode a MATCHUP cell into (team, opponent, is_home).

    The first team is always the player's team. "vs." means home, "@" away.

    Examples:
        >>> parse_matchup("GSW vs. LAL")
        ('GSW', 'LAL', True)
        >>> parse_matchup("GSW @ LAL")
        ('GSW', 'LAL', False)
    """
    match = _MATCHUP.match(matchup or "")
    if not match:
        return None, None, False
    team, sep, opponent = match.groups()
    return team_alias(team), team_alias(opponent), sep.startswith("vs")


def result_set(payload: Dict[str, Any], name: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Convert one tabular result set into a list of dicts keyed by header.

    Args:
        payload: Raw stats.nba.com JSON
        name: Result set name; the first set is used when None
    """
    sets = payload.get("resultSets") or payload.get("resultSet") or []
    if isinstance(sets, dict):
        sets = [sets]
    chosen = None
    for rs in sets:
        if name is None or rs.get("name") == name:
            chosen = rs
            break
    if not chosen:
        return []
    headers = chosen.get("headers") or []
    return [dict(zip(headers, row)) for row in chosen.get("rowSet") or []]


class NbaStatsAdapter(BaseProviderAdapter):
    """Adapter for stats.nba.com."""

    name = "nba_stats"
    default_headers = NBA_HEADERS

    def __init__(self, client, base_url: str = "https://stats.nba.com/stats", **kwargs):
        super().__init__(client, base_url, **kwargs)

    async def search_candidates(self, name: str) -> List[Tuple[str, Dict[str, Any]]]:
        payload = await self._get_json(
            "commonallplayers",
            {"LeagueID": "00", "Season": season_label(self.today()), "IsOnlyCurrentSeason": 0},
        )
        return [
            (row.get("DISPLAY_FIRST_LAST") or row.get("PLAYER_NAME") or "", row)
            for row in result_set(payload)
        ]

    def identity_from(self, row: Dict[str, Any]) -> Identity:
        return self._identity(
            row.get("PERSON_ID"),
            row.get("DISPLAY_FIRST_LAST") or row.get("PLAYER_NAME") or "",
            team_alias(row.get("TEAM_ABBREVIATION") or ""),
        )

    async def fetch_season_games(self, identity: Identity, season: str) -> List[Game]:
        payload = await self._get_json(
            "playergamelog",
            {
                "LeagueID": "00",
                "PlayerID": identity.provider_id,
                "Season": season,
                "SeasonType": "Regular Season",
            },
        )
        games = []
        for row in result_set(payload):
            game = self._parse_game_row(row, season)
            if game is not None:
                games.append(game)
        return games

    @staticmethod
    def _parse_game_row(row: Dict[str, Any], season: str) -> Optional[Game]:
        game_date = parse_game_date(row.get("GAME_DATE"))
        if game_date is None:
            return None
        _, opponent, is_home = parse_matchup(row.get("MATCHUP") or "")
        fields = {field: row.get(column) for column, field in GAME_LOG_COLUMNS.items()}
        return Game(
            date=game_date,
            opponent_abbrev=opponent or "",
            is_home=is_home,
            minutes=parse_minutes(row.get("MIN")) or 0.0,
            season=season,
            game_id=str(row.get("Game_ID") or row.get("GAME_ID") or "") or None,
            **fields,
        )

    async def fetch_next_game(self, team_abbrev: str) -> Optional[NextGame]:
        """
        Scan daily scoreboards from today through the lookahead window.

        A failed day is skipped; if every day fails the last error is raised.
        """
        team = team_alias(team_abbrev)
        last_error: Optional[ProviderUnavailable] = None
        failures = 0
        days = self._lookahead_dates()

        for day in days:
            try:
                payload = await self._get_json(
                    "scoreboardv2",
                    {"LeagueID": "00", "GameDate": day.isoformat(), "DayOffset": 0},
                )
            except ProviderUnavailable as e:
                logger.warning(f"{self.name}: scoreboard for {day} unavailable: {e.message}")
                last_error = e
                failures += 1
                continue

            for row in result_set(payload, "GameHeader"):
                match = _GAMECODE.search(row.get("GAMECODE") or "")
                if not match:
                    continue
                away, home = team_alias(match.group(1)), team_alias(match.group(2))
                if team not in (home, away):
                    continue
                is_home = team == home
                return NextGame(
                    team_abbrev=team,
                    opponent_abbrev=away if is_home else home,
                    date=parse_game_date(row.get("GAME_DATE_EST")) or day,
                    is_home=is_home,
                    event_id=str(row.get("GAME_ID")) if row.get("GAME_ID") else None,
                    tip_off=row.get("GAME_STATUS_TEXT"),
                )

        if failures == len(days) and last_error is not None:
            raise last_error
        return None
