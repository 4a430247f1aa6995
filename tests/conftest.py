"""Shared pytest fixtures for propline tests."""
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Dict, List

import httpx
import pytest

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from propline.core.cache import TTLCache  # noqa: E402
from propline.core.circuit_breaker import reset_all_breakers  # noqa: E402
from propline.core.retry import RetryPolicy  # noqa: E402
from propline.models import Game, GameLog, Identity  # noqa: E402

# Fixed "today" used across tests: mid-season, so the current season is 2025-26
TODAY = date(2026, 1, 15)

# Points, oldest → newest
SAMPLE_POINTS = [18, 22, 25, 30, 27, 19, 24, 28, 31, 23]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_games(points: List[int], end: date = TODAY - timedelta(days=2), step: int = 2) -> List[Game]:
    """Games oldest → newest, one every ``step`` days, newest on ``end``."""
    count = len(points)
    games = []
    for i, pts in enumerate(points):
        games.append(
            Game(
                sequence=count - i,
                date=end - timedelta(days=step * (count - 1 - i)),
                opponent_abbrev="BOS",
                is_home=i % 2 == 0,
                minutes=34.0,
                points=pts,
                rebounds=8,
                assists=6,
                threes_made=2,
                season="2025-26",
            )
        )
    return games


@pytest.fixture(autouse=True)
def _reset_breakers():
    """Circuit breakers are process-wide; start every test with closed breakers."""
    reset_all_breakers()
    yield
    reset_all_breakers()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(fake_clock) -> TTLCache:
    """Fresh in-memory cache per test."""
    return TTLCache(clock=fake_clock)


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with no backoff delay."""
    return RetryPolicy(max_attempts=3, base_delay=0)


@pytest.fixture
def identity() -> Identity:
    return Identity(
        provider="nba_stats",
        provider_id="2544",
        canonical_name="lebron james",
        display_name="LeBron James",
        team_abbrev="LAL",
    )


@pytest.fixture
def sample_games() -> List[Game]:
    return make_games(SAMPLE_POINTS)


@pytest.fixture
def sample_log(identity, sample_games) -> GameLog:
    return GameLog(identity=identity, games=tuple(reversed(sample_games)))


@pytest.fixture
def mock_client_factory():
    """
    Build an httpx.AsyncClient whose responses come from a handler.

    The handler receives the request and returns an httpx.Response.
    Every request is also appended to ``client.requests_seen``.
    """
    clients = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        seen: List[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        client.requests_seen = seen
        clients.append(client)
        return client

    return factory


def outcome(player: str, side: str, point: float, price: int = -110) -> Dict:
    return {"name": side, "description": player, "point": point, "price": price}


def market(key: str, *outcomes: Dict) -> Dict:
    return {"key": key, "outcomes": list(outcomes)}


def bookmaker(key: str, *markets: Dict, title: str = "") -> Dict:
    return {"key": key, "title": title or key.title(), "markets": list(markets)}


def over_under(player: str, point: float) -> List[Dict]:
    return [outcome(player, "Over", point), outcome(player, "Under", point)]


@pytest.fixture
def odds_payload() -> Dict:
    """Lakers vs Warriors event with lines from three books."""
    return {
        "home_team": "Los Angeles Lakers",
        "away_team": "Golden State Warriors",
        "bookmakers": [
            bookmaker(
                "bovada",
                market("player_points", *over_under("LeBron James", 24.5)),
            ),
            bookmaker(
                "fanduel",
                market("player_points", *over_under("LeBron James", 25.5), *over_under("Stephen Curry", 27.5)),
                market("player_rebounds", *over_under("LeBron James", 7.5)),
                market("player_points_rebounds", *over_under("LeBron James", 33.5)),
                title="FanDuel",
            ),
            bookmaker(
                "draftkings",
                market("player_assists", *over_under("LeBron James", 8.5)),
                market("player_points_rebounds_assists", *over_under("LeBron James", 41.5)),
                title="DraftKings",
            ),
        ],
    }
