"""Unit tests for PlayerResolver.

Test Strategy:
1. First provider with a match and enough games wins
2. Empty or short logs fall through to the next provider
3. Final error depends on what the providers said (found / not found / down)
4. Stale games are dropped and the sequence stays dense
5. Results are cached by normalized name
6. next_game prefers the identity's provider and caches per team
7. Malformed provider payloads fall through to the next provider
8. Matchup injuries come from the first provider with an injury feed

Providers are in-memory fakes; no HTTP.
"""
from datetime import date, timedelta
from typing import List, Optional

import httpx
import pytest

from propline.core.errors import (
    ErrorKind,
    InsufficientData,
    InvalidInput,
    NotFound,
    ProviderUnavailable,
)
from propline.core.config import Settings
from propline.models import Game, Identity, InjuryReport, NextGame
from propline.services.sync.adapters import NbaStatsAdapter
from propline.services.sync.matchers.player_resolver import PlayerResolver, build_default_providers

from conftest import TODAY, make_games


class FakeProvider:
    """Stands in for a provider adapter."""

    def __init__(
        self,
        name: str,
        games: Optional[List[Game]] = None,
        found: bool = True,
        suggestions: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        fixture: Optional[NextGame] = None,
        fixture_error: Optional[Exception] = None,
    ):
        self.name = name
        self.games = games or []
        self.found = found
        self.suggestions = suggestions or []
        self.error = error
        self.fixture = fixture
        self.fixture_error = fixture_error
        self.lookups = 0
        self.next_game_calls = 0

    def identity(self) -> Identity:
        return Identity(
            provider=self.name,
            provider_id=f"{self.name}-1",
            canonical_name="luka doncic",
            display_name="Luka Dončić",
            team_abbrev="DAL",
        )

    async def lookup(self, name):
        self.lookups += 1
        if self.error is not None:
            raise self.error
        if not self.found:
            return None, self.suggestions
        return self.identity(), []

    async def game_log(self, identity, options=None):
        return list(self.games)

    async def next_game(self, team_abbrev):
        self.next_game_calls += 1
        if self.fixture_error is not None:
            raise self.fixture_error
        return self.fixture


def _resolver(providers, cache, **kwargs):
    return PlayerResolver(providers, cache, today=lambda: TODAY, **kwargs)


def _down(name):
    return ProviderUnavailable(f"{name} down", provider=name, status=503)


class TestResolve:
    """Test suite for PlayerResolver.resolve."""

    # Success Paths
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_first_provider_wins(self, cache):
        """Should stop at the first provider with a match and enough games."""
        first = FakeProvider("nba_stats", games=make_games([20, 25, 30, 22]))
        second = FakeProvider("espn", games=make_games([1, 2, 3]))
        identity, log = await _resolver([first, second], cache).resolve("Luka Doncic")

        assert identity.provider == "nba_stats"
        assert len(log) == 4
        assert second.lookups == 0

    @pytest.mark.asyncio
    async def test_log_is_most_recent_first_with_dense_sequence(self, cache):
        provider = FakeProvider("nba_stats", games=make_games([20, 25, 30, 22]))
        _, log = await _resolver([provider], cache).resolve("Luka Doncic")

        assert [g.sequence for g in log.games] == [1, 2, 3, 4]
        assert [g.points for g in log.games] == [22, 30, 25, 20]
        assert log.games[0].date > log.games[-1].date

    @pytest.mark.asyncio
    async def test_empty_log_falls_through(self, cache):
        """Should treat a matched player with no games as a partial failure."""
        first = FakeProvider("nba_stats", games=[])
        second = FakeProvider("espn", games=make_games([20, 25, 30]))
        identity, log = await _resolver([first, second], cache).resolve("Luka Doncic")

        assert identity.provider == "espn"
        assert len(log) == 3

    @pytest.mark.asyncio
    async def test_provider_error_falls_through(self, cache):
        first = FakeProvider("nba_stats", error=_down("nba_stats"))
        second = FakeProvider("espn", games=make_games([20, 25, 30]))
        identity, _ = await _resolver([first, second], cache).resolve("Luka Doncic")
        assert identity.provider == "espn"

    @pytest.mark.asyncio
    async def test_accent_insensitive_cache(self, cache):
        """Should serve 'Luka Doncic' from the entry cached for 'Luka Dončić'."""
        provider = FakeProvider("nba_stats", games=make_games([20, 25, 30]))
        resolver = _resolver([provider], cache)

        first = await resolver.resolve("Luka Dončić")
        second = await resolver.resolve("  luka   doncic ")
        assert first == second
        assert provider.lookups == 1

    # Stale Games
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_drops_games_older_than_window(self, cache):
        """Should drop games before the cutoff and renumber the rest."""
        recent = make_games([20, 25, 30])
        stale = Game(date=TODAY - timedelta(days=3 * 365), points=50)
        provider = FakeProvider("nba_stats", games=[stale] + recent)

        _, log = await _resolver([provider], cache).resolve("Luka Doncic")
        assert len(log) == 3
        assert all(g.points != 50 for g in log.games)
        assert [g.sequence for g in log.games] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_stale_games_can_make_log_too_short(self, cache):
        games = make_games([20, 25], end=TODAY) + [Game(date=date(2020, 1, 1), points=10)]
        provider = FakeProvider("nba_stats", games=games)
        with pytest.raises(InsufficientData) as exc_info:
            await _resolver([provider], cache).resolve("Luka Doncic")
        assert exc_info.value.games_found == 2

    # Final Errors
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_not_found_everywhere_carries_suggestions(self, cache):
        """Should raise NotFound with at most three suggestions."""
        providers = [
            FakeProvider("nba_stats", found=False, suggestions=["Luka Doncic", "Luka Samanic"]),
            FakeProvider("espn", found=False, suggestions=["Luka Doncic", "Luka Garza"]),
            FakeProvider("balldontlie", found=False, suggestions=["Lukas Kisunas"]),
        ]
        with pytest.raises(NotFound) as exc_info:
            await _resolver(providers, cache).resolve("Luka Doncik")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.suggestions == ["Luka Doncic", "Luka Samanic", "Luka Garza"]

    @pytest.mark.asyncio
    async def test_found_but_short_is_insufficient_data(self, cache):
        """Should prefer InsufficientData over NotFound and outages."""
        providers = [
            FakeProvider("nba_stats", error=_down("nba_stats")),
            FakeProvider("espn", games=make_games([20, 25])),
            FakeProvider("balldontlie", found=False),
        ]
        with pytest.raises(InsufficientData) as exc_info:
            await _resolver(providers, cache).resolve("Luka Doncic")
        assert exc_info.value.games_found == 2
        assert exc_info.value.required == 3

    @pytest.mark.asyncio
    async def test_all_down_is_provider_unavailable(self, cache):
        providers = [
            FakeProvider("nba_stats", error=_down("nba_stats")),
            FakeProvider("espn", found=False),
            FakeProvider("balldontlie", error=_down("balldontlie")),
        ]
        with pytest.raises(ProviderUnavailable) as exc_info:
            await _resolver(providers, cache).resolve("Luka Doncic")
        assert exc_info.value.provider == "balldontlie"
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, cache):
        """Should ask the providers again after a failed resolution."""
        provider = FakeProvider("nba_stats", found=False)
        resolver = _resolver([provider], cache)
        for _ in range(2):
            with pytest.raises(NotFound):
                await resolver.resolve("Luka Doncic")
        assert provider.lookups == 2

    @pytest.mark.asyncio
    async def test_empty_name(self, cache):
        resolver = _resolver([FakeProvider("nba_stats")], cache)
        with pytest.raises(InvalidInput):
            await resolver.resolve("   ")

    def test_requires_providers(self, cache):
        with pytest.raises(ValueError):
            PlayerResolver([], cache)


class TestGameLogAndNextGame:
    """Fresh logs and fixtures for an already resolved identity."""

    @pytest.mark.asyncio
    async def test_get_game_log_uses_identity_provider(self, cache):
        first = FakeProvider("nba_stats", games=make_games([1, 2, 3]))
        second = FakeProvider("espn", games=make_games([10, 20, 30, 40]))
        log = await _resolver([first, second], cache).get_game_log(second.identity())
        assert len(log) == 4

    @pytest.mark.asyncio
    async def test_get_game_log_unknown_provider(self, cache):
        resolver = _resolver([FakeProvider("nba_stats")], cache)
        foreign = FakeProvider("other").identity()
        with pytest.raises(InvalidInput):
            await resolver.get_game_log(foreign)

    @pytest.mark.asyncio
    async def test_get_game_log_too_short(self, cache):
        provider = FakeProvider("nba_stats", games=make_games([1]))
        with pytest.raises(InsufficientData):
            await _resolver([provider], cache).get_game_log(provider.identity())

    @pytest.mark.asyncio
    async def test_next_game_prefers_identity_provider(self, cache):
        """Should ask the identity's provider first and cache the fixture."""
        fixture = NextGame(team_abbrev="DAL", opponent_abbrev="PHX", date=TODAY, is_home=True)
        nba = FakeProvider("nba_stats", fixture=fixture)
        espn = FakeProvider("espn", fixture=fixture.model_copy(update={"opponent_abbrev": "DEN"}))
        resolver = _resolver([nba, espn], cache)

        game = await resolver.next_game(espn.identity())
        assert game.opponent_abbrev == "DEN"
        assert nba.next_game_calls == 0

        await resolver.next_game(espn.identity())
        assert espn.next_game_calls == 1

    @pytest.mark.asyncio
    async def test_next_game_skips_failing_provider(self, cache):
        fixture = NextGame(team_abbrev="DAL", opponent_abbrev="PHX", date=TODAY, is_home=False)
        nba = FakeProvider("nba_stats", fixture_error=_down("nba_stats"))
        espn = FakeProvider("espn", fixture=fixture)
        game = await _resolver([nba, espn], cache).next_game(nba.identity())
        assert game == fixture

    @pytest.mark.asyncio
    async def test_next_game_none_when_nothing_scheduled(self, cache):
        resolver = _resolver([FakeProvider("nba_stats"), FakeProvider("espn")], cache)
        assert await resolver.next_game(FakeProvider("nba_stats").identity()) is None

    @pytest.mark.asyncio
    async def test_next_game_without_team(self, cache):
        resolver = _resolver([FakeProvider("nba_stats")], cache)
        identity = Identity(provider="nba_stats", provider_id="1", canonical_name="free agent")
        assert await resolver.next_game(identity) is None


class TestMalformedProviderPayloads:
    """A provider answering with an unexpected shape is skipped like an outage."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [],
        "blocked",
        {"resultSets": [["not", "a", "dict"]]},
        {"resultSets": [{"headers": ["PERSON_ID", "DISPLAY_FIRST_LAST"], "rowSet": [7]}]},
    ])
    async def test_falls_through_to_next_provider(self, cache, mock_client_factory, fast_retry, body):
        client = mock_client_factory(lambda request: httpx.Response(200, json=body))
        nba = NbaStatsAdapter(client, retry_policy=fast_retry, today=lambda: TODAY)
        espn = FakeProvider("espn", games=make_games([20, 25, 30]))

        identity, log = await _resolver([nba, espn], cache).resolve("Luka Doncic")

        assert identity.provider == "espn"
        assert len(log) == 3
        assert espn.lookups == 1

    @pytest.mark.asyncio
    async def test_only_malformed_provider_is_unavailable(self, cache, mock_client_factory, fast_retry):
        client = mock_client_factory(lambda request: httpx.Response(200, json=[]))
        nba = NbaStatsAdapter(client, retry_policy=fast_retry, today=lambda: TODAY)
        with pytest.raises(ProviderUnavailable) as exc_info:
            await _resolver([nba], cache).resolve("Luka Doncic")
        assert exc_info.value.provider == "nba_stats"


class FakeInjuryProvider(FakeProvider):
    """FakeProvider that also serves a matchup injury report."""

    def __init__(self, name: str, injuries=None, injury_error: Optional[Exception] = None, **kwargs):
        super().__init__(name, **kwargs)
        self.injuries = injuries or {}
        self.injury_error = injury_error
        self.injury_calls = []

    async def get_matchup_injuries(self, team_abbrev, opponent_abbrev=None):
        self.injury_calls.append((team_abbrev, opponent_abbrev))
        if self.injury_error is not None:
            raise self.injury_error
        return (
            self.injuries.get(team_abbrev, []),
            self.injuries.get(opponent_abbrev, []) if opponent_abbrev else [],
        )


DONCIC_OUT = InjuryReport(player_name="Luka Dončić", status="Out", description="Calf")
BOOKER_GTD = InjuryReport(player_name="Devin Booker", status="Questionable", position="G")


class TestMatchupInjuries:
    """Injury reports for a fixture, cached per matchup."""

    @pytest.mark.asyncio
    async def test_first_feed_wins_and_providers_without_feed_skipped(self, cache):
        nba = FakeProvider("nba_stats")
        espn = FakeInjuryProvider("espn", injuries={"DAL": [DONCIC_OUT], "PHX": [BOOKER_GTD]})
        later = FakeInjuryProvider("balldontlie", injuries={"DAL": []})

        team, opponent = await _resolver([nba, espn, later], cache).matchup_injuries("DAL", "PHO")

        assert team == [DONCIC_OUT]
        assert opponent == [BOOKER_GTD]
        assert espn.injury_calls == [("DAL", "PHX")]
        assert later.injury_calls == []

    @pytest.mark.asyncio
    async def test_cached_per_matchup(self, cache, fake_clock):
        """Should serve a repeat matchup from cache until the injuries TTL passes."""
        espn = FakeInjuryProvider("espn", injuries={"DAL": [DONCIC_OUT]})
        resolver = _resolver([espn], cache)

        await resolver.matchup_injuries("DAL", "PHX")
        await resolver.matchup_injuries("dal", "PHX")
        assert len(espn.injury_calls) == 1

        await resolver.matchup_injuries("DAL")
        assert espn.injury_calls[-1] == ("DAL", None)
        assert len(espn.injury_calls) == 2

        fake_clock.advance(3601)
        await resolver.matchup_injuries("DAL", "PHX")
        assert len(espn.injury_calls) == 3

    @pytest.mark.asyncio
    async def test_failing_feed_falls_through(self, cache):
        espn = FakeInjuryProvider("espn", injury_error=_down("espn"))
        backup = FakeInjuryProvider("balldontlie", injuries={"DAL": [DONCIC_OUT]})
        team, _ = await _resolver([espn, backup], cache).matchup_injuries("DAL", "PHX")
        assert team == [DONCIC_OUT]

    @pytest.mark.asyncio
    async def test_empty_when_no_feed_answers(self, cache):
        """Should return empty lists and not cache the miss."""
        espn = FakeInjuryProvider("espn", injury_error=_down("espn"))
        resolver = _resolver([FakeProvider("nba_stats"), espn], cache)

        assert await resolver.matchup_injuries("DAL", "PHX") == ([], [])
        assert await resolver.matchup_injuries("DAL", "PHX") == ([], [])
        assert len(espn.injury_calls) == 2

    @pytest.mark.asyncio
    async def test_empty_without_any_feed(self, cache):
        resolver = _resolver([FakeProvider("nba_stats")], cache)
        assert await resolver.matchup_injuries("DAL") == ([], [])


class TestDefaultProviders:

    def test_breaker_settings_applied(self, mock_client_factory):
        """Should configure every provider breaker from settings."""
        client = mock_client_factory(lambda request: httpx.Response(404, request=request))
        settings = Settings(BREAKER_FAIL_MAX=2, BREAKER_RESET_TIMEOUT=15)
        providers = build_default_providers(client, settings)

        assert [p.name for p in providers] == ["nba_stats", "espn", "balldontlie"]
        for provider in providers:
            assert provider.breaker.fail_max == 2
            assert provider.breaker.reset_timeout == 15
