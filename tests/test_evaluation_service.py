"""Unit tests for EvaluationService.

Test Strategy:
1. Pending entries get the actual value from the game on the forecast date
2. Missing games are skipped and retried on the next run
3. Resolver failures are reported per entry without stopping the run
4. Manual outcomes by player and game date
"""
from datetime import datetime, timedelta, timezone

import pytest

from propline.core.errors import NotFound
from propline.models import Forecast, GameLog, Identity, NextGame
from propline.services.core.evaluation_service import EvaluationService
from propline.services.core.prediction_ledger import PredictionLedger

from conftest import SAMPLE_POINTS, TODAY, make_games

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeResolver:
    """Resolver returning canned logs, or raising for unknown players."""

    def __init__(self, logs):
        self.logs = logs
        self.calls = []

    def _identity(self, name):
        return Identity(provider="nba_stats", provider_id=name, canonical_name=name.lower(), display_name=name)

    async def resolve(self, name):
        self.calls.append(name)
        if name not in self.logs:
            raise NotFound(f"No provider found {name!r}", suggestions=[])
        identity = self._identity(name)
        return identity, GameLog(identity=identity, games=tuple(self.logs[name]))

    async def get_game_log(self, identity, options=None):
        games = self.logs[identity.provider_id]
        return GameLog(identity=identity, games=tuple(sorted(games, key=lambda g: g.date, reverse=True)))


def forecast(predicted=25.0, margin=4.0, prop="points"):
    return Forecast(
        predicted_value=predicted, confidence=70, error_margin=margin,
        prop_type=prop, method="weighted_average", games_used=10,
    )


def fixture_on(day):
    return NextGame(team_abbrev="LAL", opponent_abbrev="BOS", date=day, is_home=True)


@pytest.fixture
def ledger():
    return PredictionLedger(clock=lambda: NOW - timedelta(days=3))


@pytest.fixture
def games():
    # Newest game (23 points) on TODAY - 2 days, then every other day
    return make_games(SAMPLE_POINTS)


class TestEvaluatePending:
    """Test suite for EvaluationService.evaluate_pending."""

    @pytest.mark.asyncio
    async def test_mixed_run(self, ledger, games):
        """Should evaluate, skip and fail entries independently."""
        game_day = TODAY - timedelta(days=2)
        hit = ledger.record("LeBron James", forecast(25.0), games, fixture_on(game_day))
        missing = ledger.record("Stephen Curry", forecast(28.0), games, fixture_on(game_day - timedelta(days=1)))
        unknown = ledger.record("Nobody Known", forecast(10.0), games, fixture_on(game_day))

        resolver = FakeResolver({"LeBron James": games, "Stephen Curry": games})
        summary = await EvaluationService(ledger, resolver).evaluate_pending(NOW)

        assert (summary["evaluated"], summary["skipped"], summary["failed"]) == (1, 1, 1)
        by_id = {r["id"]: r for r in summary["results"]}

        assert by_id[hit]["status"] == "evaluated"
        assert by_id[hit]["actual"] == 23.0
        assert by_id[hit]["error"] == 2.0
        assert by_id[hit]["accuracy"] == 75
        assert by_id[hit]["within_margin"] is True

        assert by_id[missing]["status"] == "skipped"
        assert "Game not found" in by_id[missing]["reason"]

        assert by_id[unknown]["status"] == "failed"
        assert by_id[unknown]["reason"]["kind"] == "not_found"

        assert ledger.get(hit).actual_value == 23.0
        assert ledger.get(missing).evaluated is False

    @pytest.mark.asyncio
    async def test_combined_prop_actual(self, ledger, games):
        entry_id = ledger.record(
            "LeBron James", forecast(37.0, prop="points_rebounds_assists"), games, fixture_on(TODAY - timedelta(days=2))
        )
        resolver = FakeResolver({"LeBron James": games})
        await EvaluationService(ledger, resolver).evaluate_pending(NOW)
        # 23 points + 8 rebounds + 6 assists
        assert ledger.get(entry_id).actual_value == 37.0

    @pytest.mark.asyncio
    async def test_second_run_only_sees_remaining(self, ledger, games):
        game_day = TODAY - timedelta(days=2)
        ledger.record("LeBron James", forecast(), games, fixture_on(game_day))
        ledger.record("Stephen Curry", forecast(), games, fixture_on(game_day - timedelta(days=1)))
        resolver = FakeResolver({"LeBron James": games, "Stephen Curry": games})
        service = EvaluationService(ledger, resolver)

        await service.evaluate_pending(NOW)
        second = await service.evaluate_pending(NOW)
        assert [r["player"] for r in second["results"]] == ["Stephen Curry"]

    @pytest.mark.asyncio
    async def test_nothing_pending(self, ledger, games):
        """Should not touch the resolver for games inside the delay window."""
        ledger.record("LeBron James", forecast(), games, fixture_on(TODAY))
        resolver = FakeResolver({})
        summary = await EvaluationService(ledger, resolver).evaluate_pending(NOW)
        assert summary == {"evaluated": 0, "skipped": 0, "failed": 0, "results": []}
        assert resolver.calls == []


class TestEvaluateByGame:

    def test_attaches_outcome(self, ledger, games):
        entry_id = ledger.record("Luka Dončić", forecast(30.0), games, fixture_on(TODAY))
        service = EvaluationService(ledger, FakeResolver({}))

        entry = service.evaluate_by_game("luka doncic", TODAY, 33)
        assert entry.id == entry_id
        assert entry.metrics.absolute_error == 3.0

    def test_no_entry(self, ledger):
        service = EvaluationService(ledger, FakeResolver({}))
        with pytest.raises(NotFound):
            service.evaluate_by_game("Luka Doncic", TODAY, 33)

    def test_pending_view(self, ledger, games):
        ledger.record("LeBron James", forecast(), games, fixture_on(TODAY - timedelta(days=2)))
        service = EvaluationService(ledger, FakeResolver({}))
        assert len(service.pending(NOW)) == 1
