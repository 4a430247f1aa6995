"""
Compare orchestration: stats + forecast vs. market line for one player/prop.

Branches run concurrently:
- stats: resolve identity and recent game log
- forecast: waits on stats, then forecasts the prop. With ``with_injuries``
  and no caller context, it also waits on next_game and builds the
  numeric-model context from the matchup's injury report
- next_game: waits on stats, then looks up the team's next fixture
- odds: awaits the caller's odds payload (if it is awaitable) and picks
  the best line

The caller-facing deadline bounds how long compare() waits on the group.
Branches still running at the deadline are left to finish in the
background and their results are discarded. A failed or unfinished branch
leaves its fields as None and adds an entry to CompareResult.errors.
"""
import asyncio
import inspect
from typing import Any, Dict, Optional

from propline.core.errors import PropLineError, ProviderUnavailable
from propline.core.logging import correlation_scope, get_logger
from propline.models import CompareResult, ForecastContext, Identity, NextGame
from propline.services.core.prediction_ledger import PredictionLedger
from propline.services.nba.forecast_service import ForecastService
from propline.services.nba.player_props_parser import PlayerPropsParser, event_teams
from propline.services.nba.prop_values import canonical_prop_type
from propline.services.sync.matchers.player_resolver import PlayerResolver
from propline.services.sync.utils.name_normalizer import team_alias

logger = get_logger(__name__)

DEFAULT_DEADLINE = 20.0

# Forecasts this close to the line are a push
PUSH_THRESHOLD = 0.5

BRANCHES = ("stats", "forecast", "next_game", "odds")


def recommend(predicted: float, line: float) -> str:
    """
    Examples:
        >>> recommend(27.2, 25.5)
        'OVER'
        >>> recommend(25.8, 25.5)
        'PUSH'
    """
    edge = predicted - line
    if abs(edge) <= PUSH_THRESHOLD:
        return "PUSH"
    return "OVER" if edge > 0 else "UNDER"


def _retrieve_late_result(task: "asyncio.Task[Any]") -> None:
    """Consume the outcome of a branch that finished after the deadline."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Discarded late branch {task.get_name()} failed: {exc!r}")


class CompareService:
    """
    Combine resolver, forecast engine and props parser for one request.

    Args:
        resolver: Identity & game-log resolver
        forecaster: Forecast engine
        parser: Prop-market resolver
        ledger: When given, forecasts can be recorded for later evaluation
        deadline: Default seconds to wait on the concurrent branches
    """

    def __init__(
        self,
        resolver: PlayerResolver,
        forecaster: ForecastService,
        parser: PlayerPropsParser,
        ledger: Optional[PredictionLedger] = None,
        deadline: float = DEFAULT_DEADLINE,
    ):
        self.resolver = resolver
        self.forecaster = forecaster
        self.parser = parser
        self.ledger = ledger
        self.deadline = deadline

    @classmethod
    def from_settings(
        cls,
        resolver: PlayerResolver,
        forecaster: ForecastService,
        parser: PlayerPropsParser,
        settings,
        ledger: Optional[PredictionLedger] = None,
    ) -> "CompareService":
        return cls(resolver, forecaster, parser, ledger=ledger, deadline=settings.COMPARE_DEADLINE)

    async def _injury_context(
        self,
        identity: Identity,
        next_game_task: "asyncio.Task[Optional[NextGame]]",
    ) -> Optional[ForecastContext]:
        """
        Numeric-model context from the matchup injury report.

        None (weighted-average method) when the player has no team or
        nobody on either side is listed.
        """
        if not identity.team_abbrev:
            return None
        try:
            fixture = await next_game_task
        except PropLineError:
            fixture = None
        opponent = fixture.opponent_abbrev if fixture is not None else None

        teammates, opponents = await self.resolver.matchup_injuries(identity.team_abbrev, opponent)
        if not teammates and not opponents:
            return None
        logger.info(
            f"Injury context for {identity.display_name or identity.canonical_name}: "
            f"{len(teammates)} teammates, {len(opponents)} opponents listed"
        )
        return ForecastContext(teammate_injuries=teammates, opponent_injuries=opponents)

    async def compare(
        self,
        player_name: str,
        prop_type: str,
        odds_payload: Any = None,
        deadline: Optional[float] = None,
        context: Optional[ForecastContext] = None,
        record: bool = False,
        with_injuries: bool = False,
    ) -> CompareResult:
        """
        Build a CompareResult for a player and prop.

        Args:
            player_name: Player name as typed by the user
            prop_type: Prop type or alias
            odds_payload: Odds payload, or an awaitable resolving to one
            deadline: Seconds to wait; defaults to the service deadline
            context: Injury/market context for the numeric model
            record: Record the forecast in the ledger
            with_injuries: Without ``context``, build one from the matchup
                injury report

        Raises:
            InvalidInput: unknown prop type
        """
        prop = canonical_prop_type(prop_type)
        timeout = self.deadline if deadline is None else deadline
        result = CompareResult(player_name=player_name, prop_type=prop)

        with correlation_scope() as cid:
            logger.info(f"Compare {player_name!r} {prop} (deadline {timeout}s, correlation {cid})")

            stats_task = asyncio.create_task(self.resolver.resolve(player_name), name="stats")

            async def next_game_branch():
                identity, _ = await stats_task
                return await self.resolver.next_game(identity)

            next_game_task = asyncio.create_task(next_game_branch(), name="next_game")

            async def forecast_branch():
                identity, log = await stats_task
                ctx = context
                if ctx is None and with_injuries:
                    ctx = await self._injury_context(identity, next_game_task)
                return self.forecaster.forecast(log, prop, context=ctx)

            async def odds_branch():
                payload = await odds_payload if inspect.isawaitable(odds_payload) else odds_payload
                if payload is None:
                    return None, []
                return self.parser.best_line(payload, player_name, prop), event_teams(payload)

            tasks: Dict[str, asyncio.Task] = {
                "stats": stats_task,
                "forecast": asyncio.create_task(forecast_branch(), name="forecast"),
                "next_game": next_game_task,
                "odds": asyncio.create_task(odds_branch(), name="odds"),
            }

            _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
            for task in pending:
                task.add_done_callback(_retrieve_late_result)

            values: Dict[str, Any] = {}
            for name in BRANCHES:
                task = tasks[name]
                if task in pending:
                    logger.warning(f"Compare branch {name} missed the {timeout}s deadline")
                    result.errors[name] = ProviderUnavailable(
                        f"{name} did not finish within {timeout}s"
                    ).to_dict()
                    continue
                exc = task.exception()
                if exc is None:
                    values[name] = task.result()
                elif isinstance(exc, PropLineError):
                    # Dependent branches repeat the stats failure; report it once
                    if name in ("forecast", "next_game") and exc is tasks["stats"].exception():
                        continue
                    logger.warning(f"Compare branch {name} failed: {exc.message}")
                    result.errors[name] = exc.to_dict()
                else:
                    raise exc

            if "stats" in values:
                result.identity, log = values["stats"]
                result.games = list(log.games)
            result.forecast = values.get("forecast")
            result.next_game = values.get("next_game")
            if "odds" in values:
                result.best_line, teams = values["odds"]
                self._check_event(result, teams)

            if result.forecast is not None and result.best_line is not None:
                result.edge = round(result.forecast.predicted_value - result.best_line.line, 2)
                result.recommendation = recommend(result.forecast.predicted_value, result.best_line.line)

            if record and self.ledger is not None and result.forecast is not None and result.games:
                result.ledger_id = self.ledger.record(
                    result.identity.display_name or player_name,
                    result.forecast,
                    result.games,
                    result.next_game,
                )

        return result

    @staticmethod
    def _check_event(result: CompareResult, teams) -> None:
        """Warn when the odds payload is for a game the player's team is not in."""
        if not teams or result.identity is None or not result.identity.team_abbrev:
            return
        team = team_alias(result.identity.team_abbrev)
        if team not in teams:
            logger.warning(
                f"Odds payload teams {teams} do not include {result.player_name}'s team {team}"
            )
