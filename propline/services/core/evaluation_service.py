"""
Outcome evaluation for recorded forecasts.

Walks ledger entries whose game is more than a day in the past, pulls the
player's latest game log, finds the game played on the forecast's game
date and attaches the actual value. Entries whose game cannot be found
yet are skipped and picked up again on the next run.
"""
import asyncio
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from propline.core.errors import AlreadyEvaluated, NotFound, PropLineError
from propline.core.logging import get_logger
from propline.models import LedgerEntry
from propline.services.core.prediction_ledger import PredictionLedger
from propline.services.nba.prop_values import prop_value
from propline.services.sync.matchers.player_resolver import PlayerResolver

logger = get_logger(__name__)


class EvaluationService:
    """
    Attach actual outcomes to pending ledger entries.

    Args:
        ledger: Prediction ledger to evaluate
        resolver: Resolver used to fetch fresh game logs
        pause: Seconds to wait between players, to stay under provider rate limits
    """

    def __init__(self, ledger: PredictionLedger, resolver: PlayerResolver, pause: float = 0.0):
        self.ledger = ledger
        self.resolver = resolver
        self.pause = pause

    async def evaluate_pending(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Evaluate every pending entry.

        Returns:
            {"evaluated": n, "skipped": n, "failed": n, "results": [...]}
            with one result per entry carrying a status and a reason.
        """
        pending = self.ledger.pending_evaluations(now)
        summary: Dict[str, Any] = {"evaluated": 0, "skipped": 0, "failed": 0, "results": []}
        if not pending:
            logger.info("No pending predictions to evaluate")
            return summary

        logger.info(f"Evaluating {len(pending)} pending predictions")
        for index, entry in enumerate(pending):
            if index and self.pause:
                await asyncio.sleep(self.pause)
            result = await self._evaluate_entry(entry)
            summary[result["status"]] += 1
            summary["results"].append(result)

        logger.info(
            f"Evaluation done: {summary['evaluated']} evaluated, "
            f"{summary['skipped']} skipped, {summary['failed']} failed"
        )
        return summary

    async def _evaluate_entry(self, entry: LedgerEntry) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": entry.id, "player": entry.player_name}
        game_date = entry.next_game.date

        try:
            identity, _ = await self.resolver.resolve(entry.player_name)
            log = await self.resolver.get_game_log(identity)
        except PropLineError as e:
            logger.warning(f"Evaluation of {entry.id} failed: {e.message}")
            return {**result, "status": "failed", "reason": e.to_dict()}

        game = next((g for g in log.games if g.date == game_date), None)
        if game is None:
            available = ", ".join(g.date.isoformat() for g in log.games[:5])
            logger.info(f"No game on {game_date} for {entry.player_name} yet (latest: {available})")
            return {**result, "status": "skipped", "reason": f"Game not found for date {game_date}"}

        actual = prop_value(game, entry.forecast.prop_type)
        try:
            updated = self.ledger.attach_outcome(entry.id, actual)
        except AlreadyEvaluated:
            return {**result, "status": "skipped", "reason": "Already evaluated"}

        return {
            **result,
            "status": "evaluated",
            "predicted": entry.forecast.predicted_value,
            "actual": actual,
            "error": updated.metrics.absolute_error,
            "accuracy": updated.metrics.accuracy,
            "within_margin": updated.metrics.within_margin,
        }

    def evaluate_by_game(self, player_name: str, game_date: date, actual_value: float) -> LedgerEntry:
        """
        Attach a known outcome to the player's unevaluated entry for a game date.

        Raises:
            NotFound: no unevaluated entry for that player and date
        """
        entry = self.ledger.find_by_game(player_name, game_date)
        if entry is None:
            raise NotFound(f"No pending prediction for {player_name} on {game_date}")
        return self.ledger.attach_outcome(entry.id, actual_value)

    def pending(self, now: Optional[datetime] = None) -> List[LedgerEntry]:
        return self.ledger.pending_evaluations(now)
