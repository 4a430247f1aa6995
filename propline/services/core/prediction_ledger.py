"""
Prediction ledger: append-only record of forecasts and their outcomes.

Storage is a JSON Lines file. Each line is one event:
    {"event": "record", "entry": {...LedgerEntry...}}
    {"event": "outcome", "id": ..., "actual_value": ..., "evaluated_at": ..., "metrics": {...}}

Lines are only ever appended; the in-memory view is rebuilt by replaying
them on startup. An entry is mutated exactly once (outcome attached) and
never deleted.

All reads and writes go through one lock, so the ledger is safe to share
between concurrent requests in one process.
"""
import hashlib
import json
import threading
import uuid
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from propline.core.errors import AlreadyEvaluated, NotFound
from propline.core.logging import get_logger
from propline.models import Forecast, Game, GameLog, LedgerEntry, NextGame, OutcomeMetrics
from propline.services.nba.prop_values import prop_value
from propline.services.sync.utils.name_normalizer import normalize
from propline.utils.season import UTC

logger = get_logger(__name__)

DEFAULT_EVALUATION_DELAY_HOURS = 24


def fingerprint(games: Union[GameLog, Iterable[Game]], prop_type: str) -> str:
    """
    Order-preserving hash of (date, value) pairs, oldest game first.

    Two forecasts built from identical games share a fingerprint.
    """
    ordered = games.chronological() if isinstance(games, GameLog) else sorted(
        games, key=lambda g: (g.date, -g.sequence)
    )
    payload = "|".join(f"{g.date.isoformat()}={prop_value(g, prop_type):g}" for g in ordered)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]


def outcome_metrics(forecast: Forecast, actual_value: float) -> OutcomeMetrics:
    """
    Accuracy of a forecast against the actual value.

    accuracy is 100 for an exact hit and falls to 0 at twice the error
    margin. With no margin it falls back to 100 - percentage error.
    """
    predicted = forecast.predicted_value
    margin = forecast.error_margin
    error = abs(predicted - actual_value)
    percentage_error = (error / predicted) * 100 if predicted > 0 else None

    if margin > 0:
        accuracy = round((1 - min(error / (margin * 2), 1)) * 100)
    else:
        accuracy = max(0, round(100 - min(percentage_error or 0, 100)))

    return OutcomeMetrics(
        absolute_error=error,
        percentage_error=percentage_error,
        within_margin=error <= margin,
        within_2x_margin=error <= margin * 2,
        accuracy=int(accuracy),
    )


def _now_utc() -> datetime:
    return datetime.now(UTC)


class PredictionLedger:
    """
    Append-only forecast ledger.

    Args:
        path: JSONL file; None keeps the ledger in memory only
        clock: Source of "now" for created_at/evaluated_at and pending checks
        evaluation_delay_hours: Hours after the game before an entry is pending
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        clock: Callable[[], datetime] = _now_utc,
        evaluation_delay_hours: int = DEFAULT_EVALUATION_DELAY_HOURS,
    ):
        self.path = Path(path) if path else None
        self.clock = clock
        self.evaluation_delay = timedelta(hours=evaluation_delay_hours)
        self._lock = threading.Lock()
        self._entries: Dict[str, LedgerEntry] = {}
        if self.path is not None:
            self._load()

    @classmethod
    def from_settings(cls, settings) -> "PredictionLedger":
        return cls(settings.LEDGER_PATH, evaluation_delay_hours=settings.EVALUATION_DELAY_HOURS)

    # ==================== Storage ====================

    def _load(self) -> None:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self._apply(json.loads(line))
                except (ValueError, KeyError) as e:
                    logger.error(f"Skipping corrupt ledger line {lineno} in {self.path}: {e}")
        logger.info(f"Loaded {len(self._entries)} ledger entries from {self.path}")

    def _apply(self, event: Dict[str, Any]) -> None:
        kind = event["event"]
        if kind == "record":
            entry = LedgerEntry.model_validate(event["entry"])
            self._entries[entry.id] = entry
        elif kind == "outcome":
            entry = self._entries[event["id"]]
            entry.actual_value = event["actual_value"]
            entry.evaluated_at = datetime.fromisoformat(event["evaluated_at"])
            entry.metrics = OutcomeMetrics.model_validate(event["metrics"])
        else:
            raise KeyError(f"unknown event {kind!r}")

    def _append(self, event: Dict[str, Any]) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event, separators=(",", ":")) + "\n")

    # ==================== Operations ====================

    def record(
        self,
        player_name: str,
        forecast: Forecast,
        game_log: Union[GameLog, Iterable[Game]],
        next_game: Optional[NextGame] = None,
    ) -> str:
        """Store a forecast and return its generated id."""
        entry = LedgerEntry(
            id=uuid.uuid4().hex,
            player_name=player_name,
            forecast=forecast,
            game_log_fingerprint=fingerprint(game_log, forecast.prop_type),
            next_game=next_game,
            created_at=self.clock(),
        )
        with self._lock:
            self._append({"event": "record", "entry": entry.model_dump(mode="json")})
            self._entries[entry.id] = entry
        logger.info(
            f"Recorded {forecast.prop_type} forecast {forecast.predicted_value:.1f} "
            f"for {player_name} ({entry.id})"
        )
        return entry.id

    def attach_outcome(self, entry_id: str, actual_value: float) -> LedgerEntry:
        """
        Attach the actual value to an entry. Allowed once per entry.

        Raises:
            NotFound: unknown id
            AlreadyEvaluated: outcome already attached
        """
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise NotFound(f"No ledger entry {entry_id}")
            if entry.evaluated:
                raise AlreadyEvaluated(entry_id)

            metrics = outcome_metrics(entry.forecast, actual_value)
            evaluated_at = self.clock()
            self._append({
                "event": "outcome",
                "id": entry_id,
                "actual_value": actual_value,
                "evaluated_at": evaluated_at.isoformat(),
                "metrics": metrics.model_dump(mode="json"),
            })
            entry.actual_value = actual_value
            entry.evaluated_at = evaluated_at
            entry.metrics = metrics

        logger.info(
            f"Outcome for {entry.player_name} ({entry_id}): actual {actual_value}, "
            f"error {metrics.absolute_error:.1f}, accuracy {metrics.accuracy}%"
        )
        return entry

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def entries(self) -> List[LedgerEntry]:
        with self._lock:
            return list(self._entries.values())

    def pending_evaluations(self, now: Optional[datetime] = None) -> List[LedgerEntry]:
        """Unevaluated entries whose game date is more than the delay in the past."""
        cutoff = (now or self.clock()) - self.evaluation_delay
        pending = []
        for entry in self.entries():
            if entry.evaluated or entry.next_game is None:
                continue
            game_start = datetime.combine(entry.next_game.date, time.min, tzinfo=UTC)
            if game_start < cutoff:
                pending.append(entry)
        return pending

    def find_by_game(self, player_name: str, game_date: date) -> Optional[LedgerEntry]:
        """First unevaluated entry for a player and game date."""
        target = normalize(player_name)
        for entry in self.entries():
            if (
                not entry.evaluated
                and entry.next_game is not None
                and entry.next_game.date == game_date
                and normalize(entry.player_name) == target
            ):
                return entry
        return None

    def accuracy_stats(self) -> Dict[str, Any]:
        """Aggregate accuracy over evaluated entries."""
        entries = self.entries()
        evaluated = [e for e in entries if e.evaluated and e.metrics is not None]
        stats: Dict[str, Any] = {
            "total_predictions": len(entries),
            "evaluated": len(evaluated),
            "pending": len(entries) - len(evaluated),
        }
        if not evaluated:
            return stats

        count = len(evaluated)
        stats.update(
            average_error=round(sum(e.metrics.absolute_error for e in evaluated) / count, 1),
            average_accuracy=round(sum(e.metrics.accuracy for e in evaluated) / count, 1),
            within_margin_rate=round(sum(e.metrics.within_margin for e in evaluated) / count * 100),
            within_2x_margin_rate=round(sum(e.metrics.within_2x_margin for e in evaluated) / count * 100),
        )
        return stats
