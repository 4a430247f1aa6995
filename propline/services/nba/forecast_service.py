"""
Forecast engine for player props.

Two methods, both deterministic for identical inputs:

Weighted average (default):
    weights   w_i = exp(-decay * age_i), age 0 = most recent game, normalized
    predicted = 0.5 * weighted_avg + 0.3 * recent_3_avg + 0.2 * overall_avg
    confidence = 40 * min(1, games / 10)
               + 40 * (1 - min(1, std(last 3) / max(recent_3_avg, 1)))
               + 20 * (1 - normalized_std)
    error_margin = std(all values)

Numeric model (when a ForecastContext is supplied):
    blends recent and season averages, scales by the player's expected
    minutes loss and by teammate/opponent absences, then derives a
    confidence level against the vegas line and an error margin from
    volatility. A player listed "out" short-circuits to exactly 0.

Standard deviations are population deviations (ddof=0).
"""
import hashlib
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from propline.core.cache import PREDICTIONS, TTLCache, make_key
from propline.core.errors import InsufficientData
from propline.core.logging import get_logger
from propline.models import Forecast, ForecastContext, Game, GameLog
from propline.services.core.prediction_ledger import fingerprint
from propline.services.nba import injury_model
from propline.services.nba.prop_values import PROP_ABBREVIATIONS, canonical_prop_type, prop_value
from propline.services.sync.utils.name_normalizer import player_name_matches

logger = get_logger(__name__)

DEFAULT_DECAY = 0.1
MIN_GAMES = 3

WEIGHTED_METHOD = "weighted_average"
NUMERIC_METHOD = "numeric_model"

# Blend weights for the weighted-average method
WEIGHTED_SHARE = 0.5
RECENT_SHARE = 0.3
OVERALL_SHARE = 0.2

# Blend weights for the numeric model
MODEL_RECENT_3_SHARE = 0.35
MODEL_RECENT_5_SHARE = 0.35
MODEL_SEASON_SHARE = 0.30

# Projected minutes may move the estimate at most this much either way
MINUTES_SCALE_BOUNDS = (0.5, 1.25)

CONFIDENCE_SCORES = {"High": 85.0, "Medium": 65.0, "Low": 45.0}

# Predictions within this distance of the line carry no recommendation
RECOMMENDATION_THRESHOLD = 0.5

GamesInput = Union[GameLog, Sequence[Game]]


def _chronological(games: GamesInput) -> List[Game]:
    if isinstance(games, GameLog):
        return games.chronological()
    return sorted(games, key=lambda g: (g.date, -g.sequence))


def _mean(values: np.ndarray) -> float:
    return float(values.mean()) if values.size else 0.0


def _std(values: np.ndarray) -> float:
    return float(values.std()) if values.size else 0.0


def recency_weights(count: int, decay: float = DEFAULT_DECAY) -> np.ndarray:
    """
    Normalized exponential weights, oldest first.

    Examples:
        >>> recency_weights(3, 0.1).round(3).tolist()
        [0.301, 0.332, 0.367]
    """
    ages = np.arange(count - 1, -1, -1, dtype=float)
    weights = np.exp(-decay * ages)
    return weights / weights.sum()


def confidence_level(predicted: float, vegas_line: Optional[float]) -> str:
    """High / Medium / Low from the gap between prediction and line."""
    if not vegas_line:
        return "Medium"
    diff_percent = abs(predicted - vegas_line) / vegas_line * 100
    if diff_percent <= 5:
        return "High"
    if diff_percent <= 15:
        return "Medium"
    return "Low"


def error_margin_from_volatility(volatility: float) -> float:
    """Map volatility (std as % of mean) to an error margin between 2.0 and 6.0."""
    if volatility < 20:
        return 2.0 + (volatility / 20) * 1.0
    if volatility < 50:
        return 3.0 + ((volatility - 20) / 30) * 1.5
    return 4.5 + min((volatility - 50) / 50, 1.0) * 1.5


def recommendation(predicted: float, line: Optional[float]) -> Optional[str]:
    """OVER / UNDER when the prediction clears the line by more than 0.5."""
    if not line:
        return None
    diff = predicted - line
    if diff > RECOMMENDATION_THRESHOLD:
        return "OVER"
    if diff < -RECOMMENDATION_THRESHOLD:
        return "UNDER"
    return None


class ForecastService:
    """
    Produce Forecasts from game logs.

    Args:
        cache: Optional cache for memoizing forecasts by game-log fingerprint
        decay: Recency decay constant for the weighted-average method
        min_games: Minimum games required to forecast
    """

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        decay: float = DEFAULT_DECAY,
        min_games: int = MIN_GAMES,
    ):
        self.cache = cache
        self.decay = decay
        self.min_games = min_games

    @classmethod
    def from_settings(cls, settings, cache: Optional[TTLCache] = None) -> "ForecastService":
        return cls(cache=cache, decay=settings.FORECAST_DECAY, min_games=settings.MIN_GAMES)

    def forecast(
        self,
        games: GamesInput,
        prop_type: str,
        context: Optional[ForecastContext] = None,
        player_name: Optional[str] = None,
    ) -> Forecast:
        """
        Forecast ``prop_type`` for the next game.

        Args:
            games: GameLog or games in any order
            prop_type: Prop type or alias ("points", "pra", "points+rebounds")
            context: Injury/market context; selects the numeric model when given
            player_name: Used to find the player in injury lists; defaults to
                the GameLog identity's display name

        Raises:
            InsufficientData: fewer than min_games games
            InvalidInput: unknown prop type
        """
        prop = canonical_prop_type(prop_type)
        ordered = _chronological(games)
        if len(ordered) < self.min_games:
            raise InsufficientData(
                f"Need at least {self.min_games} games to forecast {prop}, got {len(ordered)}",
                games_found=len(ordered),
                required=self.min_games,
            )

        if player_name is None and isinstance(games, GameLog):
            player_name = games.identity.display_name or games.identity.canonical_name

        cache_key = None
        if self.cache is not None:
            parts = [prop, fingerprint(ordered, prop)]
            if context is not None:
                digest = hashlib.sha1(f"{player_name}|{context.model_dump_json()}".encode())
                parts.append(digest.hexdigest()[:12])
            cache_key = make_key(PREDICTIONS, *parts)
            cached, found = self.cache.get(cache_key)
            if found:
                return cached.model_copy(deep=True)

        if context is None:
            result = self._weighted(ordered, prop)
        else:
            result = self._numeric(ordered, prop, context, player_name or "")

        logger.debug(
            f"Forecast {PROP_ABBREVIATIONS.get(prop, prop)} via {result.method}: "
            f"{result.predicted_value:.1f} ±{result.error_margin:.1f} "
            f"(confidence {result.confidence:.0f}, {result.games_used} games)"
        )
        if cache_key is not None:
            # Cached copies stay private; diagnostics is a mutable dict
            self.cache.set(cache_key, result.model_copy(deep=True), data_class=PREDICTIONS)
        return result

    # ==================== Weighted average ====================

    def _weighted(self, games: List[Game], prop: str) -> Forecast:
        values = np.array([prop_value(g, prop) for g in games], dtype=float)
        count = values.size

        weighted_avg = float(np.dot(values, recency_weights(count, self.decay)))
        recent = values[-3:]
        recent_avg = _mean(recent)
        recent_5_avg = _mean(values[-5:])
        overall_avg = _mean(values)

        predicted = max(
            0.0,
            WEIGHTED_SHARE * weighted_avg + RECENT_SHARE * recent_avg + OVERALL_SHARE * overall_avg,
        )

        std_dev = _std(values)
        recent_std = _std(recent)
        consistency = 1 - min(1.0, recent_std / max(recent_avg, 1.0))
        normalized_std = min(1.0, std_dev / max(overall_avg, 1.0))
        confidence = (
            40 * min(1.0, count / 10)
            + 40 * consistency
            + 20 * (1 - normalized_std)
        )
        confidence = float(np.clip(confidence, 0, 100))

        return Forecast(
            predicted_value=predicted,
            confidence=confidence,
            error_margin=std_dev,
            prop_type=prop,
            method=WEIGHTED_METHOD,
            games_used=count,
            diagnostics={
                "weighted_avg": weighted_avg,
                "recent_3_avg": recent_avg,
                "recent_5_avg": recent_5_avg,
                "overall_avg": overall_avg,
                "std_dev": std_dev,
                "recent_3_std": recent_std,
                "consistency": consistency,
                "normalized_std_dev": normalized_std,
                "decay": self.decay,
            },
        )

    # ==================== Numeric model ====================

    def build_features(
        self,
        games: List[Game],
        prop: str,
        context: ForecastContext,
        player_name: str,
    ) -> Dict[str, object]:
        """Model inputs from chronological games plus context."""
        values = np.array([prop_value(g, prop) for g in games], dtype=float)
        season_avg = _mean(values)
        std_dev = _std(values)

        played = np.array([g.minutes for g in games if g.minutes > 0], dtype=float)
        avg_minutes = _mean(played) if played.size else None
        recent_minutes = _mean(played[-3:]) if played.size else None

        avg_points = _mean(np.array([g.points for g in games], dtype=float))
        usage = context.usage_rate
        if usage is None and avg_minutes and avg_points > 0:
            usage = min(100.0, max(0.0, (avg_points / avg_minutes) * 2.5))

        status = injury_model.normalize_status(context.injury_status, context.injury_description)
        reduction = injury_model.minutes_reduction(status, context.injury_description)
        if status == injury_model.ACTIVE and player_name:
            listed = injury_model.player_injury_status(context.teammate_injuries, player_name)
            status, reduction = listed["status"], listed["minutes_reduction"]

        teammates = [
            i for i in context.teammate_injuries
            if not (player_name and player_name_matches(player_name, i.player_name))
        ]

        return {
            "recent_3_avg": _mean(values[-3:]),
            "recent_5_avg": _mean(values[-5:]),
            "season_avg": season_avg,
            "std_dev": std_dev,
            "volatility": (std_dev / season_avg * 100) if season_avg > 0 else 0.0,
            "avg_minutes": avg_minutes,
            "minutes": context.minutes or recent_minutes or avg_minutes,
            "usage_rate": usage,
            "injury_status": status,
            "minutes_reduction": reduction,
            "teammate_adjustment": injury_model.teammate_injury_adjustment(player_name, teammates),
            "opponent_adjustment": injury_model.opponent_injury_adjustment(context.opponent_injuries),
            "opponent_flags": injury_model.opponent_absence_flags(context.opponent_injuries, prop),
            "vegas_line": context.vegas_line,
        }

    def _numeric(
        self,
        games: List[Game],
        prop: str,
        context: ForecastContext,
        player_name: str,
    ) -> Forecast:
        features = self.build_features(games, prop, context, player_name)

        if features["injury_status"] == injury_model.OUT:
            logger.info(f"{player_name or 'Player'} is listed out - forecasting 0 {prop}")
            return Forecast(
                predicted_value=0.0,
                confidence=CONFIDENCE_SCORES["High"],
                error_margin=0.0,
                prop_type=prop,
                method=NUMERIC_METHOD,
                games_used=len(games),
                confidence_level="High",
                recommendation=None,
                diagnostics=features,
            )

        base = (
            MODEL_RECENT_3_SHARE * features["recent_3_avg"]
            + MODEL_RECENT_5_SHARE * features["recent_5_avg"]
            + MODEL_SEASON_SHARE * features["season_avg"]
        )

        minutes_scale = 1.0
        if context.minutes and features["avg_minutes"]:
            low, high = MINUTES_SCALE_BOUNDS
            minutes_scale = min(high, max(low, context.minutes / features["avg_minutes"]))

        predicted = (
            base
            * (1 - features["minutes_reduction"] / 100)
            * minutes_scale
            * features["teammate_adjustment"]
            * features["opponent_adjustment"]
        )
        predicted = max(0.0, round(predicted, 1))

        level = confidence_level(predicted, context.vegas_line)
        return Forecast(
            predicted_value=predicted,
            confidence=CONFIDENCE_SCORES[level],
            error_margin=error_margin_from_volatility(features["volatility"]),
            prop_type=prop,
            method=NUMERIC_METHOD,
            games_used=len(games),
            confidence_level=level,
            recommendation=recommendation(predicted, context.vegas_line),
            diagnostics={**features, "base": base, "minutes_scale": minutes_scale},
        )
