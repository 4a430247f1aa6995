"""
Canonical models for the resolution pipeline.

Usage:
    from propline.models import Game, GameLog, Forecast, PropLine
"""
from propline.models.schemas import (
    CompareResult,
    Forecast,
    ForecastContext,
    Game,
    GameLog,
    GameLogOptions,
    Identity,
    InjuryReport,
    LedgerEntry,
    NextGame,
    OutcomeMetrics,
    PropLine,
)

__all__ = [
    "CompareResult",
    "Forecast",
    "ForecastContext",
    "Game",
    "GameLog",
    "GameLogOptions",
    "Identity",
    "InjuryReport",
    "LedgerEntry",
    "NextGame",
    "OutcomeMetrics",
    "PropLine",
]
