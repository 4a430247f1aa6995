"""Provider adapters that parse upstream stats payloads into canonical models.

Available adapters, in resolver fallback order:
- nba_stats_adapter: stats.nba.com (authoritative, tabular rows)
- espn_adapter: ESPN public API (roster/schedule fallback, object rows)
- balldontlie_adapter: balldontlie.io (legacy/basic)

Base class:
- BaseProviderAdapter: shared retry, circuit breaker, ranking and merging
"""
from propline.services.sync.adapters.base_adapter import (
    BaseProviderAdapter,
    parse_game_date,
    rank_candidates,
    renumber_games,
)
from propline.services.sync.adapters.nba_stats_adapter import NbaStatsAdapter
from propline.services.sync.adapters.espn_adapter import EspnAdapter
from propline.services.sync.adapters.balldontlie_adapter import BallDontLieAdapter

__all__ = [
    "BaseProviderAdapter",
    "parse_game_date",
    "rank_candidates",
    "renumber_games",
    "NbaStatsAdapter",
    "EspnAdapter",
    "BallDontLieAdapter",
]
