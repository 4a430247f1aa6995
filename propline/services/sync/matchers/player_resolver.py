"""Player resolver: one canonical identity and game log per player name.

Providers are tried in a fixed order:
1. nba_stats (authoritative official stats)
2. espn (roster/schedule fallback)
3. balldontlie (legacy/basic)

The first provider returning a matched identity AND enough recent games
wins. A provider that finds the player but returns an empty (or too short)
log is a partial failure and the next provider is tried. Only when every
provider has failed does the resolver raise:

- InsufficientData if any provider found the player
- NotFound (with fuzzy suggestions) if every provider answered "no such player"
- ProviderUnavailable otherwise

Resolved (identity, log) pairs are cached by normalized name. Fixtures and
matchup injury lists are cached per team.
"""
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from propline.core.cache import INJURIES, NEXT_GAME, PLAYER_STATS, TTLCache, make_key
from propline.core.errors import (
    InsufficientData,
    InvalidInput,
    NotFound,
    PropLineError,
    ProviderUnavailable,
)
from propline.core.logging import get_logger
from propline.core.retry import RetryPolicy
from propline.models import GameLog, GameLogOptions, Identity, InjuryReport, NextGame
from propline.services.sync.adapters import (
    BallDontLieAdapter,
    BaseProviderAdapter,
    EspnAdapter,
    NbaStatsAdapter,
    renumber_games,
)
from propline.services.sync.utils.name_normalizer import normalize, team_alias
from propline.utils.season import recent_cutoff, today_utc

logger = get_logger(__name__)

MIN_GAMES = 3
RECENT_WINDOW_YEARS = 2


def build_default_providers(client: httpx.AsyncClient, settings) -> List[BaseProviderAdapter]:
    """Provider chain in fallback order, configured from Settings."""
    common = dict(
        retry_policy=RetryPolicy.from_settings(settings),
        timeout=settings.PROVIDER_TIMEOUT,
        lookahead_days=settings.NEXT_GAME_LOOKAHEAD_DAYS,
        breaker_fail_max=settings.BREAKER_FAIL_MAX,
        breaker_reset_timeout=settings.BREAKER_RESET_TIMEOUT,
    )
    return [
        NbaStatsAdapter(client, base_url=settings.NBA_STATS_BASE_URL, **common),
        EspnAdapter(client, base_url=settings.ESPN_BASE_URL, **common),
        BallDontLieAdapter(
            client,
            base_url=settings.BALLDONTLIE_BASE_URL,
            api_key=settings.BALLDONTLIE_API_KEY,
            **common,
        ),
    ]


class PlayerResolver:
    """
    Resolve a player name to (Identity, GameLog) across providers.

    Args:
        providers: Adapters in fallback order
        cache: Shared TTL cache
        options: History to request from providers
        min_games: Minimum recent games required
        recent_years: Games older than this many years are dropped
        today: Date source; injectable for tests
    """

    def __init__(
        self,
        providers: Sequence[BaseProviderAdapter],
        cache: TTLCache,
        options: Optional[GameLogOptions] = None,
        min_games: int = MIN_GAMES,
        recent_years: int = RECENT_WINDOW_YEARS,
        today: Callable[[], date] = today_utc,
    ):
        if not providers:
            raise ValueError("PlayerResolver needs at least one provider")
        self.providers = list(providers)
        self.cache = cache
        self.options = options or GameLogOptions()
        self.min_games = min_games
        self.recent_years = recent_years
        self.today = today

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, cache: TTLCache, settings) -> "PlayerResolver":
        return cls(
            build_default_providers(client, settings),
            cache,
            min_games=settings.MIN_GAMES,
            recent_years=settings.RECENT_WINDOW_YEARS,
        )

    def _provider(self, name: str) -> BaseProviderAdapter:
        for provider in self.providers:
            if provider.name == name:
                return provider
        raise InvalidInput(f"No provider named {name!r}")

    async def resolve(self, player_name: str) -> Tuple[Identity, GameLog]:
        """
        Resolve a player name to an identity and a recent, renumbered game log.

        Raises:
            InvalidInput: empty name
            InsufficientData: player found but fewer than min_games recent games
            NotFound: no provider knows the player
            ProviderUnavailable: providers failed before anyone could answer
        """
        key = normalize(player_name)
        if not key:
            raise InvalidInput("Player name is empty")

        cache_key = make_key(PLAYER_STATS, key)
        cached, found = self.cache.get(cache_key)
        if found:
            logger.debug(f"Resolver cache hit for {key!r}")
            return cached

        failures: Dict[str, PropLineError] = {}
        suggestions: List[str] = []
        best_short = 0

        for provider in self.providers:
            try:
                identity, near = await provider.lookup(player_name)
                if identity is None:
                    suggestions.extend(n for n in near if n not in suggestions)
                    failures[provider.name] = NotFound(f"{provider.name}: no match for {player_name!r}")
                    continue

                games = await provider.game_log(identity, self.options)
            except PropLineError as e:
                logger.warning(f"Resolver: {provider.name} failed for {player_name!r}: {e.message}")
                failures[provider.name] = e
                continue

            log = self._recent_log(identity, games)
            if len(log) < self.min_games:
                logger.info(
                    f"Resolver: {provider.name} found {identity.display_name!r} "
                    f"but only {len(log)} recent games, trying next provider"
                )
                best_short = max(best_short, len(log))
                failures[provider.name] = InsufficientData(
                    f"{provider.name}: {len(log)} recent games", games_found=len(log), required=self.min_games
                )
                continue

            logger.info(f"Resolver: {player_name!r} resolved via {provider.name} ({len(log)} games)")
            result = (identity, log)
            self.cache.set(cache_key, result, data_class=PLAYER_STATS)
            return result

        raise self._final_error(player_name, failures, suggestions, best_short)

    def _final_error(
        self,
        player_name: str,
        failures: Dict[str, PropLineError],
        suggestions: List[str],
        best_short: int,
    ) -> PropLineError:
        summary = "; ".join(f"{name}: {err.kind.value}" for name, err in failures.items())
        if any(isinstance(e, InsufficientData) for e in failures.values()):
            return InsufficientData(
                f"Not enough recent games for {player_name!r} ({summary})",
                games_found=best_short,
                required=self.min_games,
            )
        if failures and all(isinstance(e, NotFound) for e in failures.values()):
            return NotFound(f"No provider found {player_name!r}", suggestions=suggestions[:3])
        last = next(
            (e for e in reversed(list(failures.values())) if isinstance(e, ProviderUnavailable)),
            None,
        )
        return ProviderUnavailable(
            f"All providers failed for {player_name!r} ({summary})",
            provider=last.provider if last else None,
            status=last.status if last else None,
            cause=last,
        )

    def _recent_log(self, identity: Identity, games) -> GameLog:
        """Drop stale games, then renumber so sequence stays dense."""
        cutoff = recent_cutoff(self.recent_years, self.today())
        recent = [g for g in games if g.date >= cutoff]
        dropped = len(games) - len(recent)
        if dropped:
            logger.debug(f"Dropped {dropped} games older than {cutoff} for {identity.display_name!r}")
        return GameLog(identity=identity, games=tuple(renumber_games(recent)))

    async def get_game_log(self, identity: Identity, options: Optional[GameLogOptions] = None) -> GameLog:
        """
        Fetch a fresh log from the provider that produced ``identity``.

        Raises:
            InvalidInput: identity from an unknown provider
            InsufficientData: fewer than min_games recent games
        """
        provider = self._provider(identity.provider)
        games = await provider.game_log(identity, options or self.options)
        log = self._recent_log(identity, games)
        if len(log) < self.min_games:
            raise InsufficientData(
                f"{identity.display_name or identity.canonical_name}: {len(log)} recent games",
                games_found=len(log),
                required=self.min_games,
            )
        return log

    async def next_game(self, identity: Identity) -> Optional[NextGame]:
        """
        Next fixture for the player's team, trying providers in order.

        Cached per team. Returns None when no provider finds a game in the
        lookahead window or every provider fails.
        """
        if not identity.team_abbrev:
            return None
        team = team_alias(identity.team_abbrev)
        cache_key = make_key(NEXT_GAME, team)
        cached, found = self.cache.get(cache_key)
        if found:
            return cached

        # Start with the provider that produced the identity
        ordered = sorted(self.providers, key=lambda p: p.name != identity.provider)
        for provider in ordered:
            try:
                game = await provider.next_game(team)
            except PropLineError as e:
                logger.warning(f"Next game: {provider.name} failed for {team}: {e.message}")
                continue
            if game is not None:
                self.cache.set(cache_key, game, data_class=NEXT_GAME)
                return game
        return None

    async def matchup_injuries(
        self,
        team_abbrev: str,
        opponent_abbrev: Optional[str] = None,
    ) -> Tuple[List[InjuryReport], List[InjuryReport]]:
        """
        (team injuries, opponent injuries) from the first provider with an injury feed.

        Cached per matchup. Both lists are empty when no provider has a
        feed or every feed fails.
        """
        team = team_alias(team_abbrev)
        opponent = team_alias(opponent_abbrev or "")
        cache_key = make_key(INJURIES, team, opponent or "-")
        cached, found = self.cache.get(cache_key)
        if found:
            return cached

        for provider in self.providers:
            feed = getattr(provider, "get_matchup_injuries", None)
            if feed is None:
                continue
            try:
                result = await feed(team, opponent or None)
            except PropLineError as e:
                logger.warning(f"Injuries: {provider.name} failed for {team}: {e.message}")
                continue
            self.cache.set(cache_key, result, data_class=INJURIES)
            return result
        return [], []
