"""
Base class for stats-provider adapters.

Every provider exposes the same three operations:
- search_player(name) -> Identity | None
- game_log(identity, options) -> list[Game]   (most recent first, sequence 1..n)
- next_game(team_abbrev) -> NextGame | None    (finite lookahead window)

The base adapter provides:
- One injected httpx.AsyncClient (owned by the caller)
- The shared RetryPolicy for transient failures
- A per-provider circuit breaker
- Search ranking (exact, prefix, all-tokens) with source-order tie breaking
- Current/previous season merging and dense renumbering
- Payloads of an unexpected shape surface as ProviderUnavailable, so the
  resolver moves on to the next provider

Usage:
    async with httpx.AsyncClient() as client:
        adapter = NbaStatsAdapter(client)
        identity = await adapter.search_player("Luka Doncic")
        games = await adapter.game_log(identity, GameLogOptions())
"""
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError
from pydantic import ValidationError
from rapidfuzz import fuzz, process

from propline.core.circuit_breaker import get_breaker
from propline.core.errors import InvalidInput, ProviderUnavailable
from propline.core.logging import get_logger
from propline.core.retry import RetryPolicy
from propline.models import Game, GameLogOptions, Identity, NextGame
from propline.services.sync.utils.name_normalizer import match_rank, normalize
from propline.utils.season import previous_season, season_label, today_utc

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_LOOKAHEAD_DAYS = 7


_DATE_FORMATS = ("%Y-%m-%d", "%b %d, %Y", "%Y%m%d", "%m/%d/%Y")

# Raised while walking a payload whose shape differs from the documented one
MALFORMED_PAYLOAD_ERRORS = (AttributeError, TypeError, KeyError, IndexError, ValidationError)


@contextmanager
def malformed_payload(provider: str, what: str) -> Iterator[None]:
    """
    Convert parsing errors on an unexpected payload shape into ProviderUnavailable.

    Example:
        with malformed_payload("espn", "gamelog"):
            labels = payload.get("labels") or []
    """
    try:
        yield
    except MALFORMED_PAYLOAD_ERRORS as e:
        logger.warning(f"{provider}: malformed {what} payload ({type(e).__name__}: {e})")
        raise ProviderUnavailable(
            f"{provider}: malformed {what} payload", provider=provider, cause=e
        ) from e


def parse_game_date(raw: Any) -> Optional[date]:
    """
    Parse the date formats providers send.

    Examples:
        >>> parse_game_date("NOV 12, 2025")
        datetime.date(2025, 11, 12)
        >>> parse_game_date("2025-11-12T00:00:00")
        datetime.date(2025, 11, 12)
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not raw:
        return None
    text = str(raw).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text.title() if fmt.startswith("%b") else text, fmt).date()
        except ValueError:
            continue
    logger.debug(f"Unparseable game date: {raw!r}")
    return None


def renumber_games(games: Iterable[Game]) -> List[Game]:
    """
    Order games most recent first and assign a dense 1-based sequence.

    Stable for games on the same date, so callers control tie order by
    the order they pass games in.
    """
    ordered = sorted(games, key=lambda g: g.date, reverse=True)
    return [g.model_copy(update={"sequence": i}) for i, g in enumerate(ordered, start=1)]


def rank_candidates(query: str, candidates: Sequence[Tuple[str, Any]]) -> Optional[Any]:
    """
    Pick the best candidate for a name query.

    Args:
        query: Name as typed by the caller
        candidates: (display_name, payload) pairs in source order

    Returns:
        The payload of the best-ranked candidate, or None if nothing passes
    """
    best = None
    best_key = None
    for index, (name, payload) in enumerate(candidates):
        rank = match_rank(query, name)
        if rank is None:
            continue
        key = (rank, index)
        if best_key is None or key < best_key:
            best, best_key = payload, key
            if rank == 0:
                break
    return best


def closest_names(query: str, names: Sequence[str], limit: int = 3, cutoff: float = 75.0) -> List[str]:
    """
    Near-miss names for error messages. Never used to pick an identity.

    Uses RapidFuzz WRatio on normalized names.
    """
    if not names:
        return []
    matches = process.extract(
        query,
        list(dict.fromkeys(names)),
        scorer=fuzz.WRatio,
        processor=normalize,
        limit=limit,
        score_cutoff=cutoff,
    )
    return [name for name, _score, _index in matches]


class BaseProviderAdapter:
    """
    Shared transport and parsing helpers for provider adapters.

    Attributes:
        name: Provider name used for logs, breakers and Identity.provider
        client: Caller-owned HTTP client
        retry_policy: Retry/backoff policy applied to every request
        breaker: Circuit breaker for this provider
    """

    name = "provider"
    default_headers: Dict[str, str] = {}

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        retry_policy: Optional[RetryPolicy] = None,
        breaker: Optional[CircuitBreaker] = None,
        timeout: float = DEFAULT_TIMEOUT,
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        today: Callable[[], date] = today_utc,
        breaker_fail_max: Optional[int] = None,
        breaker_reset_timeout: Optional[int] = None,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self.breaker = breaker or get_breaker(
            self.name, fail_max=breaker_fail_max, reset_timeout=breaker_reset_timeout
        )
        self.timeout = timeout
        self.lookahead_days = lookahead_days
        self.today = today

    # ==================== Transport ====================

    async def _request(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Single attempt: GET, raise on HTTP error status, decode JSON."""
        response = await self.client.get(
            url,
            params=params,
            headers=self.default_headers or None,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a provider endpoint under retry and circuit breaker protection.

        Raises:
            NotFound: 404 from the provider
            ProviderUnavailable: retries exhausted, terminal status, open
                circuit, a body that is not JSON, or JSON that is not an object
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            with self.breaker.calling():
                payload = await self.retry_policy.call(self._request, url, params, provider=self.name)
        except CircuitBreakerError as e:
            logger.warning(f"Circuit breaker '{self.breaker.name}' is OPEN - skipping {url}")
            raise ProviderUnavailable(
                f"{self.name}: circuit open", provider=self.name, cause=e
            ) from e
        except ValueError as e:
            raise ProviderUnavailable(
                f"{self.name}: invalid JSON from {url}", provider=self.name, cause=e
            ) from e

        if not isinstance(payload, dict):
            logger.warning(f"{self.name}: expected a JSON object from {url}, got {type(payload).__name__}")
            raise ProviderUnavailable(
                f"{self.name}: unexpected {type(payload).__name__} body from {url}", provider=self.name
            )
        return payload

    # ==================== Operations ====================

    async def search_candidates(self, name: str) -> List[Tuple[str, Any]]:
        """(display_name, payload) pairs in source order (provider specific)."""
        raise NotImplementedError

    def identity_from(self, payload: Any) -> Identity:
        raise NotImplementedError

    async def lookup(self, name: str) -> Tuple[Optional[Identity], List[str]]:
        """
        Search and rank in one step.

        Returns:
            (identity, []) on a match, (None, closest names) otherwise
        """
        with malformed_payload(self.name, "search"):
            candidates = await self.search_candidates(name)
            payload = rank_candidates(name, candidates)
            if payload is None:
                suggestions = closest_names(name, [n for n, _ in candidates])
                logger.info(
                    f"{self.name}: no player matching {name!r} among {len(candidates)} candidates"
                    + (f" (closest: {', '.join(suggestions)})" if suggestions else "")
                )
                return None, suggestions
            return self.identity_from(payload), []

    async def search_player(self, name: str) -> Optional[Identity]:
        identity, _ = await self.lookup(name)
        return identity

    async def next_game(self, team_abbrev: str) -> Optional[NextGame]:
        """Next fixture for a team inside the lookahead window, or None."""
        with malformed_payload(self.name, "schedule"):
            return await self.fetch_next_game(team_abbrev)

    async def fetch_next_game(self, team_abbrev: str) -> Optional[NextGame]:
        """Provider-specific fixture lookup behind next_game."""
        raise NotImplementedError

    async def fetch_season_games(self, identity: Identity, season: str) -> List[Game]:
        """Games for one season, most recent first (provider specific)."""
        raise NotImplementedError

    async def game_log(
        self,
        identity: Identity,
        options: Optional[GameLogOptions] = None,
    ) -> List[Game]:
        """
        Current season games, optionally followed by the previous season,
        renumbered densely with the most recent game as sequence 1.
        """
        options = options or GameLogOptions()
        if identity.provider != self.name:
            raise InvalidInput(
                f"Identity from {identity.provider!r} passed to {self.name!r} adapter"
            )

        current = season_label(self.today())
        with malformed_payload(self.name, "game log"):
            games = self._limit(await self.fetch_season_games(identity, current), options.current_season_games)

            if options.include_previous_season:
                previous = await self.fetch_season_games(identity, previous_season(current))
                games += self._limit(previous, options.previous_season_games)

        logger.info(f"{self.name}: {len(games)} games for {identity.display_name or identity.canonical_name}")
        return renumber_games(games)

    @staticmethod
    def _limit(games: List[Game], limit: Optional[int]) -> List[Game]:
        ordered = sorted(games, key=lambda g: g.date, reverse=True)
        return ordered if limit is None else ordered[:limit]

    # ==================== Helpers ====================

    def _identity(self, provider_id: Any, display_name: str, team_abbrev: Optional[str]) -> Identity:
        return Identity(
            provider=self.name,
            provider_id=str(provider_id),
            canonical_name=normalize(display_name),
            display_name=display_name,
            team_abbrev=team_abbrev or None,
        )

    def _lookahead_dates(self) -> List[date]:
        start = self.today()
        return [start + timedelta(days=offset) for offset in range(self.lookahead_days + 1)]
