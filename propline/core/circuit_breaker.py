"""
Circuit breakers for upstream stats providers.

Uses the pybreaker library. One breaker per provider so a dead provider
fails fast and the resolver moves straight to the next one in its
fallback order instead of burning the full retry budget on every request.

Circuit Breaker States:
- CLOSED: Requests pass through normally
- OPEN: Requests fail immediately (after fail_max consecutive failures)
- HALF_OPEN: One request allowed to test if the provider has recovered

NotFound does not count as a failure: a missing player is a valid answer.
"""
from typing import Dict, Optional

from pybreaker import CircuitBreaker, CircuitBreakerListener

from propline.core.errors import NotFound
from propline.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FAIL_MAX = 5
DEFAULT_RESET_TIMEOUT = 60

_breakers: Dict[str, CircuitBreaker] = {}


class BreakerStateLogger(CircuitBreakerListener):
    """Log every breaker state transition."""

    def state_change(self, cb, old_state, new_state):
        old = getattr(old_state, "name", old_state)
        new = getattr(new_state, "name", new_state)
        if new == "open":
            logger.warning(f"Circuit breaker '{cb.name}' opened after {cb.fail_counter} failures")
        else:
            logger.info(f"Circuit breaker '{cb.name}': {old} -> {new}")


def get_breaker(
    provider: str,
    fail_max: Optional[int] = None,
    reset_timeout: Optional[int] = None,
) -> CircuitBreaker:
    """
    Get or create the breaker for a provider.

    Explicit ``fail_max``/``reset_timeout`` values are applied to an
    existing breaker as well, so configuration wins over first use.

    Args:
        provider: Provider name (nba_stats, espn, balldontlie)
        fail_max: Consecutive failures before the circuit opens
        reset_timeout: Seconds before a half-open trial request is allowed
    """
    breaker = _breakers.get(provider)
    if breaker is None:
        breaker = CircuitBreaker(
            fail_max=fail_max or DEFAULT_FAIL_MAX,
            reset_timeout=reset_timeout or DEFAULT_RESET_TIMEOUT,
            exclude=[NotFound],
            listeners=[BreakerStateLogger()],
            name=provider,
        )
        _breakers[provider] = breaker
        return breaker

    if fail_max is not None:
        breaker.fail_max = fail_max
    if reset_timeout is not None:
        breaker.reset_timeout = reset_timeout
    return breaker


def get_breaker_state(breaker: CircuitBreaker) -> str:
    """State string: 'closed', 'open', or 'half-open'."""
    return breaker.current_state


def get_all_breaker_states() -> Dict[str, str]:
    """Map of provider name to breaker state."""
    return {name: get_breaker_state(b) for name, b in _breakers.items()}


def reset_breaker(breaker: CircuitBreaker) -> None:
    """Force a breaker back to CLOSED."""
    breaker.close()
    logger.warning(f"Circuit breaker '{breaker.name}' manually reset to CLOSED state")


def reset_all_breakers() -> None:
    for breaker in _breakers.values():
        breaker.close()
        breaker.fail_max = DEFAULT_FAIL_MAX
        breaker.reset_timeout = DEFAULT_RESET_TIMEOUT
