"""
CircuitBreakerService - Prevents cascading failures in upstream API calls.

Wraps pybreaker with fallback semantics:
- Opens after `fail_max` consecutive failures (default 5)
- Stays open for `reset_timeout` seconds (default 60)
- After the timeout one probe call is let through (half-open); success
  closes the circuit, failure re-opens it
- When a fallback is supplied, failures and open-circuit rejections return
  it instead of raising
"""

import logging
import threading
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from pybreaker import (
    STATE_CLOSED,
    STATE_HALF_OPEN,
    STATE_OPEN,
    CircuitBreaker,
    CircuitBreakerError,
    CircuitBreakerListener,
)

from spacenexus.core.config import CIRCUIT_FAIL_MAX, CIRCUIT_RESET_TIMEOUT

logger = logging.getLogger(__name__)

_NO_FALLBACK = object()

_STATE_NAMES = {
    STATE_CLOSED: "CLOSED",
    STATE_OPEN: "OPEN",
    STATE_HALF_OPEN: "HALF_OPEN",
}


class _BreakerLogListener(CircuitBreakerListener):
    """Records failure times and logs state transitions."""

    def __init__(self):
        self.last_failure: Optional[datetime] = None

    def failure(self, cb, exc):
        self.last_failure = datetime.now(timezone.utc)

    def state_change(self, cb, old_state, new_state):
        old_name = getattr(old_state, "name", old_state)
        new_name = getattr(new_state, "name", new_state)
        if new_name == STATE_OPEN:
            logger.warning(
                f"[CIRCUIT] '{cb.name}' OPENED after {cb.fail_counter} failures "
                f"(reset_timeout={cb.reset_timeout}s)"
            )
        elif new_name == STATE_HALF_OPEN:
            logger.info(f"[CIRCUIT] '{cb.name}' HALF_OPEN, allowing probe request")
        elif new_name == STATE_CLOSED and old_name is not None:
            logger.info(f"[CIRCUIT] '{cb.name}' CLOSED")


class CircuitBreakerService:
    """
    Circuit breaker wrapper for one upstream dependency.

    Usage:
        breaker = create_circuit_breaker("launch-library")
        data = breaker.execute(fetch_launches, fallback=[])
    """

    def __init__(
        self,
        name: str,
        fail_max: int = CIRCUIT_FAIL_MAX,
        reset_timeout: float = CIRCUIT_RESET_TIMEOUT,
    ):
        self.name = name
        self._listener = _BreakerLogListener()
        self.breaker = CircuitBreaker(
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            name=name,
            listeners=[self._listener],
        )

        logger.info(
            f"[CIRCUIT] Circuit breaker '{name}' initialized "
            f"(fail_max={fail_max}, reset_timeout={reset_timeout}s)"
        )

    def execute(self, func: Callable, *args, fallback: Any = _NO_FALLBACK, **kwargs) -> Any:
        """
        Execute function through circuit breaker.

        Returns:
            Function result, or `fallback` when the call fails or the
            circuit is open and a fallback was given.

        Raises:
            CircuitBreakerError: If circuit is open and no fallback was given
            Exception: The function's own error when no fallback was given
        """
        try:
            return self.breaker.call(func, *args, **kwargs)
        except CircuitBreakerError:
            if fallback is not _NO_FALLBACK:
                logger.info(f"[CIRCUIT] '{self.name}' is OPEN, returning fallback")
                return fallback
            logger.error(f"[CIRCUIT] Breaker '{self.name}' OPEN, blocking call to {getattr(func, '__name__', func)}")
            raise
        except Exception as e:
            if fallback is not _NO_FALLBACK:
                logger.warning(
                    f"[CIRCUIT] '{self.name}' call failed, returning fallback "
                    f"(failures={self.fail_count}/{self.breaker.fail_max}): {e}"
                )
                return fallback
            raise

    @property
    def state(self) -> str:
        """Current circuit state: 'CLOSED', 'OPEN' or 'HALF_OPEN'."""
        current = self.breaker.current_state
        if current == STATE_OPEN and self._reset_timeout_elapsed():
            return "HALF_OPEN"
        return _STATE_NAMES.get(current, str(current).upper())

    @property
    def fail_count(self) -> int:
        """Get current failure count."""
        return self.breaker.fail_counter

    @property
    def is_open(self) -> bool:
        return self.breaker.current_state == STATE_OPEN and not self._reset_timeout_elapsed()

    def _reset_timeout_elapsed(self) -> bool:
        opened_at = getattr(self.breaker._state_storage, "opened_at", None)
        if opened_at is None:
            return False
        if opened_at.tzinfo is None:
            opened_at = opened_at.replace(tzinfo=timezone.utc)
        elapsed = (datetime.now(timezone.utc) - opened_at).total_seconds()
        return elapsed >= self.breaker.reset_timeout

    def get_status(self) -> Dict[str, Any]:
        last_failure = self._listener.last_failure
        return {
            "name": self.name,
            "state": self.state,
            "failures": self.fail_count,
            "lastFailure": last_failure.isoformat() if last_failure else None,
        }

    def reset(self) -> None:
        """Manually reset the circuit breaker to CLOSED with zero failures."""
        self.breaker.close()


# ── Registry ────────────────────────────────────────────────────────────────

_registry: Dict[str, CircuitBreakerService] = {}
_registry_lock = threading.Lock()


def create_circuit_breaker(
    name: str,
    fail_max: Optional[int] = None,
    reset_timeout: Optional[float] = None,
) -> CircuitBreakerService:
    """
    Create (and register) a circuit breaker.

    A breaker with the same name already registered is returned as-is, so
    module-level calls are safe on re-import.
    """
    with _registry_lock:
        existing = _registry.get(name)
        if existing is not None:
            return existing
        breaker = CircuitBreakerService(
            name,
            fail_max=fail_max if fail_max is not None else CIRCUIT_FAIL_MAX,
            reset_timeout=reset_timeout if reset_timeout is not None else CIRCUIT_RESET_TIMEOUT,
        )
        _registry[name] = breaker
        return breaker


def get_circuit_breaker(name: str) -> Optional[CircuitBreakerService]:
    with _registry_lock:
        return _registry.get(name)


def get_circuit_breaker_status() -> List[Dict[str, Any]]:
    """Status of every registered breaker, for health endpoints."""
    with _registry_lock:
        breakers = list(_registry.values())
    return [b.get_status() for b in breakers]


def any_circuit_open() -> bool:
    with _registry_lock:
        breakers = list(_registry.values())
    return any(b.is_open for b in breakers)


def clear_registry() -> None:
    """Forget all registered breakers."""
    with _registry_lock:
        _registry.clear()


def with_circuit_breaker(breaker_service: CircuitBreakerService, fallback: Any = None):
    """
    Decorator to wrap function with circuit breaker.

    Usage:
        @with_circuit_breaker(sec_edgar_breaker, fallback=[])
        def fetch_filings():
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            return breaker_service.execute(func, *args, fallback=fallback, **kwargs)
        return wrapper
    return decorator
