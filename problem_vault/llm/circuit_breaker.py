"""Per-provider circuit breaker for LLM and embedding calls.

After ``failure_threshold`` consecutive failures the provider is treated
as down: calls fail fast with ``CircuitOpenError`` until
``recovery_timeout`` has passed, then exactly one probe call is let
through. A successful probe closes the circuit, a failed one reopens it.

Usage:
    breaker = CircuitBreaker("openai", failure_threshold=5, recovery_timeout=60.0)
    reply = await breaker.call(client.chat.completions.create, **kwargs)
"""

import enum
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """The provider's circuit is open; the call was not attempted."""

    def __init__(self, provider: str, retry_after: float = 0.0):
        super().__init__(f"{provider} circuit is open, retry in {retry_after:.0f}s")
        self.provider = provider
        self.retry_after = retry_after


class CircuitBreaker:
    """Fail-fast guard around one provider.

    Args:
        provider: Provider name, used in errors and log lines.
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds the circuit stays open before a probe.
    """

    def __init__(
        self,
        provider: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self.provider = provider
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def retry_after(self) -> float:
        """Seconds until the next probe is allowed; 0 unless open."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self._recovery_timeout - (time.monotonic() - self._opened_at))

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` unless the circuit is open.

        Raises:
            CircuitOpenError: While open, or while another probe is running.
        """
        probing = self._before_call()
        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        finally:
            # A cancelled probe settles nothing; the next call probes again.
            if probing:
                self._probe_in_flight = False
        self._on_success()
        return result

    def _before_call(self) -> bool:
        """Raise if the call may not run; True when it is the half-open probe."""
        if self._state == CircuitState.OPEN:
            wait = self.retry_after
            if wait > 0:
                raise CircuitOpenError(self.provider, wait)
            self._state = CircuitState.HALF_OPEN
            logger.info(f"{self.provider} circuit half-open, sending probe")

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_in_flight:
                raise CircuitOpenError(self.provider)
            self._probe_in_flight = True
            return True
        return False

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(f"{self.provider} circuit closed, probe succeeded")
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_in_flight = False

    def _on_failure(self) -> None:
        self._consecutive_failures += 1
        probing = self._state == CircuitState.HALF_OPEN
        self._probe_in_flight = False

        if probing or self._consecutive_failures >= self._failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
            logger.warning(
                f"{self.provider} circuit opened after "
                f"{self._consecutive_failures} consecutive failures"
            )
