"""
Request gate for reasoning-service calls.

Combines admission control and retry policy:
- Concurrency cap: at most max_concurrent_requests tasks run at once
- Sliding window: at most max_requests_per_minute completions per window
- FIFO admission: waiters are admitted strictly in arrival order
- Exponential backoff retry for rate-limit and transient failures

Gate state is owned by the event loop. The two-dimensional capacity check
and the slot increment happen in one synchronous section (no await in
between), so both limits are checked and claimed atomically.
"""

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from .config import RateLimitConfig
from .errors import ConfigurationError, RetriesExhausted, is_retryable


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Small slack so the wakeup timer fires after the oldest completion has aged out
_WAKEUP_SLACK_SECONDS = 0.001


@dataclass
class _Ticket:
    """Admission ticket; arrival order is deque order."""
    arrived_at: float
    future: asyncio.Future


class RequestGate:
    """
    Two-dimensional admission controller with retry/backoff.

    Running tasks hold a reservation in the rate window, so completions
    in the trailing window never exceed max_requests_per_minute even when
    several admitted tasks finish together. A retryable failure gives its
    reservation back without recording a completion.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        errors = self.config.validate()
        if errors:
            raise ConfigurationError(
                "Invalid rate limit configuration: " + "; ".join(errors),
                context={"errors": errors},
            )

        self._sleep = sleep
        self._clock = clock

        self._active = 0
        self._completions: deque[float] = deque()
        self._waiters: deque[_Ticket] = deque()
        self._wakeup: asyncio.TimerHandle | None = None
        self._wakeup_loop: asyncio.AbstractEventLoop | None = None

        # Stats
        self._total_executions = 0
        self._total_attempts = 0
        self._total_retries = 0
        self._throttle_count = 0
        self._failures = 0
        self._peak_active = 0

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _prune(self, now: float) -> None:
        """Drop completions that have left the trailing window."""
        cutoff = now - self.config.window_seconds
        while self._completions and self._completions[0] <= cutoff:
            self._completions.popleft()

    def _has_capacity(self, now: float) -> bool:
        self._prune(now)
        if self._active >= self.config.max_concurrent_requests:
            return False
        return len(self._completions) + self._active < self.config.max_requests_per_minute

    def _dispatch(self) -> None:
        """Admit waiters from the head of the queue while capacity allows."""
        now = self._clock()
        while self._waiters:
            head = self._waiters[0]
            if head.future.done():
                # Cancelled while queued
                self._waiters.popleft()
                continue
            if not self._has_capacity(now):
                break
            self._waiters.popleft()
            self._active += 1
            self._peak_active = max(self._peak_active, self._active)
            head.future.set_result(None)

        self._schedule_wakeup(now)

    def _cancel_wakeup(self) -> None:
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None
            self._wakeup_loop = None

    def _schedule_wakeup(self, now: float) -> None:
        """Re-run dispatch when the oldest completion leaves the window."""
        if not self._waiters:
            self._cancel_wakeup()
            return
        if not self._completions:
            return
        loop = asyncio.get_running_loop()
        # A handle left over from a previous event loop will never fire here
        if self._wakeup is not None and self._wakeup_loop is loop:
            return
        delay = self._completions[0] + self.config.window_seconds - now
        self._wakeup = loop.call_later(max(0.0, delay) + _WAKEUP_SLACK_SECONDS, self._on_wakeup)
        self._wakeup_loop = loop

    def _on_wakeup(self) -> None:
        self._wakeup = None
        self._wakeup_loop = None
        self._dispatch()

    async def _acquire(self) -> None:
        loop = asyncio.get_running_loop()
        ticket = _Ticket(arrived_at=self._clock(), future=loop.create_future())
        self._waiters.append(ticket)
        self._dispatch()

        if not ticket.future.done():
            self._throttle_count += 1
            logger.debug(
                "Request queued (active=%d, queued=%d, window=%d)",
                self._active, len(self._waiters), len(self._completions),
            )

        try:
            await ticket.future
        except asyncio.CancelledError:
            if ticket.future.done() and not ticket.future.cancelled():
                # Admitted in the same step the caller was cancelled
                self._release(record_completion=False)
            else:
                try:
                    self._waiters.remove(ticket)
                except ValueError:
                    pass
                self._dispatch()
            raise

    def _release(self, record_completion: bool) -> None:
        self._active -= 1
        if record_completion:
            self._completions.append(self._clock())
        self._dispatch()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def compute_delay(self, attempt: int, error: BaseException | None = None) -> float:
        """Backoff delay in seconds before retry number attempt + 1."""
        cfg = self.config
        delay = min(
            cfg.initial_delay_seconds * (cfg.backoff_multiplier ** attempt),
            cfg.max_delay_seconds,
        )
        if cfg.jitter > 0:
            delay += delay * cfg.jitter * random.uniform(-1.0, 1.0)
            delay = max(0.0, delay)

        # Honour the provider's own hint when it asks for a longer pause
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            delay = max(delay, float(retry_after))
        return delay

    async def execute(self, task: Callable[[], Awaitable[T]]) -> T:
        """
        Run task under the gate, retrying retryable failures.

        Args:
            task: No-argument coroutine function performing one attempt

        Returns:
            The task's result

        Raises:
            RetriesExhausted: every attempt failed with a retryable error
            Exception: any non-retryable error, unchanged and without retry
        """
        self._total_executions += 1
        max_attempts = self.config.max_retries + 1
        last_error: BaseException | None = None

        for attempt in range(max_attempts):
            await self._acquire()
            self._total_attempts += 1

            try:
                result = await task()
            except Exception as e:
                retryable = is_retryable(e)
                will_retry = retryable and attempt < max_attempts - 1
                self._release(record_completion=not will_retry)

                if not retryable:
                    self._failures += 1
                    raise

                last_error = e
                if not will_retry:
                    break

                delay = self.compute_delay(attempt, e)
                self._total_retries += 1
                logger.warning(
                    "Attempt %d/%d failed with %s, retrying in %.2fs",
                    attempt + 1, max_attempts, type(e).__name__, delay,
                )
                await self._sleep(delay)
            except BaseException:
                # Cancelled mid-flight; the call may have reached the provider
                self._release(record_completion=True)
                raise
            else:
                self._release(record_completion=True)
                return result

        self._failures += 1
        logger.error("Request failed after %d attempts: %s", max_attempts, last_error)
        raise RetriesExhausted(max_attempts, last_error)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active_requests(self) -> int:
        return self._active

    def get_status(self) -> dict[str, int]:
        """Consistent snapshot of gate state."""
        self._prune(self._clock())
        return {
            "active_requests": self._active,
            "queued_requests": len(self._waiters),
            "requests_in_last_minute": len(self._completions),
        }

    def get_stats(self) -> dict[str, Any]:
        """Get cumulative gate statistics."""
        return {
            **self.get_status(),
            "total_executions": self._total_executions,
            "total_attempts": self._total_attempts,
            "total_retries": self._total_retries,
            "throttle_count": self._throttle_count,
            "failures": self._failures,
            "peak_active_requests": self._peak_active,
            "requests_limit": self.config.max_requests_per_minute,
            "concurrency_limit": self.config.max_concurrent_requests,
        }
