"""
Bounded host initialization.
"""

from enum import Enum
from typing import Any, Callable, Optional

from shared.logging import get_logger
from shared.retry import RetryConfig, calculate_delay
from .scheduling import Timer


class InitState(str, Enum):
    """Host initialization states."""
    WAITING = "waiting"    # Probing for host APIs
    READY = "ready"        # Attached to host
    FAILED = "failed"      # Gave up; terminal


class HostInitializer:
    """Probes the host until it is ready or attempts run out.

    Never raises into the host: a failed probe or a failing ready
    callback is logged and reflected in `state`.
    """

    def __init__(
        self,
        probe: Callable[[], bool],
        on_ready: Callable[[], None],
        timer: Timer,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.probe = probe
        self.on_ready = on_ready
        self.timer = timer
        self.retry_config = retry_config or RetryConfig(
            max_attempts=20, base_delay=0.5, jitter=False, backoff_strategy="fixed"
        )
        self.logger = get_logger("visibility.bootstrap")
        self.state = InitState.WAITING
        self.attempts = 0
        self.last_error: Optional[str] = None
        self._handle: Optional[Any] = None

    def start(self) -> None:
        if self.state != InitState.WAITING or self._handle is not None or self.attempts:
            return
        self._attempt()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _attempt(self) -> None:
        self._handle = None
        self.attempts += 1

        try:
            ready = bool(self.probe())
        except Exception as e:
            self.last_error = str(e)
            self.logger.warning("Host probe raised", attempt=self.attempts, error=str(e))
            ready = False

        if ready:
            try:
                self.on_ready()
            except Exception as e:
                self.state = InitState.FAILED
                self.last_error = str(e)
                self.logger.error("Host initialization failed", attempt=self.attempts, error=str(e), exc_info=True)
                return
            self.state = InitState.READY
            self.logger.info("Host ready", attempts=self.attempts)
            return

        if self.attempts >= self.retry_config.max_attempts:
            self.state = InitState.FAILED
            self.logger.error(
                "Host not available, giving up",
                attempts=self.attempts,
                max_attempts=self.retry_config.max_attempts
            )
            return

        delay = calculate_delay(self.attempts, self.retry_config)
        self.logger.info(
            "Waiting for host",
            attempt=self.attempts,
            max_attempts=self.retry_config.max_attempts,
            delay=delay
        )
        self._handle = self.timer.call_later(delay, self._attempt)
