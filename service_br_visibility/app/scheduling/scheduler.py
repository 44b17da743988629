"""
Debounced, single-flight scheduling of engine runs.
"""

from typing import Optional

from bs4 import Tag

from shared.logging import get_logger
from ..context import EngineContext
from ..rules.engine import RuleEngine
from ..rules.models import RunResult
from .timer import Timer


class Scheduler:
    """Holds at most one pending run.

    A new `schedule` call cancels and replaces the pending one
    (trailing debounce). Runs are never queued behind an executing run;
    the engine's reentrancy guard drops them instead.
    """

    def __init__(self, engine: RuleEngine, context: EngineContext, timer: Timer):
        self.engine = engine
        self.context = context
        self.timer = timer
        self.logger = get_logger("visibility.scheduling.scheduler")
        self.last_result: Optional[RunResult] = None

    @property
    def pending(self) -> bool:
        return self.context.pending is not None

    def schedule(self, source: str, delay: float = 0.0, target_scope: Optional[Tag] = None) -> None:
        replaced = self.context.pending_source if self.cancel() else None
        self.context.pending = self.timer.call_later(delay, self._fire, source, target_scope)
        self.context.pending_source = source
        self.logger.debug(
            "Run scheduled",
            source=source,
            delay=delay,
            targeted=target_scope is not None,
            replaced=replaced
        )

    def cancel(self) -> bool:
        """Cancel the pending run; returns whether one was pending."""
        handle = self.context.pending
        if handle is None:
            return False
        handle.cancel()
        self.context.pending = None
        self.context.pending_source = None
        return True

    def _fire(self, source: str, target_scope: Optional[Tag]) -> None:
        self.context.pending = None
        self.context.pending_source = None
        self.last_result = self.engine.run(source, target_scope)
