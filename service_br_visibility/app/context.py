"""
Engine context shared by the engine, scheduler and watchers.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from bs4 import Tag

from .rules.models import ApplicationRun, PolicySet


@dataclass
class EngineContext:
    """Mutable state of one engine instance.

    Everything here is touched only from the event loop thread; the
    `running` flag is the reentrancy guard, not a lock.
    """
    policy: PolicySet = field(default_factory=PolicySet)
    running: bool = False
    pending: Optional[Any] = None
    pending_source: Optional[str] = None
    editing_scopes: List[Tag] = field(default_factory=list)
    last_run: Optional[ApplicationRun] = None

    def begin_edit(self, scope: Tag) -> None:
        if not self.is_editing(scope):
            self.editing_scopes.append(scope)

    def end_edit(self, scope: Tag) -> None:
        self.editing_scopes = [s for s in self.editing_scopes if s is not scope]

    def is_editing(self, scope: Tag) -> bool:
        return any(s is scope for s in self.editing_scopes)
