"""
Mutation watcher: turns structural mutation batches into subtree
change events and schedules engine runs from them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from bs4 import Tag

from shared.logging import get_logger
from ..context import EngineContext
from ..document import LiveDocument, MutationRecord
from ..scheduling import Scheduler
from ..tracking import MarkerStateTracker


class ChangeKind(str, Enum):
    NEW_CONTENT = "new_content"
    EDIT_ENTER = "edit_enter"
    EDIT_EXIT = "edit_exit"


@dataclass
class SubtreeChange:
    kind: ChangeKind
    scope: Optional[Tag] = None


class MutationWatcher:
    """Observes a document and reacts to new messages and edit sessions.

    Per batch at most one kind of run is scheduled: an edit exit wins
    over new content, and an edit entry suppresses the global run.
    """

    def __init__(
        self,
        document: LiveDocument,
        scheduler: Scheduler,
        tracker: MarkerStateTracker,
        context: EngineContext,
        edit_selector: str,
        debounce_seconds: float = 0.3,
        settle_seconds: float = 0.1,
    ):
        self.document = document
        self.scheduler = scheduler
        self.tracker = tracker
        self.context = context
        self.edit_selector = edit_selector
        self.debounce_seconds = debounce_seconds
        self.settle_seconds = settle_seconds
        self.observing = False
        self.logger = get_logger("visibility.watch.mutations")

    def observe(self) -> None:
        self.document.observe(self.handle_mutations)
        self.observing = True
        self.logger.info("Observing document", edit_selector=self.edit_selector)

    def disconnect(self) -> None:
        self.document.disconnect(self.handle_mutations)
        self.observing = False

    def handle_mutations(self, records: List[MutationRecord]) -> List[SubtreeChange]:
        changes = self.classify(records)
        self.dispatch(changes)
        return changes

    def classify(self, records: List[MutationRecord]) -> List[SubtreeChange]:
        changes: List[SubtreeChange] = []
        for record in records:
            for node in record.added_nodes:
                control = self._find_edit_control(node)
                if control is not None:
                    changes.append(SubtreeChange(ChangeKind.EDIT_ENTER, self.document.scope_for(control)))
                elif self.document.looks_like_scope(node):
                    changes.append(SubtreeChange(ChangeKind.NEW_CONTENT))
            for node in record.removed_nodes:
                if self._find_edit_control(node) is not None:
                    # A removed message carries its scope; a removed control does not.
                    scope = self.document.scope_for(node) or self.document.scope_for(record.target)
                    changes.append(SubtreeChange(ChangeKind.EDIT_EXIT, scope))
        return changes

    def dispatch(self, changes: List[SubtreeChange]) -> None:
        entered = [c for c in changes if c.kind == ChangeKind.EDIT_ENTER]
        exited = [c for c in changes if c.kind == ChangeKind.EDIT_EXIT]

        for change in entered:
            if change.scope is None:
                continue
            self.context.begin_edit(change.scope)
            reverted = self.tracker.revert_scope(change.scope)
            self.logger.info("Edit session entered, scope reverted", markers=reverted)

        if exited:
            change = exited[-1]
            for ended in exited:
                if ended.scope is not None:
                    self.context.end_edit(ended.scope)
            self.scheduler.schedule(ChangeKind.EDIT_EXIT.value, self.settle_seconds, change.scope)
        elif entered:
            return
        elif any(c.kind == ChangeKind.NEW_CONTENT for c in changes):
            self.scheduler.schedule(ChangeKind.NEW_CONTENT.value, self.debounce_seconds)

    def _find_edit_control(self, node) -> Optional[Tag]:
        if not isinstance(node, Tag):
            return None
        if node.css.match(self.edit_selector):
            return node
        return node.select_one(self.edit_selector)
