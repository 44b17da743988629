"""
Rule engine: guarded revert-and-reclassify runs over scopes.
"""

import time
from datetime import datetime
from typing import List, Optional

from bs4 import Tag

from shared.errors import ScopeClassificationError
from shared.logging import clear_context, get_logger, set_run_context
from shared.metrics import MetricsCollector
from ..context import EngineContext
from ..document import LiveDocument, nodes
from ..tracking import MarkerStateTracker
from .classifier import Classifier
from .models import ApplicationRun, PolicySet, RuleTag, RunResult


class RuleEngine:
    """Applies the active policy to the document.

    At most one run executes at a time; a run requested while another
    is active is dropped, not queued.
    """

    def __init__(
        self,
        document: LiveDocument,
        context: EngineContext,
        classifier: Optional[Classifier] = None,
        tracker: Optional[MarkerStateTracker] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.document = document
        self.context = context
        self.classifier = classifier or Classifier(document.marker_tag)
        self.tracker = tracker or MarkerStateTracker(document.marker_tag)
        self.metrics = metrics
        self.logger = get_logger("visibility.rules.engine")

    def run(self, source: str, target_scope: Optional[Tag] = None) -> RunResult:
        if self.context.running:
            self.logger.info("Run dropped, another run is active", source=source)
            if self.metrics:
                self.metrics.record_dropped_trigger()
            return RunResult(executed=False, reason="run_in_progress")

        self.context.running = True
        run = ApplicationRun(run_id=set_run_context(source), source=source, target_scope=target_scope)
        start_time = time.time()
        errors: List[str] = []
        outcome = "ok"

        try:
            policy = self.context.policy

            if target_scope is not None and not self.document.contains(target_scope):
                self.logger.info("Target scope detached, running globally")
                target_scope = None
                run.target_scope = None

            if policy.hide_all_global:
                self._apply_global(run)
            else:
                if target_scope is None:
                    # Clears markers an earlier global run hid outside scopes.
                    self.tracker.revert_scope(self.document.root)
                    scopes = self.document.find_scopes()
                else:
                    scopes = [target_scope]

                for scope in scopes:
                    try:
                        self._process_scope(scope, policy, run)
                    except Exception as e:
                        run.scopes_failed += 1
                        error = ScopeClassificationError(
                            str(e), details={"scope": scope.name, "error_type": type(e).__name__}
                        )
                        errors.append(error.message)
                        self.logger.error(
                            "Scope processing failed, continuing",
                            code=error.code,
                            error=str(e),
                            exc_info=True
                        )
                        if self.metrics:
                            self.metrics.record_scope_failure()

            if run.scopes_failed:
                outcome = "partial"

        except Exception as e:
            outcome = "error"
            errors.append(str(e))
            self.logger.error("Run failed", error=str(e), exc_info=True)

        finally:
            self.context.running = False
            run.finished_at = datetime.now()
            self.context.last_run = run
            duration = time.time() - start_time
            if self.metrics:
                self.metrics.record_run(source, outcome, duration)
                for rule, count in run.hidden_by_rule.items():
                    self.metrics.record_hidden(rule, count)
            self.logger.info(
                "Run completed",
                outcome=outcome,
                scopes=run.scopes_processed,
                failed=run.scopes_failed,
                hidden=run.hidden_count,
                duration_ms=round(duration * 1000, 2)
            )
            clear_context()

        return RunResult(executed=True, run=run, reason=outcome, errors=errors)

    def revert_scope(self, scope: Tag) -> int:
        return self.tracker.revert_scope(scope)

    def _apply_global(self, run: ApplicationRun) -> None:
        root = self.document.root
        self.tracker.revert_scope(root)
        for marker in self.document.markers_in(root):
            if self._in_edited_scope(marker):
                continue
            self.tracker.snapshot_and_hide(marker, RuleTag.GLOBAL_HIDE_ALL)
            self._count(run, RuleTag.GLOBAL_HIDE_ALL)
        run.scopes_processed += 1

    def _process_scope(self, scope: Tag, policy: PolicySet, run: ApplicationRun) -> None:
        self.tracker.revert_scope(scope)
        if self.context.is_editing(scope):
            run.scopes_skipped += 1
            return

        for marker, decision in self.classifier.classify_scope(scope, policy):
            if decision.hidden:
                self.tracker.snapshot_and_hide(marker, decision.rule)
                self._count(run, decision.rule)

        run.scopes_processed += 1

    def _in_edited_scope(self, marker: Tag) -> bool:
        return any(nodes.is_inside(marker, scope) for scope in self.context.editing_scopes)

    @staticmethod
    def _count(run: ApplicationRun, rule: RuleTag) -> None:
        run.hidden_by_rule[rule.value] = run.hidden_by_rule.get(rule.value, 0) + 1
