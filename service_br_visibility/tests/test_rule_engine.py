"""
Unit tests for the rule engine.
"""

import pytest
from unittest.mock import patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_br_visibility.app.context import EngineContext
from service_br_visibility.app.document import LiveDocument
from service_br_visibility.app.rules.engine import RuleEngine
from service_br_visibility.app.rules.models import PolicySet
from service_br_visibility.app.tracking.marker_state import TRACKING_ATTRS
from shared.metrics import MetricsCollector
from shared.test_helpers import TestDataFactory, hidden_rules, hidden_states


class TestRuleEngine:
    """Test cases for RuleEngine."""

    @pytest.fixture
    def document(self):
        return LiveDocument(TestDataFactory.chat(
            "<br>Hello<br><br>World",
            "A<br><br><br>B",
            extra="<footer>outside<br>scope</footer>",
        ))

    @pytest.fixture
    def context(self):
        return EngineContext()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("visibility-test")

    @pytest.fixture
    def engine(self, document, context, metrics):
        return RuleEngine(document, context, metrics=metrics)

    def test_run_applies_layered_rules(self, engine, document, context):
        context.policy = PolicySet(hide_leading=True, merge_consecutive=True)

        result = engine.run("test")

        first, second = document.find_scopes()
        assert result.executed is True
        assert hidden_states(document.markers_in(first)) == [True, False, True]
        assert hidden_rules(document.markers_in(first)) == ["leading", None, "mergeConsecutive"]
        assert hidden_states(document.markers_in(second)) == [False, True, True]
        assert result.run.scopes_processed == 2
        assert result.run.hidden_count == 4

    def test_merge_only_keeps_anchor(self, engine, document, context):
        context.policy = PolicySet(merge_consecutive=True)

        engine.run("test")

        second = document.find_scopes()[1]
        assert hidden_states(document.markers_in(second)) == [False, True, True]

    def test_idempotent(self, engine, document, context):
        context.policy = PolicySet(hide_leading=True, merge_consecutive=True, smart_external=True)

        engine.run("first")
        after_first = document.serialize()
        engine.run("second")

        assert document.serialize() == after_first

    def test_global_dominates(self, engine, document, context):
        context.policy = PolicySet(hide_all_global=True, hide_leading=True, smart_external=True)

        result = engine.run("test")

        markers = document.soup.find_all("br")
        assert len(markers) == 7
        assert all(hidden_states(markers))
        assert set(hidden_rules(markers)) == {"globalHideAll"}
        assert result.run.hidden_by_rule == {"globalHideAll": 7}

    def test_global_ignores_target_scope(self, engine, document, context):
        context.policy = PolicySet(hide_all_global=True)

        engine.run("test", document.find_scopes()[0])

        assert all(hidden_states(document.soup.find_all("br")))

    def test_revert_then_run_with_no_policy_restores_everything(self, engine, document, context):
        original = document.serialize()
        context.policy = PolicySet(hide_all_global=True)
        engine.run("global")

        context.policy = PolicySet()
        engine.run("off")

        assert document.serialize() == original
        for marker in document.soup.find_all("br"):
            assert not any(marker.has_attr(attr) for attr in TRACKING_ATTRS)

    def test_targeted_run_leaves_other_scopes(self, engine, document, context):
        first, second = document.find_scopes()
        context.policy = PolicySet(hide_all_in_scope=True)
        engine.run("all")

        context.policy = PolicySet()
        result = engine.run("edit_exit", first)

        assert result.run.scopes_processed == 1
        assert hidden_states(document.markers_in(first)) == [False, False, False]
        assert all(hidden_states(document.markers_in(second)))

    def test_detached_target_runs_globally(self, engine, document, context):
        first, second = document.find_scopes()
        document.remove(first.find_parent(class_="mes"))
        context.policy = PolicySet(hide_all_in_scope=True)

        result = engine.run("stale", first)

        assert result.run.target_scope is None
        assert all(hidden_states(document.markers_in(second)))

    def test_editing_scope_is_skipped(self, engine, document, context):
        first, second = document.find_scopes()
        context.policy = PolicySet(hide_all_in_scope=True)
        context.begin_edit(first)

        result = engine.run("test")

        assert result.run.scopes_skipped == 1
        assert hidden_states(document.markers_in(first)) == [False, False, False]
        assert all(hidden_states(document.markers_in(second)))

    def test_reentrant_run_dropped(self, engine, context, metrics):
        context.running = True

        result = engine.run("late")

        assert result.executed is False
        assert result.reason == "run_in_progress"
        assert metrics.get_sample("visibility_triggers_dropped_total") == 1.0

    def test_scope_failure_is_isolated(self, engine, document, context, metrics):
        first, second = document.find_scopes()
        context.policy = PolicySet(hide_all_in_scope=True)
        original = engine.classifier.classify_scope

        def flaky(scope, policy):
            if scope is first:
                raise RuntimeError("boom")
            return original(scope, policy)

        with patch.object(engine.classifier, "classify_scope", side_effect=flaky):
            result = engine.run("test")

        assert result.executed is True
        assert result.reason == "partial"
        assert result.run.scopes_failed == 1
        assert result.errors == ["boom"]
        assert all(hidden_states(document.markers_in(second)))
        assert context.running is False
        assert metrics.get_sample("visibility_scope_failures_total") == 1.0

    def test_guard_released_after_unexpected_error(self, engine, document, context):
        with patch.object(document, "find_scopes", side_effect=RuntimeError("tree gone")):
            result = engine.run("test")

        assert result.reason == "error"
        assert context.running is False
        assert engine.run("again").executed is True

    def test_run_recorded(self, engine, context, metrics):
        context.policy = PolicySet(hide_leading=True)

        engine.run("manual")

        summary = context.last_run.summary()
        assert summary["source"] == "manual"
        assert summary["hidden_by_rule"] == {"leading": 1}
        assert metrics.get_sample("visibility_runs_total", {"source": "manual", "outcome": "ok"}) == 1.0
        assert metrics.get_sample("visibility_markers_hidden_total", {"rule": "leading"}) == 1.0
