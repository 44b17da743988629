"""
Marker classification.

Pure decision logic: nothing here touches visual state. The engine
applies the decisions through the marker state tracker.
"""

from typing import Dict, List, Optional, Tuple

from bs4 import Tag

from shared.logging import get_logger
from ..document import nodes
from .models import ClassificationStrategy, Decision, PolicySet, RuleTag


Classification = List[Tuple[Tag, Decision]]


class Classifier:
    """Decides hidden/visible for every marker of a scope."""

    def __init__(self, marker_tag: str = "br"):
        self.marker_tag = marker_tag
        self.logger = get_logger("visibility.rules.classifier")

    def classify(self, marker: Tag, scope: Tag, policy: PolicySet) -> Decision:
        """Decision for a single marker, in the context of its whole scope."""
        if policy.hide_all_global:
            return Decision(hidden=True, rule=RuleTag.GLOBAL_HIDE_ALL)
        for candidate, decision in self.classify_scope(scope, policy):
            if candidate is marker:
                return decision
        return Decision(hidden=False)

    def classify_scope(self, scope: Tag, policy: PolicySet) -> Classification:
        """Decisions for all markers in `scope`, in document order."""
        markers = scope.find_all(self.marker_tag)
        if policy.hide_all_global:
            return [(m, Decision(True, RuleTag.GLOBAL_HIDE_ALL)) for m in markers]
        if policy.hide_all_in_scope:
            return [(m, Decision(True, RuleTag.SCOPE_HIDE_ALL)) for m in markers]
        if policy.classification_strategy == ClassificationStrategy.NEIGHBORS:
            return [(m, self._classify_by_neighbors(m)) for m in markers]
        return self._classify_layered(scope, markers, policy)

    # Layered rules

    def _classify_layered(self, scope: Tag, markers: List[Tag], policy: PolicySet) -> Classification:
        decisions: Dict[int, Decision] = {id(m): Decision(hidden=False) for m in markers}

        if policy.hide_leading:
            leading = self.find_leading_marker(scope)
            if leading is not None:
                decisions[id(leading)] = Decision(True, RuleTag.LEADING)

        if policy.merge_consecutive:
            self._merge_consecutive(markers, decisions)

        if policy.smart_external:
            for marker in markers:
                if self.is_wrapped(marker, scope):
                    # Block context exempts the marker from earlier rules.
                    decisions[id(marker)] = Decision(False, RuleTag.SMART_EXTERNAL_WRAPPED)
                elif not decisions[id(marker)].hidden:
                    decisions[id(marker)] = Decision(True, RuleTag.SMART_EXTERNAL_NAKED)

        return [(m, decisions[id(m)]) for m in markers]

    def find_leading_marker(self, scope: Tag) -> Optional[Tag]:
        """The marker reached first when reading `scope` from the start.

        Whitespace and non-textual wrappers are skipped (descended
        into); the first text or inline text element ends the search.
        """
        for node in scope.descendants:
            if nodes.is_insignificant(node):
                continue
            if nodes.is_marker(node, self.marker_tag):
                return node
            if nodes.is_text(node) or nodes.is_textual(node, self.marker_tag):
                return None
        return None

    def _merge_consecutive(self, markers: List[Tag], decisions: Dict[int, Decision]) -> None:
        consumed = set()
        for marker in markers:
            # Only a still-visible marker anchors a run.
            if id(marker) in consumed or decisions[id(marker)].hidden:
                continue
            sibling = nodes.next_significant_sibling(marker)
            while nodes.is_marker(sibling, self.marker_tag):
                consumed.add(id(sibling))
                if id(sibling) in decisions and not decisions[id(sibling)].hidden:
                    decisions[id(sibling)] = Decision(True, RuleTag.MERGE_CONSECUTIVE)
                sibling = nodes.next_significant_sibling(sibling)

    def is_wrapped(self, marker: Tag, scope: Tag) -> bool:
        """True when a block-context ancestor sits between marker and scope."""
        parent = marker.parent
        while parent is not None and parent is not scope:
            if parent.name in nodes.BLOCK_CONTEXT_TAGS:
                return True
            parent = parent.parent
        return False

    # Neighbour strategy

    def _classify_by_neighbors(self, marker: Tag) -> Decision:
        previous = nodes.previous_significant_sibling(marker)
        following = nodes.next_significant_sibling(marker)
        if (
            previous is not None and following is not None
            and nodes.is_textual(previous, self.marker_tag)
            and nodes.is_textual(following, self.marker_tag)
        ):
            return Decision(hidden=False)
        return Decision(True, RuleTag.NEIGHBOR_CONTEXT)
