"""
Marker state tracking: snapshot, hide and restore visual state.
"""

from typing import List

from bs4 import Tag

from shared.logging import get_logger
from ..document import nodes
from ..rules.models import RuleTag


PROCESSED_ATTR = "data-br-processed"
HIDDEN_BY_ATTR = "data-br-hidden-by"
ORIGINAL_DISPLAY_ATTR = "data-br-original-display"

TRACKING_ATTRS = (PROCESSED_ATTR, HIDDEN_BY_ATTR, ORIGINAL_DISPLAY_ATTR)


class MarkerStateTracker:
    """Records and restores the pre-modification visual state of markers.

    State lives on the markers themselves as data attributes, so a
    marker the host removes takes its tracking with it.
    """

    def __init__(self, marker_tag: str = "br"):
        self.marker_tag = marker_tag
        self.logger = get_logger("visibility.tracking")

    def is_processed(self, marker: Tag) -> bool:
        return marker.has_attr(PROCESSED_ATTR)

    def hidden_by(self, marker: Tag) -> str:
        return marker.get(HIDDEN_BY_ATTR, RuleTag.NONE.value)

    def snapshot_and_hide(self, marker: Tag, rule: RuleTag) -> None:
        # The first snapshot of a dirty cycle wins; later ones would
        # capture our own display:none.
        if not self.is_processed(marker):
            original = nodes.get_display(marker)
            if original is not None:
                marker[ORIGINAL_DISPLAY_ATTR] = original
            marker[PROCESSED_ATTR] = "true"
        nodes.set_display(marker, nodes.HIDDEN_DISPLAY)
        marker[HIDDEN_BY_ATTR] = RuleTag(rule).value

    def restore(self, marker: Tag) -> None:
        if not self.is_processed(marker):
            return
        nodes.set_display(marker, marker.get(ORIGINAL_DISPLAY_ATTR))
        for attr in TRACKING_ATTRS:
            if marker.has_attr(attr):
                del marker[attr]

    def revert_scope(self, scope: Tag) -> int:
        """Restore every processed marker under `scope`; returns how many."""
        touched = self.processed_markers(scope)
        for marker in touched:
            self.restore(marker)
        if touched:
            self.logger.debug("Scope reverted", markers=len(touched))
        return len(touched)

    def processed_markers(self, scope: Tag) -> List[Tag]:
        return scope.find_all(self.marker_tag, attrs={PROCESSED_ATTR: True})
