from .marker_state import MarkerStateTracker

__all__ = ["MarkerStateTracker"]
