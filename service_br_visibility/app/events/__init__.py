from .bus import EventSource, HostEvent
from .bridge import EventBridge

__all__ = ["EventBridge", "EventSource", "HostEvent"]
