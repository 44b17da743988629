"""
In-process host lifecycle bus.
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List

from shared.logging import get_logger


class HostEvent(str, Enum):
    """Lifecycle signals emitted by the chat host."""
    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    MESSAGE_SWIPED = "message_swiped"
    MESSAGE_EDITED = "message_edited"
    CHAT_CHANGED = "chat_id_changed"
    SETTINGS_UPDATED = "settings_updated"


class EventSource:
    """Named-event bus with sync or async handlers."""

    def __init__(self):
        self.logger = get_logger("visibility.events.bus")
        self._handlers: Dict[str, List[Callable[..., Any]]] = {}

    @staticmethod
    async def _await_if_needed(result):
        if asyncio.iscoroutine(result):
            return await result
        return result

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers.setdefault(str(event), []).append(handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        handlers = self._handlers.get(str(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(str(event), []))

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(str(event), [])):
            try:
                await self._await_if_needed(handler(*args))
            except Exception as e:
                self.logger.error("Event handler failed", signal=str(event), error=str(e), exc_info=True)
