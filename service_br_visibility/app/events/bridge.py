"""
Event bridge: host lifecycle signals to scheduled engine runs.
"""

from typing import Any, Callable, Dict, Mapping, Optional

from bs4 import Tag

from shared.errors import HostUnavailableError
from shared.logging import get_logger
from ..context import EngineContext
from ..document import LiveDocument
from ..scheduling import Scheduler
from ..store import PolicyStore
from .bus import HostEvent


# Signals whose payload names the affected message.
SCOPED_EVENTS = frozenset({
    HostEvent.MESSAGE_SENT,
    HostEvent.MESSAGE_RECEIVED,
    HostEvent.MESSAGE_SWIPED,
    HostEvent.MESSAGE_EDITED,
})

# Signals after which the persisted policy may differ from ours.
RELOAD_POLICY_EVENTS = frozenset({
    HostEvent.CHAT_CHANGED,
    HostEvent.SETTINGS_UPDATED,
})


class EventBridge:
    """Subscribes to host signals and schedules runs with per-signal delay."""

    def __init__(
        self,
        scheduler: Scheduler,
        document: LiveDocument,
        context: EngineContext,
        store: PolicyStore,
        signal_delays: Mapping[str, float],
        default_delay: float = 0.2,
    ):
        self.scheduler = scheduler
        self.document = document
        self.context = context
        self.store = store
        self.signal_delays = dict(signal_delays)
        self.default_delay = default_delay
        self.logger = get_logger("visibility.events.bridge")
        self._bus: Optional[Any] = None
        self._handlers: Dict[HostEvent, Callable[..., Any]] = {}

    @property
    def attached(self) -> bool:
        return self._bus is not None

    def attach(self, bus: Any) -> None:
        if bus is None or not callable(getattr(bus, "on", None)):
            raise HostUnavailableError("Host event bus unavailable")

        for event in HostEvent:
            handler = self._make_handler(event)
            bus.on(event.value, handler)
            self._handlers[event] = handler
        self._bus = bus
        self.logger.info("Subscribed to host events", events=[e.value for e in HostEvent])

    def detach(self) -> None:
        if self._bus is None:
            return
        off = getattr(self._bus, "off", None)
        if callable(off):
            for event, handler in self._handlers.items():
                off(event.value, handler)
        self._handlers.clear()
        self._bus = None

    def delay_for(self, event: str) -> float:
        return self.signal_delays.get(event, self.default_delay)

    async def on_signal(self, event: HostEvent, payload: Any = None) -> None:
        event = HostEvent(event)
        if event in RELOAD_POLICY_EVENTS:
            self.context.policy = await self.store.load()
            self.logger.info("Policy reloaded", signal=event.value)

        scope = self.resolve_scope(payload) if event in SCOPED_EVENTS else None
        self.scheduler.schedule(event.value, self.delay_for(event.value), scope)

    def resolve_scope(self, payload: Any) -> Optional[Tag]:
        message_id = payload
        if isinstance(payload, Mapping):
            message_id = payload.get("mesid", payload.get("message_id"))
        if isinstance(message_id, bool) or message_id is None:
            return None
        if isinstance(message_id, str) and not message_id.strip().isdigit():
            return None
        if not isinstance(message_id, (int, str)):
            return None
        return self.document.scope_by_message_id(str(message_id).strip())

    def _make_handler(self, event: HostEvent) -> Callable[..., Any]:
        async def handler(*args: Any) -> None:
            await self.on_signal(event, args[0] if args else None)
        return handler
