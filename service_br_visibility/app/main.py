"""
BR Visibility service: wires the engine to a host and exposes the
settings surface over HTTP.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, MutableMapping, Optional

import pydantic
from fastapi import Body
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import PolicyPersistenceError, ValidationError
from shared.retry import RetryConfig

from .bootstrap import HostInitializer, InitState
from .context import EngineContext
from .document import LiveDocument
from .events import EventBridge, EventSource
from .rules.classifier import Classifier
from .rules.engine import RuleEngine
from .rules.models import BOOLEAN_POLICY_FIELDS, PolicySet
from .scheduling import AsyncioTimer, Scheduler, Timer
from .store import PolicyStore, build_policy_store
from .tracking import MarkerStateTracker
from .watch import MutationWatcher


SERVICE_NAME = "visibility"
SERVICE_PORT = 8020

TOGGLE_LABELS = {
    "hideAllGlobal": "Hide all line breaks on the page",
    "hideAllInScope": "Hide all line breaks in messages",
    "hideLeading": "Hide line breaks at the start of a message",
    "mergeConsecutive": "Collapse consecutive line breaks",
    "smartExternal": "Hide line breaks outside paragraphs (experimental)",
}


@dataclass
class HostContext:
    """What the chat host hands the extension. Any part may be missing."""
    document: Optional[LiveDocument] = None
    event_bus: Optional[Any] = None
    settings: Optional[MutableMapping[str, Any]] = None


@dataclass
class Notification:
    """Non-blocking message for the user."""
    level: str
    code: str
    message: str
    created_at: datetime = field(default_factory=datetime.now)


class SettingUpdate(BaseModel):
    """Request body for a single setting."""
    enabled: Optional[bool] = Field(None, description="New value for a boolean switch")
    value: Optional[str] = Field(None, description="New value for the strategy field")


class VisibilityService(BaseService):
    """Engine, watchers and settings surface for one host document."""

    def __init__(
        self,
        host: Optional[HostContext] = None,
        config: Optional[ServiceConfig] = None,
        timer: Optional[Timer] = None,
        store: Optional[PolicyStore] = None,
        notifier: Optional[Callable[[Notification], None]] = None,
    ):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        super().__init__(SERVICE_NAME, config.port, config)

        self.host = host or HostContext()
        self.timer = timer or AsyncioTimer()
        self.context = EngineContext()
        self.store = store or build_policy_store(self.config, self.host.settings)
        self.notifier = notifier
        self.notifications: List[Notification] = []

        self.tracker = MarkerStateTracker(self.config.marker_tag)
        self.classifier = Classifier(self.config.marker_tag)
        self.engine: Optional[RuleEngine] = None
        self.scheduler: Optional[Scheduler] = None
        self.watcher: Optional[MutationWatcher] = None
        self.bridge: Optional[EventBridge] = None

        self.initializer = HostInitializer(
            self._host_available,
            self._attach_to_host,
            self.timer,
            RetryConfig(
                max_attempts=self.config.init_max_attempts,
                base_delay=self.config.init_retry_delay_seconds,
                jitter=False,
                backoff_strategy="fixed"
            ),
        )

        self._setup_visibility_routes()

    # Lifecycle

    async def startup(self):
        self.context.policy = await self.store.load()
        self.initializer.start()

    async def shutdown(self):
        self.initializer.cancel()
        if self.scheduler:
            self.scheduler.cancel()
        if self.watcher:
            self.watcher.disconnect()
        if self.bridge:
            self.bridge.detach()
        await self.store.stop()

    def _host_available(self) -> bool:
        bus = self.host.event_bus
        return self.host.document is not None and callable(getattr(bus, "on", None))

    def _attach_to_host(self) -> None:
        document = self.host.document
        self.engine = RuleEngine(document, self.context, self.classifier, self.tracker, self.metrics)
        self.scheduler = Scheduler(self.engine, self.context, self.timer)
        self.watcher = MutationWatcher(
            document,
            self.scheduler,
            self.tracker,
            self.context,
            edit_selector=self.config.edit_selector,
            debounce_seconds=self.config.mutation_debounce_seconds,
            settle_seconds=self.config.edit_exit_settle_seconds,
        )
        self.bridge = EventBridge(
            self.scheduler,
            document,
            self.context,
            self.store,
            self.config.signal_delays,
        )
        self.bridge.attach(self.host.event_bus)
        self.watcher.observe()
        self.scheduler.schedule("init", 0.0)

    # Settings operations

    def toggle_descriptors(self) -> List[Dict[str, Any]]:
        stored = self.context.policy.to_storage()
        return [
            {"field": name, "label": TOGGLE_LABELS[name], "enabled": stored[name]}
            for name in BOOLEAN_POLICY_FIELDS
        ]

    async def update_policy(self, changes: Dict[str, Any], source: str = "settings") -> Optional[Notification]:
        """Update policy fields, persist, and schedule a run.

        A persistence failure does not undo the change; it is reported
        as a notification.
        """
        aliases = {name: info.alias or name for name, info in PolicySet.model_fields.items()}
        known = set(aliases.values())
        normalized = {aliases.get(key, key): value for key, value in changes.items()}
        unknown = sorted(set(normalized) - known)
        if unknown:
            raise ValidationError("Unknown policy fields", details={"fields": unknown})

        try:
            policy = PolicySet.model_validate({**self.context.policy.to_storage(), **normalized})
        except pydantic.ValidationError as e:
            raise ValidationError("Invalid policy values", details={"errors": [err["msg"] for err in e.errors()]})

        self.context.policy = policy
        notification = None
        try:
            await self.store.save(policy)
        except PolicyPersistenceError as e:
            notification = self.notify(Notification("warning", e.code, f"Settings were applied but not saved: {e.message}"))

        self.schedule_run(source, self.config.settings_change_delay_seconds)
        return notification

    async def set_policy_field(self, field_name: str, update: SettingUpdate) -> Optional[Notification]:
        if field_name == "classificationStrategy":
            value = update.value
        elif field_name in BOOLEAN_POLICY_FIELDS:
            value = update.enabled
        else:
            raise ValidationError("Unknown policy field", details={"field": field_name})
        if value is None:
            raise ValidationError("Missing value", details={"field": field_name})
        return await self.update_policy({field_name: value})

    def apply_now(self) -> bool:
        return self.schedule_run("manual", 0.0)

    def schedule_run(self, source: str, delay: float) -> bool:
        """Schedule a global run; before the host is ready this is a no-op."""
        if self.scheduler is None:
            self.logger.info("Run not scheduled, host not ready", source=source)
            return False
        self.scheduler.schedule(source, delay)
        return True

    def notify(self, notification: Notification) -> Notification:
        self.notifications.append(notification)
        self.logger.warning("User notification", code=notification.code, message=notification.message)
        if self.notifier:
            self.notifier(notification)
        return notification

    async def _check_dependencies(self) -> Dict[str, Any]:
        last_run = self.context.last_run
        return {
            "status": "ok" if self.initializer.state == InitState.READY else self.initializer.state.value,
            "host": self.initializer.state.value,
            "init_attempts": self.initializer.attempts,
            "last_run": last_run.summary() if last_run else None,
        }

    def _settings_payload(self, notification: Optional[Notification] = None, scheduled: bool = False) -> Dict[str, Any]:
        return {
            "policy": self.context.policy.to_storage(),
            "toggles": self.toggle_descriptors(),
            "scheduled": scheduled,
            "warning": notification.message if notification else None,
        }

    def _setup_visibility_routes(self):
        """Set up settings routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": SERVICE_NAME,
                "message": "BR Visibility - line break visibility rules",
                "version": "1.0.0",
                "capabilities": ["rule_engine", "mutation_watch", "host_events", "policy_store"]
            }

        @self.app.get("/settings")
        async def get_settings():
            return self._settings_payload()

        @self.app.put("/settings")
        async def replace_settings(changes: Dict[str, Any] = Body(...)):
            notification = await self.update_policy(changes)
            return self._settings_payload(notification, scheduled=self.scheduler is not None)

        @self.app.put("/settings/{field_name}")
        async def update_setting(field_name: str, update: SettingUpdate):
            notification = await self.set_policy_field(field_name, update)
            return self._settings_payload(notification, scheduled=self.scheduler is not None)

        @self.app.post("/apply")
        async def apply():
            return {"scheduled": self.apply_now()}


def create_app(host: Optional[HostContext] = None, **kwargs):
    """Create the FastAPI application."""
    service = VisibilityService(host=host, **kwargs)
    return service.app


if __name__ == "__main__":
    standalone_config = get_config(SERVICE_NAME, SERVICE_PORT)
    VisibilityService(
        host=HostContext(
            document=LiveDocument.from_config(standalone_config, "<html><body></body></html>"),
            event_bus=EventSource(),
        ),
        config=standalone_config,
    ).run()
