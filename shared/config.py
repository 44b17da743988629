"""
Shared configuration management for the BR Visibility extension.
"""

from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_signal_delays() -> Dict[str, float]:
    return {
        "message_received": 0.1,
        "message_sent": 0.2,
        "message_swiped": 0.2,
        "message_edited": 0.2,
        "chat_id_changed": 0.5,
        "settings_updated": 0.05,
    }


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="BRVIS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Document tree
    scope_selectors: List[str] = Field(default_factory=lambda: [".mes_text"])
    message_selector: str = Field(default=".mes")
    message_id_attribute: str = Field(default="mesid")
    marker_tag: str = Field(default="br")
    edit_selector: str = Field(default="textarea#curEditTextarea, textarea.edit_textarea")

    # Scheduling
    mutation_debounce_seconds: float = Field(default=0.3)
    edit_exit_settle_seconds: float = Field(default=0.1)
    settings_change_delay_seconds: float = Field(default=0.05)
    signal_delays: Dict[str, float] = Field(default_factory=_default_signal_delays)

    # Host initialization
    init_max_attempts: int = Field(default=20)
    init_retry_delay_seconds: float = Field(default=0.5)

    # Policy persistence
    policy_backend: str = Field(default="memory")
    policy_file: Optional[str] = Field(default=None)
    redis_url: str = Field(default="redis://localhost:6379/0")
    policy_key: str = Field(default="brTagsVisibilityExtension")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "127.0.0.1"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
