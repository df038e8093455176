"""Application settings loaded from the environment.

Uses pydantic-settings for validation. Values come from BUS_RELAY_* environment
variables or a .env file in the working directory.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bus_relay.entity_model_dto import IgnorePatterns


class Settings(BaseSettings):
    """Runtime settings for the relay (connections, ignore lists, batching, logging)."""

    model_config = SettingsConfigDict(env_prefix="BUS_RELAY_", env_file=".env", extra="ignore")

    app_name: str = Field(default="Service Bus Message Forwarder")
    source_connection_string: str | None = Field(default=None)
    destination_connection_string: str | None = Field(default=None)
    ignore_queues: str = Field(default="", description="Comma-separated queue path patterns")
    ignore_topics: str = Field(default="", description="Comma-separated topic path patterns")
    ignore_subscriptions: str = Field(default="", description="Comma-separated subscription name patterns")
    messages_to_handle_at_once: int = Field(default=10, ge=1)
    server_wait_time: float = Field(default=1.0, gt=0, description="Seconds a receive may block")
    service_sleep_time_seconds: int = Field(default=10, ge=0)
    log_messages: bool = Field(default=False)
    log_dir: str = Field(default="Logs")
    log_level: str = Field(default="INFO")

    def ignore_patterns(self) -> IgnorePatterns:
        """Parse the three ignore lists."""
        return IgnorePatterns.parse(self.ignore_queues, self.ignore_topics, self.ignore_subscriptions)


def get_settings(**overrides) -> Settings:
    """Return a freshly loaded settings instance; None overrides are ignored."""
    return Settings(**{key: value for key, value in overrides.items() if value is not None})
