"""Messaging entity data transfer objects.

Defines the shape of the entities discovered on a namespace (queues, topics,
subscriptions) and the ignore patterns applied to them during a run.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bus_relay.patterns import split_patterns


class EntityKind(str, Enum):
    """Kind of messaging entity."""

    QUEUE = "queue"
    TOPIC = "topic"
    SUBSCRIPTION = "subscription"


class EntityDescriptor(BaseModel):
    """A queue, topic or subscription as listed on a namespace.

    For subscriptions, path is the subscription name and parent_path the topic path.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Entity path (subscription name for subscriptions)")
    kind: EntityKind = Field(..., description="Kind of entity")
    requires_session: bool = Field(False, description="Messages must be consumed through sessions")
    parent_path: str | None = Field(None, description="Topic path, for subscriptions only")

    @property
    def name(self) -> str:
        """Last path segment; the subscription name for subscriptions."""
        return self.path.rsplit("/", 1)[-1]

    @property
    def label(self) -> str:
        """Log form of the entity, e.g. [orders] or [orders].[audit]."""
        if self.kind == EntityKind.SUBSCRIPTION:
            return f"[{self.parent_path}].[{self.name}]"
        return f"[{self.path}]"


class IgnorePatterns(BaseModel):
    """Case-insensitive regular expressions excluding entities from a run."""

    model_config = ConfigDict(frozen=True)

    queues: tuple[str, ...] = Field((), description="Patterns matched against queue paths")
    topics: tuple[str, ...] = Field((), description="Patterns matched against topic paths")
    subscriptions: tuple[str, ...] = Field((), description="Patterns matched against subscription names")

    @field_validator("queues", "topics", "subscriptions")
    @classmethod
    def check_compiles(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for pattern in value:
            try:
                re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
        return value

    @classmethod
    def parse(
        cls,
        queues: str | None = None,
        topics: str | None = None,
        subscriptions: str | None = None,
    ) -> "IgnorePatterns":
        """Build from comma-separated strings; blank entries are dropped."""
        return cls(
            queues=split_patterns(queues),
            topics=split_patterns(topics),
            subscriptions=split_patterns(subscriptions),
        )
