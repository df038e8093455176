"""Abstract base for message broker namespaces.

Defines the interface the forwarding engine consumes: entity discovery,
opening receive/send endpoints, batch receive, session access and
per-message completion. Implementations (e.g. ServiceBusNamespace) talk
to a concrete broker.
"""

import re
from abc import ABC, abstractmethod

from bus_relay.entity_model_dto import EntityDescriptor


class InboundMessage(ABC):
    """A message received from a source endpoint.

    The engine only reads the id, session id and body, then either clones
    it for publication or completes it at the source.
    """

    @property
    @abstractmethod
    def message_id(self) -> str:
        """Broker message identifier."""
        pass

    @property
    @abstractmethod
    def session_id(self) -> str | None:
        """Session the message belongs to, if any."""
        pass

    @property
    @abstractmethod
    def body(self) -> bytes:
        """Raw message body."""
        pass

    @abstractmethod
    def complete(self) -> None:
        """Acknowledge the message, removing it from the source."""
        pass

    @abstractmethod
    def clone(self) -> object:
        """Return a publishable copy keeping body, session id and custom metadata."""
        pass


class Endpoint(ABC):
    """A handle on one entity of a namespace; released with close()."""

    @property
    @abstractmethod
    def path(self) -> str:
        """Path of the entity this endpoint is bound to."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the endpoint; safe to call more than once."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class Receiver(Endpoint):
    """Receive side of a queue or subscription, or one locked session of it."""

    @abstractmethod
    def receive_batch(self, max_count: int, wait_timeout: float) -> list[InboundMessage]:
        """Receive up to max_count messages; empty when nothing arrives within wait_timeout."""
        pass

    @abstractmethod
    def list_session_ids(self, wait_timeout: float) -> list[str]:
        """Return the ids of the currently active sessions, leaving none of them locked."""
        pass

    @abstractmethod
    def accept_session(self, session_id: str, wait_timeout: float) -> "Receiver":
        """Lock the given session and return a receiver bound to it."""
        pass


class Sender(Endpoint):
    """Send side of a queue or topic."""

    @abstractmethod
    def send(self, message: object) -> None:
        """Publish a message produced by InboundMessage.clone()."""
        pass


class NamespaceBase(ABC):
    """Abstract base class for a broker namespace.

    Implementations must provide entity discovery and endpoint construction.
    Endpoints returned here are owned by the caller and must be closed.
    """

    @abstractmethod
    def list_queues(self) -> list[EntityDescriptor]:
        """Return all queues of the namespace."""
        pass

    @abstractmethod
    def list_topics(self) -> list[EntityDescriptor]:
        """Return all topics of the namespace."""
        pass

    @abstractmethod
    def list_subscriptions(self, topic_path: str) -> list[EntityDescriptor]:
        """Return the subscriptions of the given topic."""
        pass

    @abstractmethod
    def open_queue_receiver(self, path: str) -> Receiver:
        pass

    @abstractmethod
    def open_queue_sender(self, path: str) -> Sender:
        pass

    @abstractmethod
    def open_topic_sender(self, path: str) -> Sender:
        pass

    @abstractmethod
    def open_subscription_receiver(self, topic_path: str, name: str) -> Receiver:
        pass

    @abstractmethod
    def close(self) -> None:
        """Release connections held by the namespace."""
        pass


def single_line_content(message: InboundMessage) -> str:
    """Return the message body as text with line breaks removed."""
    return re.sub(r"\r\n?|\n", "", message.body.decode("utf-8", errors="replace"))
