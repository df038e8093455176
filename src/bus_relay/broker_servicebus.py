"""Azure Service Bus backed namespace.

Uses the azure-servicebus library: the administration client for entity
discovery and the data-plane client for receivers and senders.
"""

import logging

from azure.servicebus import (
    NEXT_AVAILABLE_SESSION,
    ServiceBusClient,
    ServiceBusMessage,
    ServiceBusReceivedMessage,
    ServiceBusReceiver,
)
from azure.servicebus.amqp import (
    AmqpAnnotatedMessage,
    AmqpMessageBodyType,
    AmqpMessageHeader,
    AmqpMessageProperties,
)
from azure.servicebus.exceptions import OperationTimeoutError
from azure.servicebus.management import ServiceBusAdministrationClient

from bus_relay.broker_base import InboundMessage, NamespaceBase, Receiver, Sender
from bus_relay.entity_model_dto import EntityDescriptor, EntityKind

logger = logging.getLogger(__name__)


def message_body(message: ServiceBusReceivedMessage) -> bytes:
    """Return the body of a received message as bytes.

    Value and sequence bodies are rendered as text.
    """
    if message.body_type == AmqpMessageBodyType.VALUE:
        return str(message.body).encode("utf-8")
    if message.body_type == AmqpMessageBodyType.SEQUENCE:
        return str(list(message.body)).encode("utf-8")
    body = message.body
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return b"".join(section if isinstance(section, bytes) else bytes(section) for section in body)


def clone_message(message: ServiceBusReceivedMessage) -> ServiceBusMessage | AmqpAnnotatedMessage:
    """Copy a received message into a new outbound message with the same id and metadata.

    Data bodies become a ServiceBusMessage; value and sequence bodies are
    resent unchanged as an AmqpAnnotatedMessage.
    """
    if message.body_type == AmqpMessageBodyType.DATA:
        return ServiceBusMessage(
            body=message_body(message),
            application_properties=dict(message.application_properties or {}),
            session_id=message.session_id,
            message_id=message.message_id,
            content_type=message.content_type,
            correlation_id=message.correlation_id,
            subject=message.subject,
            to=message.to,
            reply_to=message.reply_to,
            reply_to_session_id=message.reply_to_session_id,
            time_to_live=message.time_to_live,
        )

    header = None
    if message.time_to_live is not None:
        header = AmqpMessageHeader(time_to_live=int(message.time_to_live.total_seconds() * 1000))
    properties = AmqpMessageProperties(
        message_id=message.message_id,
        to=message.to,
        subject=message.subject,
        reply_to=message.reply_to,
        correlation_id=message.correlation_id,
        content_type=message.content_type,
        group_id=message.session_id,
        reply_to_group_id=message.reply_to_session_id,
    )
    body = {"value_body": message.body}
    if message.body_type == AmqpMessageBodyType.SEQUENCE:
        body = {"sequence_body": list(message.body)}
    return AmqpAnnotatedMessage(
        header=header,
        properties=properties,
        application_properties=dict(message.application_properties or {}),
        **body,
    )


class ServiceBusInboundMessage(InboundMessage):
    """A received message bound to the receiver that must complete it."""

    def __init__(self, message: ServiceBusReceivedMessage, receiver: ServiceBusReceiver) -> None:
        self.message = message
        self.receiver = receiver

    @property
    def message_id(self) -> str:
        return self.message.message_id

    @property
    def session_id(self) -> str | None:
        return self.message.session_id

    @property
    def body(self) -> bytes:
        return message_body(self.message)

    def complete(self) -> None:
        self.receiver.complete_message(self.message)

    def clone(self) -> ServiceBusMessage | AmqpAnnotatedMessage:
        return clone_message(self.message)


class ServiceBusReceiverEndpoint(Receiver):
    """Receive side of a queue or subscription.

    With session_id set, the endpoint is bound to that locked session.
    The underlying receiver is opened on first use.
    """

    def __init__(
        self,
        client: ServiceBusClient,
        path: str,
        topic_path: str | None = None,
        session_id: str | None = None,
        wait_timeout: float | None = None,
    ) -> None:
        self.client = client
        self._path = path
        self.topic_path = topic_path
        self.session_id = session_id
        self.wait_timeout = wait_timeout
        self._receiver: ServiceBusReceiver | None = None

    @property
    def path(self) -> str:
        return self._path

    def _new_receiver(self, session_id: str | None = None, wait_timeout: float | None = None) -> ServiceBusReceiver:
        kwargs = {"max_wait_time": wait_timeout}
        if session_id is not None:
            kwargs["session_id"] = session_id
        if self.topic_path is not None:
            return self.client.get_subscription_receiver(
                topic_name=self.topic_path, subscription_name=self._path, **kwargs
            )
        return self.client.get_queue_receiver(queue_name=self._path, **kwargs)

    def open(self) -> ServiceBusReceiver:
        """Open the underlying receiver; for a session this locks it or times out."""
        if self._receiver is None:
            receiver = self._new_receiver(self.session_id, self.wait_timeout)
            receiver.__enter__()
            self._receiver = receiver
        return self._receiver

    def receive_batch(self, max_count: int, wait_timeout: float) -> list[InboundMessage]:
        receiver = self.open()
        messages = receiver.receive_messages(max_message_count=max_count, max_wait_time=wait_timeout)
        return [ServiceBusInboundMessage(message, receiver) for message in messages]

    def list_session_ids(self, wait_timeout: float) -> list[str]:
        """Lock each available session in turn to learn its id, then release them all.

        Browsed receivers stay open until enumeration ends so the broker hands
        out a different session on every accept.
        """
        session_ids: list[str] = []
        browsed: list[ServiceBusReceiver] = []
        try:
            while True:
                receiver = self._new_receiver(NEXT_AVAILABLE_SESSION, wait_timeout)
                try:
                    receiver.__enter__()
                except OperationTimeoutError:
                    receiver.close()
                    break
                browsed.append(receiver)
                session_id = receiver.session.session_id
                if session_id in session_ids:
                    break
                session_ids.append(session_id)
        finally:
            for receiver in browsed:
                receiver.close()
        logger.debug("Found %d active session(s) on %s", len(session_ids), self._path)
        return session_ids

    def accept_session(self, session_id: str, wait_timeout: float) -> Receiver:
        endpoint = ServiceBusReceiverEndpoint(
            self.client,
            self._path,
            topic_path=self.topic_path,
            session_id=session_id,
            wait_timeout=wait_timeout,
        )
        endpoint.open()
        return endpoint

    def close(self) -> None:
        if self._receiver is not None:
            self._receiver.close()
            self._receiver = None


class ServiceBusSenderEndpoint(Sender):
    """Send side of a queue or topic."""

    def __init__(self, client: ServiceBusClient, path: str, is_topic: bool = False) -> None:
        self.client = client
        self._path = path
        self.is_topic = is_topic
        self._sender = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def sender(self):
        if self._sender is None:
            if self.is_topic:
                self._sender = self.client.get_topic_sender(topic_name=self._path)
            else:
                self._sender = self.client.get_queue_sender(queue_name=self._path)
        return self._sender

    def send(self, message: ServiceBusMessage | AmqpAnnotatedMessage) -> None:
        self.sender.send_messages(message)

    def close(self) -> None:
        if self._sender is not None:
            self._sender.close()
            self._sender = None


class ServiceBusNamespace(NamespaceBase):
    """Namespace implementation over one Service Bus connection string."""

    def __init__(self, connection_string: str) -> None:
        """Create the administration and data-plane clients for the namespace."""
        if not connection_string:
            raise ValueError("A Service Bus connection string is required")
        self.admin = ServiceBusAdministrationClient.from_connection_string(connection_string)
        self.client = ServiceBusClient.from_connection_string(connection_string)

    def list_queues(self) -> list[EntityDescriptor]:
        return [
            EntityDescriptor(path=queue.name, kind=EntityKind.QUEUE, requires_session=bool(queue.requires_session))
            for queue in self.admin.list_queues()
        ]

    def list_topics(self) -> list[EntityDescriptor]:
        return [EntityDescriptor(path=topic.name, kind=EntityKind.TOPIC) for topic in self.admin.list_topics()]

    def list_subscriptions(self, topic_path: str) -> list[EntityDescriptor]:
        return [
            EntityDescriptor(
                path=subscription.name,
                kind=EntityKind.SUBSCRIPTION,
                requires_session=bool(subscription.requires_session),
                parent_path=topic_path,
            )
            for subscription in self.admin.list_subscriptions(topic_name=topic_path)
        ]

    def open_queue_receiver(self, path: str) -> Receiver:
        return ServiceBusReceiverEndpoint(self.client, path)

    def open_queue_sender(self, path: str) -> Sender:
        return ServiceBusSenderEndpoint(self.client, path)

    def open_topic_sender(self, path: str) -> Sender:
        return ServiceBusSenderEndpoint(self.client, path, is_topic=True)

    def open_subscription_receiver(self, topic_path: str, name: str) -> Receiver:
        return ServiceBusReceiverEndpoint(self.client, name, topic_path=topic_path)

    def close(self) -> None:
        """Close both clients; call when done to release connections."""
        try:
            self.client.close()
        finally:
            self.admin.close()
