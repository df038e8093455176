"""Forward messages from a source namespace to a destination namespace.

One run processes every queue, then every topic subscription, that exists
in both namespaces and is not ignored. Failures are contained: an entity
that fails is logged and skipped, and a failure outside any entity ends
the run early without raising.
"""

from bus_relay.activity_log import ActivityLog, MessageLog, NullMessageLog
from bus_relay.broker_base import NamespaceBase
from bus_relay.config import Settings
from bus_relay.entity_model_dto import EntityDescriptor, IgnorePatterns
from bus_relay.forwarders import ForwardedIdSet, QueueForwarder, SubscriptionForwarder
from bus_relay.patterns import is_ignored


class ForwardingOrchestrator:
    """Single-shot relay between two namespaces.

    run() holds no state between invocations except the namespaces; the
    ForwardedIdSet is created per run.
    """

    def __init__(
        self,
        source: NamespaceBase,
        destination: NamespaceBase,
        ignore_patterns: IgnorePatterns | None = None,
        batch_size: int = 10,
        wait_timeout: float = 1.0,
        activity_log: ActivityLog | None = None,
        message_log: MessageLog | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.source = source
        self.destination = destination
        self.ignore_patterns = ignore_patterns or IgnorePatterns()
        self.activity_log = activity_log or ActivityLog()
        self.message_log = message_log or NullMessageLog()
        self.queue_forwarder = QueueForwarder(self.activity_log, self.message_log, batch_size, wait_timeout)
        self.subscription_forwarder = SubscriptionForwarder(
            self.activity_log, self.message_log, batch_size, wait_timeout
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        activity_log: ActivityLog | None = None,
        message_log: MessageLog | None = None,
    ) -> "ForwardingOrchestrator":
        """Build an orchestrator over two Service Bus namespaces."""
        from bus_relay.broker_servicebus import ServiceBusNamespace

        return cls(
            source=ServiceBusNamespace(settings.source_connection_string),
            destination=ServiceBusNamespace(settings.destination_connection_string),
            ignore_patterns=settings.ignore_patterns(),
            batch_size=settings.messages_to_handle_at_once,
            wait_timeout=settings.server_wait_time,
            activity_log=activity_log,
            message_log=message_log,
        )

    def run(self) -> None:
        """Forward everything forwardable once; never raises."""
        try:
            self.activity_log.log("Running")
            self.process_queues()
            self.process_topics(ForwardedIdSet())
            self.activity_log.log("Finished running")
        except Exception as e:
            self.activity_log.error(f"! Exception: {e}\n\n", 0, 2)

    def plan(self) -> list[dict]:
        """Describe what run() would do with each source entity, without receiving anything.

        Each entry has the entity label and an action: forward, ignore or missing.
        Subscriptions are only listed for topics that would be processed.
        """
        entries = []
        destination_queues = {queue.path for queue in self.destination.list_queues()}
        for queue in self.source.list_queues():
            if is_ignored(queue.path, self.ignore_patterns.queues):
                action = "ignore"
            elif queue.path not in destination_queues:
                action = "missing"
            else:
                action = "forward"
            entries.append({"entity": queue.label, "kind": queue.kind.value, "action": action})

        destination_topics = {topic.path for topic in self.destination.list_topics()}
        for topic in self.source.list_topics():
            if is_ignored(topic.path, self.ignore_patterns.topics):
                entries.append({"entity": topic.label, "kind": topic.kind.value, "action": "ignore"})
                continue
            if topic.path not in destination_topics:
                entries.append({"entity": topic.label, "kind": topic.kind.value, "action": "missing"})
                continue
            entries.append({"entity": topic.label, "kind": topic.kind.value, "action": "forward"})
            for subscription in self.source.list_subscriptions(topic.path):
                action = "ignore" if is_ignored(subscription.name, self.ignore_patterns.subscriptions) else "forward"
                entries.append({"entity": subscription.label, "kind": subscription.kind.value, "action": action})
        return entries

    def close(self) -> None:
        """Close both namespaces."""
        try:
            self.source.close()
        finally:
            self.destination.close()

    def process_queues(self) -> None:
        queues = self.source.list_queues()
        destination_queues = {queue.path for queue in self.destination.list_queues()}

        self.activity_log.log(f"{len(queues)} queue(s) found")

        for queue in queues:
            if is_ignored(queue.path, self.ignore_patterns.queues):
                self.activity_log.log(f"Ignoring queue: [{queue.path}]")
            elif queue.path not in destination_queues:
                self.activity_log.log(f"Skipping queue, which does not exist in destination: [{queue.path}]")
            else:
                self.process_queue(queue)

    def process_queue(self, queue: EntityDescriptor) -> None:
        try:
            with (
                self.source.open_queue_receiver(queue.path) as source,
                self.destination.open_queue_sender(queue.path) as destination,
            ):
                self.queue_forwarder.forward(source, destination, queue.requires_session)
        except Exception as e:
            self.activity_log.error(f"! Exception processing [{queue.path}] queue: {e}\n\n", 0, 2)

    def process_topics(self, forwarded_ids: ForwardedIdSet) -> None:
        topics = [topic.path for topic in self.source.list_topics()]
        destination_topics = {topic.path for topic in self.destination.list_topics()}

        self.activity_log.log(f"{len(topics)} topic(s) found")

        for topic in topics:
            if is_ignored(topic, self.ignore_patterns.topics):
                self.activity_log.log(f"Ignoring topic: [{topic}]")
            elif topic not in destination_topics:
                # nothing to forward to, draining would lose the messages
                self.activity_log.log(f"Skipping topic, which does not exist in destination: [{topic}]")
            else:
                self.process_topic(topic, forwarded_ids)

    def process_topic(self, topic: str, forwarded_ids: ForwardedIdSet) -> None:
        self.activity_log.log(f"[{topic}] - Processing topic ", 0, 1)

        subscriptions = self.source.list_subscriptions(topic)

        self.activity_log.log(f"[{topic}] - {len(subscriptions)} subscription(s) found")

        for subscription in subscriptions:
            if is_ignored(subscription.name, self.ignore_patterns.subscriptions):
                self.activity_log.log(f"Ignoring subscription: [{topic}].[{subscription.name}]")
            else:
                self.process_subscription(topic, subscription, forwarded_ids)

        self.activity_log.log(f"[{topic}] - Completed processing topic")

    def process_subscription(
        self, topic: str, subscription: EntityDescriptor, forwarded_ids: ForwardedIdSet
    ) -> None:
        try:
            with (
                self.source.open_subscription_receiver(topic, subscription.name) as source,
                self.destination.open_topic_sender(topic) as destination,
            ):
                self.subscription_forwarder.forward(
                    source,
                    destination,
                    subscription.requires_session,
                    forwarded_ids,
                    topic_path=topic,
                )
        except Exception as e:
            self.activity_log.error(
                f"! Exception processing [{topic}].[{subscription.name}] subscription: {e}\n\n", 0, 2
            )
