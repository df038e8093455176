"""Queue and subscription forwarders.

Both dispatch to the session or plain drain depending on the source
entity. The subscription forwarder also consults a run-scoped
ForwardedIdSet so a topic message delivered to several subscriptions is
published to the destination topic only once.
"""

import threading

from bus_relay.activity_log import ActivityLog, MessageLog, NullMessageLog
from bus_relay.broker_base import Receiver, Sender
from bus_relay.drain import drain, drain_sessions


class ForwardedIdSet:
    """Ids of the messages published to the destination during one run."""

    def __init__(self) -> None:
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def __contains__(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def add(self, message_id: str) -> bool:
        """Record message_id; returns False if it was already recorded."""
        with self._lock:
            if message_id in self._ids:
                return False
            self._ids.add(message_id)
            return True

    def claim(self, message_id: str) -> bool:
        """Atomically reserve message_id for publication; False if another caller holds it."""
        return self.add(message_id)

    def discard(self, message_id: str) -> None:
        """Release a claimed id whose publication failed."""
        with self._lock:
            self._ids.discard(message_id)


class _Forwarder:
    def __init__(
        self,
        activity_log: ActivityLog | None = None,
        message_log: MessageLog | None = None,
        batch_size: int = 10,
        wait_timeout: float = 1.0,
    ) -> None:
        self.activity_log = activity_log or ActivityLog()
        self.message_log = message_log or NullMessageLog()
        self.batch_size = batch_size
        self.wait_timeout = wait_timeout

    def _drain(self, source, destination, requires_session, label, **kwargs) -> int:
        if requires_session:
            result = drain_sessions(
                source,
                destination,
                self.batch_size,
                self.wait_timeout,
                activity_log=self.activity_log,
                message_log=self.message_log,
                label=label,
                **kwargs,
            )
        else:
            result = drain(
                source,
                destination,
                self.batch_size,
                self.wait_timeout,
                activity_log=self.activity_log,
                message_log=self.message_log,
                label=label,
                **kwargs,
            )
        return result.forwarded


class QueueForwarder(_Forwarder):
    """Forwards every message of a source queue to the destination queue."""

    def forward(self, source: Receiver, destination: Sender, requires_session: bool = False) -> int:
        """Drain source into destination; returns the number of messages forwarded."""
        label = f"[{source.path}]"
        if requires_session:
            self.activity_log.log(f"{label} - Processing queue requiring a session", 0, 1)
        else:
            self.activity_log.log(f"{label} - Processing queue")

        forwarded = self._drain(source, destination, requires_session, label, message_label=f"Queue: {label}")

        self.activity_log.log(f"{label} - Completed processing queue - {forwarded} message(s) forwarded")
        return forwarded


class SubscriptionForwarder(_Forwarder):
    """Forwards the messages of a subscription to the destination topic.

    Each message id is claimed in forwarded_ids before it is published. An id
    already claimed by another subscription of the same run is completed
    without being sent; a claim whose send fails is released.
    """

    def forward(
        self,
        source: Receiver,
        destination: Sender,
        requires_session: bool,
        forwarded_ids: ForwardedIdSet,
        topic_path: str = "",
    ) -> int:
        """Drain source into destination skipping already forwarded ids."""
        label = f"[{topic_path or destination.path}].[{source.path}]"
        if requires_session:
            self.activity_log.log(f"{label} - Processing subscription requiring a session")
        else:
            self.activity_log.log(f"{label} - Processing subscription")

        forwarded = self._drain(
            source,
            destination,
            requires_session,
            label,
            message_label=f"Subscription: {label}",
            should_forward=lambda message: forwarded_ids.claim(message.message_id),
            on_send_failed=forwarded_ids.discard,
        )

        self.activity_log.log(f"{label} - Completed processing subscription - {forwarded} message(s) forwarded")
        return forwarded
