"""Drain a source endpoint into a destination endpoint.

drain() repeatedly receives a bounded batch, forwards each message and
completes it at the source, stopping at the first empty batch.
drain_sessions() runs drain() once per active session of a
session-partitioned entity.
"""

from collections.abc import Callable
from dataclasses import dataclass

from bus_relay.activity_log import ActivityLog, MessageLog, NullMessageLog
from bus_relay.broker_base import InboundMessage, Receiver, Sender


@dataclass
class DrainResult:
    """Counts for one drained endpoint."""

    received: int = 0
    forwarded: int = 0
    batches: int = 0

    @property
    def skipped(self) -> int:
        return self.received - self.forwarded


@dataclass
class SessionDrainResult:
    """Counts for all sessions of one entity. sessions == 0 means none existed."""

    sessions: int = 0
    received: int = 0
    forwarded: int = 0


def check_batch_size(batch_size: int) -> None:
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")


def drain(
    source: Receiver,
    destination: Sender,
    batch_size: int,
    wait_timeout: float,
    should_forward: Callable[[InboundMessage], bool] | None = None,
    on_forwarded: Callable[[str], None] | None = None,
    on_send_failed: Callable[[str], None] | None = None,
    activity_log: ActivityLog | None = None,
    message_log: MessageLog | None = None,
    label: str = "",
    message_label: str | None = None,
    in_session: bool = False,
) -> DrainResult:
    """Move every ready message from source to destination.

    Each received message is published (unless should_forward rejects it)
    and then completed at the source either way. A failed send or complete
    propagates immediately; messages already completed stay completed.

    Args:
        source: Endpoint to receive from.
        destination: Endpoint to publish clones to.
        batch_size: Maximum number of messages per receive call.
        wait_timeout: Seconds a receive call may block.
        should_forward: Optional predicate; rejected messages are only completed.
        on_forwarded: Called with the message id after each publish.
        on_send_failed: Called with the message id when its publish raises.
        activity_log: Destination of the per-batch progress lines.
        message_log: Records the content of forwarded messages.
        label: Entity label used in progress lines.
        message_label: Heading of message log entries; defaults to label.
        in_session: Source is a locked session; only changes log wording.
    Returns:
        Received, forwarded and batch counts.
    """
    check_batch_size(batch_size)
    activity_log = activity_log or ActivityLog()
    message_log = message_log or NullMessageLog()
    message_label = message_label or label

    result = DrainResult()
    while True:
        messages = source.receive_batch(batch_size, wait_timeout)
        if not messages:
            more = "more " if result.forwarded > 0 else ""
            suffix = " in this session" if in_session else ""
            activity_log.log(f"No {more}messages to process{suffix}", 1)
            return result

        result.batches += 1
        activity_log.log(f"Batch of {len(messages)} message(s) received for processing", 1)

        forwarded = 0
        for message in messages:
            result.received += 1
            if should_forward is None or should_forward(message):
                message_log.record(message_label, message)
                try:
                    destination.send(message.clone())
                except Exception:
                    if on_send_failed is not None:
                        on_send_failed(message.message_id)
                    raise
                forwarded += 1
                result.forwarded += 1
                if on_forwarded is not None:
                    on_forwarded(message.message_id)
            # duplicates are completed too, otherwise they stay on the losing subscription
            message.complete()

        summary = f"Processing complete: {forwarded} message(s) forwarded"
        if should_forward is not None:
            summary += f" ({len(messages) - forwarded} duplicate(s) from other subscriptions)"
        activity_log.log(summary, 1)


def drain_sessions(
    source: Receiver,
    destination: Sender,
    batch_size: int,
    wait_timeout: float,
    should_forward: Callable[[InboundMessage], bool] | None = None,
    on_forwarded: Callable[[str], None] | None = None,
    on_send_failed: Callable[[str], None] | None = None,
    activity_log: ActivityLog | None = None,
    message_log: MessageLog | None = None,
    label: str = "",
    message_label: str | None = None,
) -> SessionDrainResult:
    """Drain each session that is active when the call starts.

    Session ids are collected first (browsing leaves nothing locked), then
    each session is locked, drained and released in discovery order.
    Sessions appearing after discovery wait for the next run.
    """
    check_batch_size(batch_size)
    activity_log = activity_log or ActivityLog()

    session_ids = source.list_session_ids(wait_timeout)
    if not session_ids:
        activity_log.log("No sessions exist - no messages to forward", 1)
        return SessionDrainResult()

    result = SessionDrainResult()
    for session_id in session_ids:
        activity_log.log(f"{label} - Processing session ID: {session_id}")
        with source.accept_session(session_id, wait_timeout) as session:
            drained = drain(
                session,
                destination,
                batch_size,
                wait_timeout,
                should_forward=should_forward,
                on_forwarded=on_forwarded,
                on_send_failed=on_send_failed,
                activity_log=activity_log,
                message_log=message_log,
                label=label,
                message_label=message_label,
                in_session=True,
            )
        result.sessions += 1
        result.received += drained.received
        result.forwarded += drained.forwarded
    return result
