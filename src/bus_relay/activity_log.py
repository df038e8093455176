"""Activity and message logging for forwarding runs.

The activity log narrates what a run does (entities found, batches
forwarded, failures). The message log is optional and records the content
of every forwarded message; NullMessageLog stands in when it is disabled.
"""

import logging
import os
from datetime import datetime, timezone

from bus_relay.broker_base import InboundMessage, single_line_content

ACTIVITY_LOGGER = "bus_relay.activity"
MESSAGE_LOGGER = "bus_relay.messages"
LOG_FORMAT = "%(asctime)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ActivityLog:
    """Indentation-aware wrapper around the activity logger.

    Top-level lines carry the timestamp; indented lines render as
    tab-prefixed ">> " details beneath them.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(ACTIVITY_LOGGER)

    @staticmethod
    def format(message: str, indent: int = 0, blank_lines: int = 0) -> str:
        prefix = "\t" * indent + ">> " if indent > 0 else ""
        return "\n" * blank_lines + prefix + message

    def log(self, message: str, indent: int = 0, blank_lines: int = 0) -> None:
        self.logger.info(self.format(message, indent, blank_lines))

    def error(self, message: str, indent: int = 0, blank_lines: int = 0) -> None:
        self.logger.error(self.format(message, indent, blank_lines))


class MessageLog:
    """Records the single-line content of each forwarded message."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(MESSAGE_LOGGER)

    def record(self, entity_label: str, message: InboundMessage) -> None:
        self.logger.info("%s\n%s\n", entity_label, single_line_content(message))


class NullMessageLog(MessageLog):
    """Message log used when message logging is disabled."""

    def __init__(self) -> None:
        self.logger = None

    def record(self, entity_label: str, message: InboundMessage) -> None:
        return None


def log_file_name(prefix: str, when: datetime | None = None) -> str:
    """Daily log file name, e.g. SBMF_ACTIVITY_LOG_20240131.log."""
    when = when or datetime.now(timezone.utc)
    return f"{prefix}_{when:%Y%m%d}.log"


def configure_logging(
    log_dir: str = "Logs",
    log_messages: bool = False,
    level: str = "INFO",
) -> tuple[ActivityLog, MessageLog]:
    """Attach console and daily file handlers; return the run's loggers.

    Returns a NullMessageLog when log_messages is False.
    """
    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    activity_logger = logging.getLogger(ACTIVITY_LOGGER)
    activity_logger.setLevel(level)
    activity_logger.propagate = False
    activity_logger.handlers.clear()
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    activity_logger.addHandler(console)
    activity_file = logging.FileHandler(os.path.join(log_dir, log_file_name("SBMF_ACTIVITY_LOG")))
    activity_file.setFormatter(formatter)
    activity_logger.addHandler(activity_file)

    if not log_messages:
        return ActivityLog(activity_logger), NullMessageLog()

    message_logger = logging.getLogger(MESSAGE_LOGGER)
    message_logger.setLevel(logging.INFO)
    message_logger.propagate = False
    message_logger.handlers.clear()
    message_file = logging.FileHandler(os.path.join(log_dir, log_file_name("SBMF_MESSAGE_LOG")))
    message_file.setFormatter(formatter)
    message_logger.addHandler(message_file)
    return ActivityLog(activity_logger), MessageLog(message_logger)
