"""Forward messages from a source namespace to a destination namespace.

This module provides a CLI that runs the forwarding orchestrator once, or
repeatedly with a sleep between runs until interrupted. Options override
the BUS_RELAY_* settings.
"""

import os
import time
from typing import Any

import click
import dotenv
from pydantic import ValidationError

from bus_relay.activity_log import configure_logging
from bus_relay.config import Settings, get_settings
from bus_relay.orchestrator import ForwardingOrchestrator


def load_settings(env_file: str | None = None, **overrides: Any) -> Settings:
    """Load settings, applying CLI overrides, and check both connection strings are set.

    Raises:
        click.ClickException: If a connection string is missing or a value is invalid.
    """
    if env_file:
        dotenv.load_dotenv(env_file, override=True)
    elif os.path.exists(".env"):
        dotenv.load_dotenv()
    try:
        settings = get_settings(**overrides)
        settings.ignore_patterns()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    if not settings.source_connection_string:
        raise click.ClickException("No source connection string provided")
    if not settings.destination_connection_string:
        raise click.ClickException("No destination connection string provided")
    return settings


@click.command()
@click.option("--source", type=str, required=False, help="Connection string of the source namespace")
@click.option("--destination", type=str, required=False, help="Connection string of the destination namespace")
@click.option("--ignore-queues", type=str, required=False, help="Comma-separated queue path patterns to skip")
@click.option("--ignore-topics", type=str, required=False, help="Comma-separated topic path patterns to skip")
@click.option(
    "--ignore-subscriptions",
    type=str,
    required=False,
    help="Comma-separated subscription name patterns to skip",
)
@click.option("--batch-size", type=int, required=False, help="Messages to receive per batch")
@click.option("--sleep-seconds", type=int, required=False, help="Seconds to sleep between runs")
@click.option("--log-messages/--no-log-messages", default=None, help="Write forwarded messages to the message log")
@click.option("--once", is_flag=True, default=False, help="Run a single time and exit")
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), required=False, help="Settings file")
def main(**kwargs: Any) -> None:
    """Forward messages from every queue and topic subscription to the destination.

    Only entities that exist in both namespaces and match no ignore pattern
    are processed. Without --once the relay sleeps between runs until
    interrupted with Ctrl+C.
    """
    settings = load_settings(
        env_file=kwargs["env_file"],
        source_connection_string=kwargs["source"],
        destination_connection_string=kwargs["destination"],
        ignore_queues=kwargs["ignore_queues"],
        ignore_topics=kwargs["ignore_topics"],
        ignore_subscriptions=kwargs["ignore_subscriptions"],
        messages_to_handle_at_once=kwargs["batch_size"],
        service_sleep_time_seconds=kwargs["sleep_seconds"],
        log_messages=kwargs["log_messages"],
    )
    activity_log, message_log = configure_logging(settings.log_dir, settings.log_messages, settings.log_level)

    try:
        orchestrator = ForwardingOrchestrator.from_settings(settings, activity_log, message_log)
    except ValueError as e:
        raise click.ClickException(f"Error connecting: {e}") from e
    try:
        while True:
            orchestrator.run()
            if kwargs["once"]:
                break
            click.echo(f"\n\n -- Sleeping for {settings.service_sleep_time_seconds} seconds - Press Ctrl+C to exit --\n\n")
            time.sleep(settings.service_sleep_time_seconds)
    except KeyboardInterrupt:
        click.echo("Stopping")
    finally:
        orchestrator.close()


if __name__ == "__main__":
    main()
