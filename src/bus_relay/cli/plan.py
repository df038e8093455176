"""Show what a forwarding run would do.

CLI that lists every source queue, topic and subscription with the action a
run would take on it (forward, ignore, missing), without receiving messages.
"""

from typing import Any

import click
from icecream import ic

from bus_relay.cli.run import load_settings
from bus_relay.orchestrator import ForwardingOrchestrator

ACTION_COLOURS = {"forward": "green", "ignore": "yellow", "missing": "red"}


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
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), required=False, help="Settings file")
@click.option("--debug", is_flag=True, default=False, help="Dump the raw plan entries")
def main(**kwargs: Any) -> list[dict]:
    """Print the action a run would take for each source entity."""
    settings = load_settings(
        env_file=kwargs["env_file"],
        source_connection_string=kwargs["source"],
        destination_connection_string=kwargs["destination"],
        ignore_queues=kwargs["ignore_queues"],
        ignore_topics=kwargs["ignore_topics"],
        ignore_subscriptions=kwargs["ignore_subscriptions"],
    )

    try:
        orchestrator = ForwardingOrchestrator.from_settings(settings)
    except ValueError as e:
        raise click.ClickException(f"Error connecting: {e}") from e
    try:
        entries = orchestrator.plan()
    except Exception as e:
        raise click.ClickException(f"Error listing entities: {e}") from e
    finally:
        orchestrator.close()

    if kwargs["debug"]:
        ic(entries)
    for entry in entries:
        click.secho(
            f"{entry['action']:<8} {entry['kind']:<13} {entry['entity']}",
            fg=ACTION_COLOURS[entry["action"]],
        )
    return entries


if __name__ == "__main__":
    main()
