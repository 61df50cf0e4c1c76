#!/usr/bin/env python3
"""devbridge device agent - CLI entry point."""

import asyncio
import os
import signal
import sys
from pathlib import Path

import click
import sentry_sdk

from devbridge_agent import __version__
from devbridge_agent.client import DeviceAgentClient
from devbridge_agent.config import load_config
from devbridge_shared import SentryConfig, configure_logging, init_sentry

_sentry_enabled = init_sentry(
    "devbridge-agent",
    SentryConfig(
        service_name="devbridge-agent",
        dsn=os.environ.get("SENTRY_DSN"),
        environment=os.environ.get("ENVIRONMENT", "development"),
        release=f"devbridge-agent@{__version__}",
        enable_web_integrations=False,
    ),
)


@click.group()
@click.version_option(version=__version__, prog_name="devbridge-agent")
def cli() -> None:
    """devbridge device agent.

    Keeps an outbound connection to the control plane and opens a local
    forwarder when a tunnel is requested for this device.
    """


@cli.command()
@click.option("--device-id", envvar="DEVBRIDGE_AGENT_DEVICE_ID", help="Device identifier")
@click.option("--token", envvar="DEVBRIDGE_AGENT_DEVICE_TOKEN", help="Device shared key")
@click.option(
    "--url",
    envvar="DEVBRIDGE_AGENT_CONTROL_PLANE_URL",
    default=None,
    help="Control plane URL (overrides config file)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to config file",
)
def start(
    device_id: str | None,
    token: str | None,
    url: str | None,
    config_file: Path | None,
) -> None:
    """Start the device agent.

    Configuration is loaded from (in priority order):
    1. Command line arguments
    2. Environment variables (DEVBRIDGE_AGENT_*)
    3. Config file (~/.config/devbridge/agent.toml or --config)
    """
    config = load_config(config_file)

    if device_id:
        config = config.model_copy(update={"device_id": device_id})
    if token:
        config = config.model_copy(update={"device_token": token})
    if url:
        config = config.model_copy(update={"control_plane_url": url})

    logger = configure_logging(
        "devbridge-agent",
        log_level=config.log_level.upper(),
        json_format=False,
    )

    if not config.device_id or not config.device_token:
        click.echo(
            click.style("Error: ", fg="red", bold=True)
            + "Device id and token are required.\n\n"
            "Run:\n"
            "  devbridge-agent start --device-id my-device --token <key>\n\n"
            "Or set DEVBRIDGE_AGENT_DEVICE_ID and DEVBRIDGE_AGENT_DEVICE_TOKEN.",
            err=True,
        )
        sys.exit(1)

    click.echo(
        click.style("devbridge agent ", fg="cyan", bold=True)
        + click.style(f"v{__version__}", fg="cyan")
    )
    click.echo(f"  Device: {config.device_id}")
    click.echo(f"  Control plane: {config.control_plane_url}")
    click.echo(f"  Service: {config.service_protocol} on port {config.service_port}")
    click.echo()

    client = DeviceAgentClient(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        click.echo("\nShutting down...")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    exit_code = 0
    try:
        loop.run_until_complete(client.run(shutdown_event))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error("Agent stopped with an error", error=str(e))
        exit_code = 1
    finally:
        loop.run_until_complete(client.shutdown())
        if _sentry_enabled:
            sentry_sdk.flush(timeout=2.0)
        loop.close()

    click.echo("Agent stopped.")
    sys.exit(exit_code)


@cli.command()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to config file",
)
def check(config_file: Path | None) -> None:
    """Check that the forwarder binaries for each backend are installed."""
    import shutil

    from devbridge_shared.models import BackendKind

    config = load_config(config_file)
    click.echo(click.style("System Check", fg="cyan", bold=True))
    click.echo()

    all_ok = True
    for kind in BackendKind:
        binary = config.forwarder_command(kind)[0]
        path = shutil.which(binary)
        label = click.style(f"  {kind.value}: ", bold=True)
        if path:
            click.echo(label + click.style("OK", fg="green") + f" ({path})")
        else:
            click.echo(label + click.style("NOT FOUND", fg="yellow") + f" ({binary})")
            all_ok = False

    click.echo()
    if all_ok:
        click.echo(click.style("All checks passed!", fg="green", bold=True))
    else:
        click.echo(click.style("Some forwarders are missing.", fg="yellow", bold=True))
        sys.exit(1)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"devbridge-agent v{__version__}")


if __name__ == "__main__":
    cli()
