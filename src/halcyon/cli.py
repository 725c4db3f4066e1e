"""
Click command line for Halcyon.

    halcyon --config config.yml setup
    halcyon --config config.yml report
"""

import logging
import sys

import click

from .exceptions import HalcyonError
from .orchestrator import SetupOrchestrator
from .settings import SetupSettings

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default="config.yml",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Path to the YAML config file",
    envvar="HALCYON_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """Halcyon - Home Assistant companion for Linux machines."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _orchestrator(open_browser: bool = False) -> SetupOrchestrator:
    try:
        return SetupOrchestrator(SetupSettings.from_env(), open_browser=open_browser)
    except HalcyonError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--open-browser", is_flag=True, help="Open the authorize URL in a browser")
@click.pass_context
def setup(ctx: click.Context, open_browser: bool) -> None:
    """Authenticate with the hub and register this machine."""
    config_path = ctx.obj["config_path"]
    click.echo("Welcome to setup")

    orchestrator = _orchestrator(open_browser=open_browser)
    try:
        record = orchestrator.run_setup(config_path)
    except HalcyonError as e:
        click.echo(f"Setup failed: {e}", err=True)
        click.echo("Fix the cause and rerun setup; completed steps are kept.", err=True)
        sys.exit(1)

    click.echo(f"Device {record.device_id} is set up with {record.host}")


@cli.command()
@click.pass_context
def report(ctx: click.Context) -> None:
    """Push the current sensor values to the hub once."""
    orchestrator = _orchestrator()
    try:
        orchestrator.report_sensors(ctx.obj["config_path"])
    except HalcyonError as e:
        click.echo(f"Report failed: {e}", err=True)
        sys.exit(1)

    click.echo("Sensor states updated")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
