"""Main entry point for the scangate CLI.

Commands:
    scangate gate: Evaluate scanner findings against the policy
    scangate validate: Check that a findings document loads
    scangate issue-token: Mint a short-lived signed bypass token

Example:
    $ scangate --help
    $ scangate gate -s trivy
    $ scangate --log-level INFO gate --findings scan.json --threshold CRITICAL dist/app.tar
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

import click

from scangate.cli.gate import gate_command
from scangate.cli.token import issue_token_command
from scangate.cli.validate import validate_command
from scangate.errors import ScangateError
from scangate.telemetry import configure_logging

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_version() -> str:
    """Get the scangate package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("scangate")
    except PackageNotFoundError:
        return "unknown"


@click.group(
    name="scangate",
    help="scangate - Policy gate for container vulnerability scan results.",
    epilog="Use 'scangate <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="scangate",
    message="%(prog)s %(version)s",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="GATE_LOG_LEVEL",
    help="Minimum level of log events written to stderr.",
)
@click.option(
    "--log-json/--log-console",
    default=False,
    help="Write log events as JSON lines instead of console text.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_json: bool) -> None:
    """Root command group for the scangate CLI."""
    ctx.ensure_object(dict)
    configure_logging(log_level, json_output=log_json)


cli.add_command(gate_command)
cli.add_command(validate_command)
cli.add_command(issue_token_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the scangate CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except ScangateError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
