"""Issue-token CLI command: mint a signed bypass token.

The token is printed to stdout and nowhere else; it is not logged.
"""

from __future__ import annotations

from pathlib import Path

import click

from scangate.bypass import issue_signed_token
from scangate.cli.utils import ExitCode, error_exit, fail_with, info, success
from scangate.config import load_settings
from scangate.errors import ConfigurationError


@click.command(
    name="issue-token",
    help="""\b
Mint a short-lived signed bypass token from GATE_BYPASS_SECRET.

Signed tokens are only accepted when GATE_BYPASS_TOKEN_MODE=signed.

Examples:
    $ export GATE_BYPASS_TOKEN=$(scangate issue-token --ttl 3600)
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option(
    "--ttl",
    type=click.IntRange(min=1),
    default=3600,
    show_default=True,
    help="Token lifetime in seconds.",
)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path(".env"),
    show_default=True,
    help="Dotenv file with GATE_* settings (ignored when missing).",
)
def issue_token_command(ttl: int, env_file: Path) -> None:
    """Print a signed bypass token valid for --ttl seconds."""
    try:
        settings = load_settings(env_file)
    except ConfigurationError as e:
        fail_with(e)

    secret = settings.bypass_secret
    if secret is None or not secret.get_secret_value():
        error_exit(
            "GATE_BYPASS_SECRET is not set",
            exit_code=ExitCode.CONFIGURATION_ERROR,
        )
    if ttl > settings.bypass_max_token_ttl:
        error_exit(
            f"--ttl exceeds the maximum token lifetime ({settings.bypass_max_token_ttl}s)",
            exit_code=ExitCode.USAGE_ERROR,
        )
    if settings.bypass_token_mode != "signed":
        info("Note: GATE_BYPASS_TOKEN_MODE is not 'signed'; the gate will not accept this token")

    success(issue_signed_token(secret, ttl))
