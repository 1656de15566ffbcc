"""CLI utility functions and error handling.

This module provides shared utilities for the scangate CLI, including:
- Exit code constants
- Error formatting for stderr
- Output helpers for consistent stderr/stdout usage

Errors are written as plain text to stderr. The verdict itself is the only
thing written to stdout, so `scangate gate --output-format json > verdict.json`
captures a clean document.

Example:
    from scangate.cli.utils import ExitCode, error_exit

    if scanner not in SUPPORTED_SCANNERS:
        error_exit("Unsupported scanner", exit_code=ExitCode.USAGE_ERROR)
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

from scangate.errors import ScangateError
from scangate.schemas.verdict import GateStatus

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes for CLI commands.

    FAIL and every error code are distinct, so a pipeline can tell a
    vulnerable artifact from a broken gate run.
    """

    SUCCESS = 0
    """Gate passed or was bypassed."""

    POLICY_FAILURE = 1
    """Gate failed: findings at or above the threshold."""

    USAGE_ERROR = 2
    """Invalid usage (bad arguments, missing required options)."""

    FILE_NOT_FOUND = 3
    """Findings file not found."""

    VALIDATION_ERROR = 5
    """Findings document malformed or carrying an unknown severity."""

    CONFIGURATION_ERROR = 6
    """Invalid gate settings or policy file."""


def exit_code_for_status(status: GateStatus) -> ExitCode:
    """Exit code for a gate verdict: 0 for PASS and BYPASSED, 1 for FAIL."""
    if status is GateStatus.FAIL:
        return ExitCode.POLICY_FAILURE
    return ExitCode.SUCCESS


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Args:
        message: Error message to display.
        **context: Optional context key-value pairs to include.

    Example:
        error("Findings file not found", path="scan-results/trivy-results.json")
        # Output: Error: Findings file not found (path=scan-results/trivy-results.json)
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.POLICY_FAILURE,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def fail_with(exc: ScangateError) -> NoReturn:
    """Report a scangate error and exit with the code its type carries."""
    error_exit(str(exc), exit_code=ExitCode(exc.exit_code))


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Warning: {message} ({context_str})"
    else:
        full_message = f"Warning: {message}"

    click.echo(full_message, err=True)


def success(message: str) -> None:
    """Print a message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr.

    Used for progress updates that should not be captured by stdout
    redirection.
    """
    click.echo(message, err=True)


__all__: list[str] = [
    "ExitCode",
    "error",
    "error_exit",
    "exit_code_for_status",
    "fail_with",
    "info",
    "success",
    "warn",
]
