"""Unit test fixtures for the CLI module.

CLI tests run inside an isolated working directory so the default
scan-results/ and logs/audit/ locations never touch the repository.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner.

    Returns:
        CliRunner instance for testing Click commands.
    """
    return CliRunner()


@pytest.fixture(autouse=True)
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run each CLI test from an empty temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def scan_results(
    workdir: Path,
    write_findings: Callable[..., Path],
) -> Callable[..., Path]:
    """Factory writing scan-results/<scanner>-results.json in the work dir."""

    def _write(findings: list[dict[str, Any]], scanner: str = "trivy") -> Path:
        return write_findings(
            findings,
            name=f"{scanner}-results.json",
            tool=scanner,
            directory=workdir / "scan-results",
        )

    return _write
