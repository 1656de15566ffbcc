"""Shared test fixtures for scangate.

Provides findings documents, report builders, and isolation from the
developer's environment (GATE_* variables and structlog configuration).
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

from scangate.schemas.findings import FindingsReport


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Remove GATE_* variables and restore structlog defaults after each test."""
    for name in list(os.environ):
        if name.startswith("GATE_"):
            monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()


@pytest.fixture
def critical_finding() -> dict[str, Any]:
    """A single CRITICAL finding with a known fix."""
    return {
        "id": "CVE-2023-0001",
        "severity": "CRITICAL",
        "package": "openssl",
        "fixedVersion": "3.0.8",
    }


@pytest.fixture
def low_findings() -> list[dict[str, Any]]:
    """Findings that are all LOW severity."""
    return [
        {"id": "CVE-2023-1001", "severity": "LOW", "package": "zlib"},
        {"id": "CVE-2023-1002", "severity": "low", "package": "bash", "fixedVersion": "5.2"},
    ]


@pytest.fixture
def mixed_findings() -> list[dict[str, Any]]:
    """One finding per severity, in a deliberately unsorted order."""
    return [
        {"id": "CVE-2023-0002", "severity": "MEDIUM", "package": "curl", "fixedVersion": "8.1"},
        {"id": "CVE-2023-0001", "severity": "CRITICAL", "package": "openssl"},
        {"id": "CVE-2023-0004", "severity": "LOW", "package": "zlib"},
        {"id": "CVE-2023-0003", "severity": "HIGH", "package": "glibc", "fixedVersion": "2.38"},
    ]


@pytest.fixture
def findings_document() -> Callable[..., dict[str, Any]]:
    """Factory for normalized findings documents."""

    def _build(
        findings: list[dict[str, Any]],
        tool: str = "trivy",
        target: str = "test-app:vulnerable",
    ) -> dict[str, Any]:
        return {
            "tool": tool,
            "target": target,
            "timestamp": "2026-01-18T12:00:00Z",
            "findings": findings,
        }

    return _build


@pytest.fixture
def write_findings(
    tmp_path: Path,
    findings_document: Callable[..., dict[str, Any]],
) -> Callable[..., Path]:
    """Factory writing a findings document to tmp_path and returning its path."""

    def _write(
        findings: list[dict[str, Any]],
        name: str = "trivy-results.json",
        tool: str = "trivy",
        directory: Path | None = None,
    ) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_text(json.dumps(findings_document(findings, tool=tool)))
        return path

    return _write


@pytest.fixture
def make_report(
    findings_document: Callable[..., dict[str, Any]],
) -> Callable[[list[dict[str, Any]]], FindingsReport]:
    """Factory building a validated FindingsReport in memory."""

    def _make(findings: list[dict[str, Any]]) -> FindingsReport:
        return FindingsReport.model_validate(findings_document(findings))

    return _make
