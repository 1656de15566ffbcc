"""Append-only audit log for bypass decisions.

Entries are stored as JSON Lines. Each append:

- takes an exclusive fcntl.flock on the log file, waiting at most
  lock_timeout_seconds, so concurrent gate runs never interleave entries;
- writes the whole line with a single os.write and fsyncs it;
- on a short or failed write, truncates the file back to its previous size,
  so an entry is either fully present or absent.

Failed appends are retried with exponential backoff. When every attempt
fails, AuditWriteError is raised; the Bypass Authority treats that as a
rejection.

Successfully persisted entries are mirrored to the "scangate.audit"
structlog logger with the active OpenTelemetry trace context.

Example:
    >>> from scangate.audit import AuditLog
    >>> audit_log = AuditLog("logs/audit/policy-gate-20260118.jsonl")
    >>> audit_log.append(entry)
    >>> audit_log.read_entries()[-1]["decision"]
    'granted'
"""

from __future__ import annotations

import errno
import fcntl
import json
import os
import time
from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import structlog

from scangate.errors import AuditWriteError
from scangate.schemas.audit import AuditDecision, AuditEntry
from scangate.telemetry import get_trace_context

logger = structlog.get_logger(__name__)

AUDIT_LOGGER_NAME = "scangate.audit"

DEFAULT_AUDIT_DIR = Path("logs") / "audit"

DEFAULT_LOCK_TIMEOUT = 10.0
"""Seconds to wait for the audit log lock."""

LOCK_RETRY_INTERVAL = 0.05
"""Seconds between non-blocking lock attempts."""


def default_audit_path(directory: Path = DEFAULT_AUDIT_DIR, day: date | None = None) -> Path:
    """Daily audit file, e.g. logs/audit/policy-gate-20260118.jsonl."""
    day = day or datetime.now(timezone.utc).date()
    return directory / f"policy-gate-{day:%Y%m%d}.jsonl"


class AuditSink(Protocol):
    """Anything that can durably record an audit entry."""

    def append(self, entry: AuditEntry) -> None:
        """Persist one entry or raise AuditWriteError."""
        ...


class AuditLog:
    """JSON Lines audit log with locked, atomic, retried appends.

    Attributes:
        path: Location of the audit log file.
        max_attempts: Append attempts before failing closed.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        max_attempts: int = 3,
        initial_delay_seconds: float = 0.1,
        backoff_multiplier: float = 2.0,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        """Initialize the audit log.

        Args:
            path: Audit log file; parent directories are created on first append.
            max_attempts: Append attempts before raising AuditWriteError.
            initial_delay_seconds: Delay before the second attempt.
            backoff_multiplier: Delay growth factor between attempts.
            lock_timeout_seconds: Longest wait for the file lock per attempt.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._path = Path(path)
        self.max_attempts = max_attempts
        self._initial_delay = initial_delay_seconds
        self._backoff_multiplier = backoff_multiplier
        self._lock_timeout = lock_timeout_seconds
        self._audit_logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    @property
    def path(self) -> Path:
        return self._path

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds after the given (0-indexed) failed attempt."""
        return self._initial_delay * (self._backoff_multiplier**attempt)

    def append(self, entry: AuditEntry) -> None:
        """Durably append one entry.

        Args:
            entry: Audit entry to persist.

        Raises:
            AuditWriteError: If every attempt failed.
        """
        if entry.trace_id is None:
            trace_id = get_trace_context().get("trace_id")
            if trace_id is not None:
                entry = entry.model_copy(update={"trace_id": trace_id})

        data = entry.to_json_line().encode("utf-8")
        last_error: OSError | None = None

        for attempt in range(self.max_attempts):
            try:
                self._append_once(data)
                break
            except OSError as e:
                last_error = e
                remaining = self.max_attempts - attempt - 1
                if remaining > 0:
                    delay = self.calculate_delay(attempt)
                    logger.debug(
                        "audit_append_retry",
                        path=str(self._path),
                        attempt=attempt + 1,
                        max_attempts=self.max_attempts,
                        delay_seconds=delay,
                        error=str(e),
                    )
                    time.sleep(delay)
        else:
            logger.error(
                "audit_append_failed",
                path=str(self._path),
                attempts=self.max_attempts,
                error=str(last_error),
            )
            raise AuditWriteError(
                str(self._path),
                str(last_error),
                attempts=self.max_attempts,
            ) from last_error

        self._mirror(entry)

    def _mirror(self, entry: AuditEntry) -> None:
        log_data = entry.to_log_dict()
        log_data.pop("event", None)
        log_data["audit_event"] = True
        log_data["audit_path"] = str(self._path)
        if entry.decision is AuditDecision.GRANTED:
            self._audit_logger.warning("bypass_decision", **log_data)
        else:
            self._audit_logger.info("bypass_decision", **log_data)

    def _append_once(self, data: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        try:
            with self._locked(fd):
                start = os.fstat(fd).st_size
                try:
                    written = os.write(fd, data)
                    if written != len(data):
                        raise OSError(errno.EIO, f"short write ({written}/{len(data)} bytes)")
                    os.fsync(fd)
                except OSError:
                    self._rollback(fd, start)
                    raise
        finally:
            os.close(fd)

    def _rollback(self, fd: int, size: int) -> None:
        try:
            os.ftruncate(fd, size)
        except OSError as e:
            logger.error("audit_rollback_failed", path=str(self._path), error=str(e))

    @contextmanager
    def _locked(self, fd: int) -> Generator[None, None, None]:
        """Hold an exclusive flock on fd, waiting at most the lock timeout.

        Raises:
            TimeoutError: If the lock was not acquired in time.
        """
        start_time = time.monotonic()
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except OSError as e:
                if e.errno not in (errno.EAGAIN, errno.EWOULDBLOCK, errno.EACCES):
                    raise
                if time.monotonic() - start_time >= self._lock_timeout:
                    raise TimeoutError(
                        f"Timed out after {self._lock_timeout}s waiting for audit log lock"
                    ) from e
                time.sleep(LOCK_RETRY_INTERVAL)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)

    def read_entries(self) -> list[dict[str, Any]]:
        """Read all entries back, oldest first. A missing log has no entries."""
        if not self._path.exists():
            return []
        with self._path.open(encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]


__all__: list[str] = [
    "AUDIT_LOGGER_NAME",
    "DEFAULT_AUDIT_DIR",
    "DEFAULT_LOCK_TIMEOUT",
    "AuditLog",
    "AuditSink",
    "default_audit_path",
]
