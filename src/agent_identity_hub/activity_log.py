"""Activity sinks: append-only forwarding of agent activity records.

Every activity appended through the identity manager is also handed to
each configured :class:`ActivitySink`. :class:`JsonlActivitySink` writes
one JSON object per line to a file, giving an append-only, human-readable
audit trail. Without a file path it buffers lines in memory; drain them
with :meth:`JsonlActivitySink.drain_buffer`.
"""
from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from agent_identity_hub.models import AgentActivity


class ActivitySink(ABC):
    """Receiver of activity records after they are persisted."""

    @abstractmethod
    def emit(self, activity: AgentActivity) -> None: ...


class JsonlActivitySink(ActivitySink):
    """Append-only JSONL activity log.

    Thread-safe. Each call to :meth:`emit` appends one JSON line to the
    configured file (or to the in-memory buffer when no path is set).

    Parameters
    ----------
    log_path:
        Path to the JSONL file. Parent directories are created
        automatically. If None, records are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, activity: AgentActivity) -> None:
        line = json.dumps(activity.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory buffer, oldest first."""
        with self._lock:
            lines = list(self._buffer)
            self._buffer.clear()
        return lines

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read records back from the file (or buffer).

        Parameters
        ----------
        tail:
            If provided, return only the last *tail* records.

        Returns
        -------
        list[dict[str, object]]
            Parsed records in chronological order. Unparseable lines are skipped.
        """
        with self._lock:
            if self._log_path is None or not self._log_path.exists():
                lines = list(self._buffer)
            else:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed


__all__ = ["ActivitySink", "JsonlActivitySink"]
