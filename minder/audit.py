"""Provides the append-only, timestamped event trail of the alarm."""

import datetime
import logging
import threading
from collections import deque
from pathlib import Path

_LOGGER = logging.getLogger(__name__)


class AuditLog:
    """
    Records operator-facing events (transitions, latches, channel failures).

    Each record is a single ``"<timestamp> - <message>"`` line. Records are
    appended to ``path`` when one is given and the most recent ones are kept
    in memory. Write errors are logged, never raised.
    """

    DEFAULT_TAIL_LINES = 200

    def __init__(
        self, path: str | Path | None = None, max_entries: int = 1000
    ) -> None:
        """Create an audit log, optionally backed by a file."""
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._entries: deque[str] = deque(maxlen=max_entries)

    @property
    def path(self) -> Path | None:
        """The file records are appended to, if any."""
        return self._path

    def record(self, msg: str, *args: object) -> str:
        """Append a %-formatted message and return the written line."""
        now = datetime.datetime.now().astimezone()
        text = msg % args if args else msg
        line = f"{now.isoformat(timespec='seconds')} - {text}"
        _LOGGER.debug("audit: %s", line)
        with self._lock:
            self._entries.append(line)
            if self._path is not None:
                try:
                    with self._path.open("a", encoding="utf-8") as f:
                        f.write(line + "\n")
                except OSError:
                    _LOGGER.exception("Failed to write audit log %s", self._path)
        return line

    def entries(self) -> list[str]:
        """Return the records kept in memory, oldest first."""
        with self._lock:
            return list(self._entries)

    def tail(self, lines: int = DEFAULT_TAIL_LINES) -> list[str]:
        """
        Return the last lines of the audit trail.

        Reads the backing file when there is one, otherwise the in-memory
        records. A non-positive count returns the default number of lines.
        """
        if lines <= 0:
            lines = self.DEFAULT_TAIL_LINES
        if self._path is None:
            return self.entries()[-lines:]
        with self._lock:
            try:
                text = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return []
        return text.splitlines()[-lines:]
