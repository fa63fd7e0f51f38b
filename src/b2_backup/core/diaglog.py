"""Per-run diagnostic log.

Everything a job reports (and the stderr of every tool it runs) is appended
to a private temporary file. On failure the whole file becomes the body of
the notification mail; at the end of the run it is deleted. Entries are also
mirrored to the process logger, which reaches the console and syslog.
"""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

INFO = "INFO"
ERROR = "ERROR"


class DiagnosticLog:
    """Append-only log sink with two severities."""

    def __init__(self, path, mirror: logging.Logger | None = None) -> None:
        self.path = Path(path)
        self.mirror = mirror or logger
        self.entries: list[str] = []
        self._stream = open(self.path, "a", encoding="utf-8")

    @classmethod
    def create(
        cls,
        prefix: str = "b2-backups.log.",
        directory=None,
        mirror: logging.Logger | None = None,
    ) -> "DiagnosticLog":
        """Create a log backed by a fresh private temporary file."""
        fd, name = tempfile.mkstemp(prefix=prefix, dir=directory)
        os.close(fd)
        return cls(name, mirror=mirror)

    @property
    def closed(self) -> bool:
        return self._stream is None

    @property
    def stream(self):
        """Open file object, suitable as a subprocess' stderr."""
        if self._stream is None:
            raise ValueError("diagnostic log is closed")
        return self._stream

    def _append(self, severity: str, message: str) -> None:
        line = f"[{severity}] {message}"
        self.entries.append(line)
        if self._stream is not None:
            self._stream.write(line + "\n")
            self._stream.flush()

    def info(self, message: str) -> None:
        self._append(INFO, message)
        self.mirror.info(message)

    def error(self, message: str) -> None:
        self._append(ERROR, message)
        self.mirror.error(message)

    def errors(self) -> list[str]:
        return [e for e in self.entries if e.startswith(f"[{ERROR}]")]

    def flush(self) -> None:
        if self._stream is not None:
            self._stream.flush()

    def read(self) -> str:
        """Everything written so far, tool output included, in emission order."""
        self.flush()
        try:
            return self.path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            # Already deleted: fall back to what we logged ourselves.
            return "".join(f"{line}\n" for line in self.entries)

    def close(self) -> None:
        """Flush and delete the backing file. Safe to call repeatedly."""
        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.flush()
            stream.close()
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> "DiagnosticLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
