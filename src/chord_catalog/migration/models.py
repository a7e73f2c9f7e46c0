"""Migration run report and log entries."""

import enum
from dataclasses import dataclass, field
from datetime import datetime


class LogLevel(enum.StrEnum):
    """Severity of a migration log entry."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class MigrationLogEntry:
    timestamp: datetime
    message: str
    level: LogLevel = LogLevel.INFO

    def format(self) -> str:
        return f"[{self.timestamp.isoformat()}] {self.level.upper()}: {self.message}"


@dataclass(slots=True)
class ImportReport:
    """Outcome of one migration run; ``log`` is always populated."""

    success: bool = False
    songs_count: int = 0
    degraded: bool = False
    error: str | None = None
    log: list[MigrationLogEntry] = field(default_factory=list)

    def format_log(self) -> str:
        """Render the log as downloadable plain text, one entry per line."""
        return "\n".join(entry.format() for entry in self.log)
