"""JSONL event log for memory activity.

Each line is one JSON object with a UTC ``timestamp`` and an ``event`` name.
Counters and decisions are top-level keys, anything else is nested under
``extra``. A failed write is reported through the module logger and never
reaches the caller, so a broken log directory cannot interrupt memory updates.
"""

import json
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import default_home

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LogEntry:
    """One line of the event log."""

    event: str
    timestamp: str = field(default_factory=_now)
    conversation_id: str | None = None
    persona_id: str | int | None = None
    decision: str | None = None
    added: int | None = None
    updated: int | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Keys whose value is unset (None or an empty extra) are left out."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or (f.name == "extra" and not value):
                continue
            data[f.name] = value
        return data


class JSONLLogger:
    """Append-only event sink that rotates its file once it grows too large.

    The directory is created on first write, not on construction.
    """

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "logs.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        self.log_dir = Path(log_dir) if log_dir is not None else default_home() / "logs"
        self.log_path = self.log_dir / filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self.conversation_id: str | None = None

    def set_conversation_id(self, conversation_id: str | None) -> None:
        """Default conversation id for entries that do not name one."""
        self.conversation_id = conversation_id

    def _rotated_path(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        return self.log_path.with_name(f"{self.log_path.stem}.{stamp}{self.log_path.suffix}")

    def _append(self, line: str) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            size = self.log_path.stat().st_size
        except FileNotFoundError:
            size = 0
        if size and size >= self.max_size_bytes:
            self.log_path.replace(self._rotated_path())
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def write(self, entry: LogEntry) -> bool:
        """Append an entry. Returns False if the log could not be written."""
        if entry.conversation_id is None:
            entry.conversation_id = self.conversation_id
        line = json.dumps(entry.to_dict(), ensure_ascii=False, default=str)
        try:
            self._append(line)
        except OSError as e:
            logger.warning("Cannot write %s event to %s: %s", entry.event, self.log_path, e)
            return False
        return True

    def log(
        self,
        event: str,
        *,
        conversation_id: str | None = None,
        persona_id: str | int | None = None,
        decision: str | None = None,
        added: int | None = None,
        updated: int | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> bool:
        return self.write(
            LogEntry(
                event,
                conversation_id=conversation_id,
                persona_id=persona_id,
                decision=decision,
                added=added,
                updated=updated,
                error=error,
                extra=extra,
            )
        )

    def log_observed(
        self,
        added: int,
        updated: int,
        *,
        conversation_id: str | None = None,
        persona_id: str | int | None = None,
    ) -> bool:
        """Facts merged from a user message."""
        return self.log(
            "facts_observed",
            conversation_id=conversation_id,
            persona_id=persona_id,
            added=added,
            updated=updated,
        )

    def log_denied(
        self,
        action: str,
        decision: str,
        *,
        conversation_id: str | None = None,
        persona_id: str | int | None = None,
    ) -> bool:
        """A write refused by the owner lock."""
        return self.log(
            "write_denied",
            conversation_id=conversation_id,
            persona_id=persona_id,
            decision=decision,
            action=action,
        )

    def log_persist_failed(self, error: str, *, conversation_id: str | None = None) -> bool:
        return self.log("persist_failed", conversation_id=conversation_id, error=error)


_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Shared event log under the data home, created on first use."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger
