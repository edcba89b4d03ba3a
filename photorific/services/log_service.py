"""JSONL logging service for application events.

Writes one JSON object per line to hive-partitioned daily .jsonl files under
the configured log directory: json/year=YYYY/month=MM/day=DD/events.jsonl
"""

import json
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from photorific.config import get_settings


class LogService:
    """JSONL log service with thread-safe file writes."""

    def __init__(self, log_dir: Path | None = None) -> None:
        self._log_dir = log_dir
        self._write_lock = threading.Lock()

    def _get_log_dir(self) -> Path:
        """Get the log directory, creating it if needed."""
        log_dir = self._log_dir or get_settings().log_directory
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir

    def _get_day_file(self, dt: datetime) -> Path:
        day_dir = (
            self._get_log_dir()
            / "json"
            / f"year={dt.year:04d}"
            / f"month={dt.month:02d}"
            / f"day={dt.day:02d}"
        )
        day_dir.mkdir(parents=True, exist_ok=True)
        return day_dir / "events.jsonl"

    def log(
        self,
        level: str,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append a log entry to the current day's JSONL file.

        Args:
            level: Log level (INFO, WARNING, ERROR)
            category: Event category (app, scan, sync, upload, settings)
            event: Machine-readable event name (snake_case)
            message: Human-readable message
            metadata: Optional additional data
        """
        now = datetime.now(UTC)
        entry: dict[str, Any] = {
            "timestamp": now.isoformat(),
            "level": level.upper(),
            "category": category,
            "event": event,
            "message": message,
        }
        if metadata:
            entry["metadata"] = metadata

        line = json.dumps(entry, default=str)

        with self._write_lock:
            with open(self._get_day_file(now), "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def info(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log an INFO-level event."""
        self.log("INFO", category, event, message, metadata)

    def warning(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log a WARNING-level event."""
        self.log("WARNING", category, event, message, metadata)

    def error(
        self,
        category: str,
        event: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log an ERROR-level event."""
        self.log("ERROR", category, event, message, metadata)

    def read_log_entries(
        self,
        date: str | None = None,
        level: str | None = None,
        category: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> dict[str, Any]:
        """Read and filter log entries, newest first.

        Args:
            date: Only this day (YYYY-MM-DD); None reads every day
            level: INFO/WARNING/ERROR
            category: Event category
            search: Case-insensitive match against message and event
            offset: Number of entries to skip
            limit: Maximum entries to return

        Returns:
            Dict with entries, total count, offset, limit
        """
        json_dir = self._get_log_dir() / "json"

        if date:
            try:
                dt = datetime.strptime(date, "%Y-%m-%d")
            except ValueError:
                return {"entries": [], "total": 0, "offset": offset, "limit": limit}
            day_file = (
                json_dir
                / f"year={dt.year:04d}"
                / f"month={dt.month:02d}"
                / f"day={dt.day:02d}"
                / "events.jsonl"
            )
            files = [day_file] if day_file.exists() else []
        else:
            files = []
            if json_dir.exists():
                files = sorted(json_dir.rglob("events.jsonl"), reverse=True)

        search_lower = search.lower() if search else None
        entries: list[dict[str, Any]] = []
        for log_file in files:
            with open(log_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    if level and entry.get("level", "").upper() != level.upper():
                        continue
                    if category and entry.get("category") != category:
                        continue
                    if search_lower:
                        haystack = f"{entry.get('message', '')} {entry.get('event', '')}".lower()
                        if search_lower not in haystack:
                            continue

                    entries.append(entry)

        entries.sort(key=lambda e: e.get("timestamp", ""), reverse=True)

        return {
            "entries": entries[offset : offset + limit],
            "total": len(entries),
            "offset": offset,
            "limit": limit,
        }


# Module-level singleton accessor
_log_service: LogService | None = None


def get_log_service() -> LogService:
    """Get the singleton LogService instance."""
    global _log_service
    if _log_service is None:
        _log_service = LogService()
    return _log_service
