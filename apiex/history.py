"""api-ex history - bounded, append-only record of dispatched requests."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from apiex.errors import ApiExError, ValidationError
from apiex.storage import (
    DEFAULT_HISTORY,
    check_records,
    ensure_document,
    load_for_write,
    read_document,
    write_document,
)

logger = logging.getLogger(__name__)

MAX_HISTORY = 100
DEFAULT_LIMIT = 10


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HistoryLedger:
    """History entries in ``history.json``; the oldest are evicted past ``max_entries``."""

    def __init__(self, history_file: str | Path, max_entries: int = MAX_HISTORY):
        self.history_file = Path(history_file)
        self.max_entries = max_entries

    def initialize(self) -> None:
        ensure_document(self.history_file, DEFAULT_HISTORY)

    def append(self, entry: dict) -> dict:
        """Stamp ``entry`` with the current time and persist it. Returns the stored copy."""
        if not entry:
            raise ApiExError("History entry is required")
        stored = {**entry, "timestamp": _now()}
        data = load_for_write(self.history_file, DEFAULT_HISTORY)
        history = data["history"]
        history.append(stored)
        overflow = len(history) - self.max_entries
        if overflow > 0:
            del history[:overflow]
            logger.debug("Evicted %d old history entries", overflow)
        write_document(self.history_file, data)
        return stored

    def entries(self) -> list[dict]:
        """All stored entries in insertion order."""
        data = read_document(self.history_file, DEFAULT_HISTORY)
        return list(check_records(self.history_file, data["history"], "history"))

    def query(
        self,
        limit: int | None = DEFAULT_LIMIT,
        method: str | None = None,
        status: int | None = None,
    ) -> list[dict]:
        """Most recent entries first.

        Filters apply before the limit. Entries sharing a timestamp keep
        their insertion order.
        """
        if limit is None:
            limit = DEFAULT_LIMIT
        if limit < 0:
            raise ValidationError("History limit cannot be negative.")
        if limit == 0:
            return []

        history = self.entries()
        if method:
            wanted = method.upper()
            history = [e for e in history if (e.get("method") or "").upper() == wanted]
        if status is not None:
            history = [e for e in history if e.get("status") == status]

        history = sorted(history, key=lambda e: e.get("timestamp") or "", reverse=True)
        return history[:limit]
