from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fms_api.errors import PersistenceError
from fms_api.schemas import ActivityRead, ActivityType

logger = logging.getLogger(__name__)


class ActivityLog:
    def __init__(self, log_file: str | None = None) -> None:
        self._log_file = Path(log_file).expanduser() if log_file else None
        self._lock = threading.Lock()
        self._entries: list[ActivityRead] = []
        self._seq = 1
        self._torn_tail = False
        self._load()

    def append(
        self,
        *,
        event_type: ActivityType,
        actor: str,
        payload: dict[str, Any] | None = None,
    ) -> ActivityRead:
        with self._lock:
            entry = ActivityRead(
                id=self._seq,
                event_type=event_type,
                actor=actor,
                payload=payload or {},
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._write(entry)
            self._seq += 1
            self._entries.append(entry)
            return entry

    def list_recent(self, limit: int = 50, *, event_type: ActivityType | None = None) -> list[ActivityRead]:
        if limit <= 0:
            return []

        with self._lock:
            filtered = [
                entry
                for entry in self._entries
                if event_type is None or entry.event_type == event_type
            ]
        return list(reversed(filtered[-limit:]))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _write(self, entry: ActivityRead) -> None:
        if self._log_file is None:
            return

        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=True, sort_keys=True)
        # Start on a fresh line when the previous writer died mid-line.
        prefix = "\n" if self._torn_tail else ""
        try:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with self._log_file.open("a", encoding="utf-8") as handle:
                handle.write(prefix + line + "\n")
        except OSError as exc:
            raise PersistenceError(f"activity log unavailable: {exc}") from exc
        self._torn_tail = False

    def _load(self) -> None:
        if self._log_file is None or not self._log_file.exists():
            return

        text = self._log_file.read_text(encoding="utf-8")
        self._torn_tail = bool(text) and not text.endswith("\n")
        for line_no, raw in enumerate(text.splitlines(), start=1):
            if not raw.strip():
                continue
            try:
                entry = ActivityRead(**json.loads(raw))
            except (ValueError, TypeError):
                # Torn trailing writes and non-object lines.
                logger.warning("skipping unreadable activity log line %d in %s", line_no, self._log_file)
                continue
            self._entries.append(entry)

        if self._entries:
            self._seq = max(entry.id for entry in self._entries) + 1
