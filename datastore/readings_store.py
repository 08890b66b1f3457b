from __future__ import annotations
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, List, Optional

from pydantic import ValidationError

from app.schemas import StoredReading
from models.records import Reading
from settings import get_settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadingStore:
    """Append-only reading table with optional JSON Lines persistence.

    Inserts append a single line to the backing file; pruning rewrites it.
    Every read hands out deep copies.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._clock = clock
        self._rows: List[StoredReading] = []
        self._last_id = 0
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, reading: Reading) -> int:
        with self._lock:
            row = StoredReading(
                id=self._last_id + 1,
                recorded_at=self._clock(),
                **reading.to_dict(),
            )
            # Memory changes only after the line is on disk.
            self._append(row)
            self._rows.append(row)
            self._last_id = row.id
            return row.id

    def list_recent(self, limit: int = 50) -> list[StoredReading]:
        """Return up to ``limit`` rows, most recent first."""
        if limit <= 0:
            return []
        with self._lock:
            newest = self._rows[-limit:]
            return [row.model_copy(deep=True) for row in reversed(newest)]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            kept = [row for row in self._rows if row.recorded_at >= cutoff]
            deleted = len(self._rows) - len(kept)
            if deleted:
                self._rows = kept
                self._rewrite()
            return deleted

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def _append(self, row: StoredReading) -> None:
        if not self.persistence_path:
            return
        with self.persistence_path.open("a", encoding="utf-8") as handle:
            handle.write(row.model_dump_json() + "\n")

    def _rewrite(self) -> None:
        if not self.persistence_path:
            return
        payload = "".join(row.model_dump_json() + "\n" for row in self._rows)
        self.persistence_path.write_text(payload, encoding="utf-8")

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            lines = []

        for line in lines:
            if not line.strip():
                continue
            try:
                row = StoredReading.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError):
                continue
            self._rows.append(row)
            self._last_id = max(self._last_id, row.id)


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingStore:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return ReadingStore(name=table_name, persistence_path=persistence)
