"""
Flat JSON persistence for the user collection and the processed event log.

Each call reads or rewrites the whole document. I/O failures are logged and
reported through the return value, never raised.
"""
import json
import logging
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Sequence

logger = logging.getLogger(__name__)


class JsonCollectionStore:
    """A single JSON array stored in one file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[List[Any]]:
        """
        Read the whole collection.

        Returns:
            The stored items, an empty list if the file does not exist yet,
            or None if the file could not be read or parsed.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error(f"[DB_READ_ERROR] {self.path}: {e}")
            return None

        try:
            data = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError as e:
            logger.error(f"[DB_READ_ERROR] {self.path}: {e}")
            return None

        if not isinstance(data, list):
            logger.error(f"[DB_READ_ERROR] {self.path}: root is not a list")
            return None
        return data

    def save(self, items: Sequence[Any]) -> bool:
        """Replace the collection with ``items`` (temp file + atomic rename)."""
        tmp_file: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                delete=False,
                dir=self.path.parent,
                prefix=f"{self.path.name}.",
                suffix=".tmp",
            ) as handle:
                tmp_file = Path(handle.name)
                json.dump(list(items), handle, ensure_ascii=False, indent=2)
            tmp_file.replace(self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[DB_WRITE_ERROR] {self.path}: {e}")
            if tmp_file is not None:
                tmp_file.unlink(missing_ok=True)
            return False

    def clear(self) -> bool:
        return self.save([])


class EventLog:
    """Append-only set of processed webhook event ids."""

    def __init__(self, store: JsonCollectionStore):
        self.store = store

    def contains(self, event_id: str) -> Optional[bool]:
        """True/False, or None when the log cannot be read."""
        events = self.store.load()
        if events is None:
            return None
        return event_id in events

    def append(self, event_id: str) -> bool:
        events = self.store.load()
        if events is None:
            return False
        if event_id in events:
            return True
        events.append(event_id)
        return self.store.save(events)

    def discard(self, event_id: str) -> bool:
        """Remove ``event_id``; used to undo an entry whose effect failed."""
        events = self.store.load()
        if events is None:
            return False
        if event_id not in events:
            return True
        return self.store.save([e for e in events if e != event_id])

    def clear(self) -> bool:
        return self.store.clear()
