import json
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol


class PersistenceFailure(Exception):
    """A read or write against the persistence substrate could not complete."""


class KeyValueBackend(Protocol):
    """Independently keyed string slots."""

    def read(self, key: str) -> Optional[str]:
        """Return the stored string, or None when the slot was never written."""

    def write(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryBackend:
    """Process-local slots; nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._slots: Dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._slots.get(key)

    def write(self, key: str, value: str) -> None:
        self._slots[key] = value

    def delete(self, key: str) -> None:
        self._slots.pop(key, None)

    def close(self):
        pass


class JsonFileBackend:
    """All slots kept in one JSON object file, rewritten on every write."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceFailure(f"Unexpected payload in {self.path}")
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            raise PersistenceFailure(f"Cannot write {self.path}: {exc}") from exc

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def write(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)

    def close(self):
        pass


class SqliteBackend:
    def __init__(self, path: str):
        self.path = path
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(path, check_same_thread=False)
            self._init_schema()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot open {path}: {exc}") from exc

    def _init_schema(self):
        with self.conn:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    def read(self, key: str) -> Optional[str]:
        try:
            cur = self.conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
            row = cur.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot read '{key}': {exc}") from exc
        return row[0] if row else None

    def write(self, key: str, value: str) -> None:
        try:
            with self.conn:
                self.conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot write '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with self.conn:
                self.conn.execute("DELETE FROM meta WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Cannot delete '{key}': {exc}") from exc

    def close(self):
        self.conn.close()


def open_backend(path: Optional[str] = None) -> KeyValueBackend:
    """Pick a backend from the file suffix; no path means in-memory."""
    if path is None:
        return MemoryBackend()
    if path.endswith(".db") or path.endswith(".sqlite"):
        return SqliteBackend(path)
    return JsonFileBackend(path)
