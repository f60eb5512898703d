"""
client/storage.py -- Device-side secure key/value storage.

SecureStorage is the small string key/value surface the session layer needs:
get_item / set_item / delete_item. Two implementations:

  FileSecureStorage -- one JSON file, mode 0o600 (user read/write only),
                       written via a temp file + os.replace so a crash never
                       leaves half a file behind.
  MemoryStorage     -- a dict; for tests and for --ephemeral CLI runs.

Every failure surfaces as StorageError. Callers decide whether that is fatal
(SessionClient.set_tokens) or degrades to "no session" (hydrate).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger("medilog.client")


class StorageError(Exception):
    """Secure storage could not be read or written."""


class SecureStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def delete_item(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage. fail_on lets tests inject write/read failures."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(initial or {})
        self.fail_on: set[str] = set()  # subset of {"get", "set", "delete"}

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise StorageError(f"simulated {op} failure")

    def get_item(self, key: str) -> Optional[str]:
        self._check("get")
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check("set")
        self.data[key] = value

    def delete_item(self, key: str) -> None:
        self._check("delete")
        self.data.pop(key, None)


class FileSecureStorage:
    """JSON-file storage with mode 0o600.

    The whole file is re-read on every get so two CLI processes see each
    other's writes. A file that exists but is not a JSON object is an error,
    not an empty store -- silently treating it as empty would drop a session.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Could not read {self.path}: not a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=0)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)
