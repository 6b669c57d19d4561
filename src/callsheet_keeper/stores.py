"""Capabilities the engine needs from the outside world, plus the local ones.

The mail and file stores are backed by Gmail and Drive in production
(see gmail_client and drive_client); the property store and the run lock
live on the local disk.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Protocol

from .errors import StoreError
from .models import MailThread, StoredFile

logger = logging.getLogger(__name__)


class MailStore(Protocol):
    def search_threads(self, query: str) -> list[MailThread]:
        """Threads matching `query`, each with its messages oldest-first."""
        ...

    def mark_thread_read(self, thread_id: str) -> None: ...


class FileStore(Protocol):
    def find_folder(self, parent_id: str, name: str) -> str | None: ...

    def create_folder(self, parent_id: str, name: str) -> str: ...

    def list_files(self, folder_id: str, name: str | None = None) -> list[StoredFile]:
        """Files directly inside `folder_id`, optionally only those named exactly `name`."""
        ...

    def create_file(self, folder_id: str, name: str, data: bytes, mime_type: str) -> StoredFile: ...

    def move_file(self, file_id: str, folder_id: str, new_name: str) -> None:
        """Move a file into another folder, renaming it in the same step."""
        ...

    def share_link(self, file_id: str) -> str: ...


class PropertyStore(Protocol):
    def get_property(self, key: str) -> str | None: ...

    def set_property(self, key: str, value: str) -> None: ...


class RunLock(Protocol):
    def try_acquire(self, timeout: float) -> bool: ...

    def release(self) -> None: ...


class JsonPropertyStore:
    """String properties kept in a small JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text() or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get_property(self, key: str) -> str | None:
        return self._read().get(key)

    def set_property(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write state file {self.path}: {e}") from e


class FileRunLock:
    """Advisory, process-wide lock on a lock file."""

    poll_interval = 0.25

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fh = None

    def try_acquire(self, timeout: float) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = self.path.open("w")
        deadline = time.monotonic() + max(timeout, 0.0)
        while True:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    fh.close()
                    return False
                time.sleep(self.poll_interval)
                continue
            self._fh = fh
            return True

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None
