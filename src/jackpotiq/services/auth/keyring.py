"""Secure persistence for the device identifier and the session token.

All backends share the same contract: ``get`` on a missing entry returns
``None``, ``set`` replaces any existing value (remove-then-add) and
``delete`` of a missing entry is a no-op.  Backend I/O faults surface as
:class:`StorageFailed`.  Access goes through a reader-writer lock so a request
reading the token never observes a half-written update.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import StorageFailed

__all__ = [
    "ReadWriteLock",
    "SecureCredentialStore",
    "KeyringCredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
]

log = logging.getLogger("jackpotiq.auth.store")


class ReadWriteLock:
    """Many concurrent readers, one exclusive writer. Writers are not starved."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SecureCredentialStore(ABC):
    """Opaque key/value store for credentials."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()

    def get(self, key: str) -> str | None:
        with self._lock.read():
            value = self._read(key)
        return value or None

    def set(self, key: str, value: str) -> None:
        if not value:
            raise ValueError("refusing to store an empty credential")
        with self._lock.write():
            self._remove(key)
            self._write(key, value)

    def delete(self, key: str) -> None:
        with self._lock.write():
            self._remove(key)

    @abstractmethod
    def _read(self, key: str) -> str | None: ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None: ...

    @abstractmethod
    def _remove(self, key: str) -> None:
        """Remove ``key``; must not fail when the entry does not exist."""


def _require_keyring():
    try:
        import keyring  # type: ignore
        import keyring.errors  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise StorageFailed("system keyring is unavailable") from exc
    return keyring


class KeyringCredentialStore(SecureCredentialStore):
    """Platform credential vault via the ``keyring`` package."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def _read(self, key: str) -> str | None:
        keyring = _require_keyring()
        try:
            return keyring.get_password(self.service_name, key)
        except Exception as exc:
            log.error("keyring read failed entry=%s", key)
            raise StorageFailed("failed to load credential from keyring") from exc

    def _write(self, key: str, value: str) -> None:
        keyring = _require_keyring()
        try:
            keyring.set_password(self.service_name, key, value)
        except Exception as exc:
            log.error("keyring write failed entry=%s", key)
            raise StorageFailed("failed to write credential to keyring") from exc

    def _remove(self, key: str) -> None:
        keyring = _require_keyring()
        try:
            keyring.delete_password(self.service_name, key)
        except keyring.errors.PasswordDeleteError:
            return
        except Exception as exc:
            log.error("keyring delete failed entry=%s", key)
            raise StorageFailed("failed to delete credential from keyring") from exc


class FileCredentialStore(SecureCredentialStore):
    """JSON file readable only by the current user, for hosts without a keyring."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.error("credential file unreadable path=%s", self.path)
            raise StorageFailed("failed to read credential file") from exc
        if not isinstance(data, dict):
            raise StorageFailed("credential file is corrupt")
        return {str(k): str(v) for k, v in data.items() if v}

    def _save(self, payload: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".credentials-", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, ensure_ascii=False, indent=2)
                try:
                    os.chmod(tmp, 0o600)
                except PermissionError:
                    pass
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            log.error("credential file write failed path=%s", self.path)
            raise StorageFailed("failed to write credential file") from exc

    def _read(self, key: str) -> str | None:
        return self._load().get(key)

    def _write(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def _remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            data.pop(key)
            self._save(data)


class MemoryCredentialStore(SecureCredentialStore):
    """Process-local store, used by tests and the ``memory`` backend."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(initial or {})

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        if key in self._data:
            # mirrors the duplicate-item failure of platform vaults
            raise StorageFailed("duplicate entry")
        self._data[key] = value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data
