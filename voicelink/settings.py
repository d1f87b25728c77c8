"""Namespaced key/value settings persisted to a JSON file."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

Value = Union[str, int]


class SettingsStore:
    """Holds every namespace; kept in memory, or in a JSON file when a path is given."""

    def __init__(self, path: Optional[Union[str, os.PathLike]] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._memory: Dict[str, Dict[str, Value]] = {}
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Dict[str, Value]]:
        if self._path is None:
            return {ns: dict(values) for ns, values in self._memory.items()}
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self._path} does not hold an object")
        return data

    def _save(self, data: Dict[str, Dict[str, Value]]) -> None:
        if self._path is None:
            self._memory = data
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".settings-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(temp_name, self._path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def read(self, namespace: str) -> Dict[str, Value]:
        """Return a copy of the values stored under ``namespace`` (empty if none)."""
        with self._lock:
            return dict(self._load().get(namespace, {}))

    def write(self, namespace: str, values: Mapping[str, Value]) -> None:
        """Replace the values of ``namespace``; an empty mapping removes it."""
        with self._lock:
            data = self._load()
            if values:
                data[namespace] = dict(values)
            else:
                data.pop(namespace, None)
            self._save(data)


class Settings:
    """A view of one namespace; changes reach the store on commit or close."""

    def __init__(self, store: SettingsStore, namespace: str, read_write: bool = False) -> None:
        self._store = store
        self.namespace = namespace
        self.read_write = read_write
        self._values: Dict[str, Value] = store.read(namespace)
        self._dirty = False
        self._closed = False

    def _writable(self) -> bool:
        if not self.read_write:
            logger.warning("Namespace %s is not open for writing", self.namespace)
            return False
        return True

    def get_string(self, key: str, default: str = "") -> str:
        value = self._values.get(key)
        return value if isinstance(value, str) else default

    def set_string(self, key: str, value: str) -> None:
        if self._writable():
            self._values[key] = str(value)
            self._dirty = True

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._values.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return default

    def set_int(self, key: str, value: int) -> None:
        if not INT32_MIN <= value <= INT32_MAX:
            raise OverflowError(f"Value {value} does not fit in 32 bits")
        if self._writable():
            self._values[key] = int(value)
            self._dirty = True

    def erase_key(self, key: str) -> None:
        if self._writable() and key in self._values:
            del self._values[key]
            self._dirty = True

    def erase_all(self) -> None:
        if self._writable():
            self._values.clear()
            self._dirty = True

    def commit(self) -> None:
        """Write pending changes to the store."""
        if self._dirty:
            self._store.write(self.namespace, self._values)
            self._dirty = False

    def close(self) -> None:
        if self._closed:
            return
        if self.read_write and self._dirty:
            self.commit()
        self._closed = True

    def __enter__(self) -> "Settings":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()