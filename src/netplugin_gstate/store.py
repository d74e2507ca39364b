"""Key/value state drivers backing the configuration and operational records.

Keys are rooted at ``/netplugin/`` (``/netplugin/config/global/<tenant>`` and
``/netplugin/oper/global/<tenant>``).  The upstream contiv netplugin layout
roots the same records at ``/contiv/``, so stores are not shared with it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List

from .exceptions import StateNotFound

LOG = logging.getLogger(__name__)

Marshal = Callable[[Any], bytes]
Unmarshal = Callable[[bytes], Any]


class StateDriver(ABC):
    """Minimal key/value contract used to persist tenant state.

    Keys are ``/``-separated paths such as ``/netplugin/oper/global/t1``.
    Encoding is left to the caller through ``marshal``/``unmarshal``.
    """

    @abstractmethod
    def write_state(self, key: str, value: Any, marshal: Marshal) -> None:
        """Serialise ``value`` with ``marshal`` and store it under ``key``."""

    @abstractmethod
    def read_state(self, key: str, unmarshal: Unmarshal) -> Any:
        """Return ``unmarshal`` applied to the bytes stored under ``key``."""

    @abstractmethod
    def read_all(self, prefix: str) -> List[bytes]:
        """Return the raw values of every key directly beneath ``prefix``."""

    @abstractmethod
    def clear_state(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""


class MemoryStateDriver(StateDriver):
    """In-process driver, mostly useful for tests and dry runs."""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = Lock()

    def write_state(self, key: str, value: Any, marshal: Marshal) -> None:
        payload = marshal(value)
        with self._lock:
            self._data[key] = payload
        LOG.debug("wrote %d bytes to %s", len(payload), key)

    def read_state(self, key: str, unmarshal: Unmarshal) -> Any:
        with self._lock:
            payload = self._data.get(key)
        if payload is None:
            raise StateNotFound(key)
        return unmarshal(payload)

    def read_all(self, prefix: str) -> List[bytes]:
        prefix = prefix if prefix.endswith("/") else prefix + "/"
        with self._lock:
            return [
                self._data[key]
                for key in sorted(self._data)
                if key.startswith(prefix) and "/" not in key[len(prefix):]
            ]

    def clear_state(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class FileStateDriver(StateDriver):
    """Store each key as a file under ``root``.

    ``/netplugin/config/global/t1`` becomes ``<root>/netplugin/config/global/t1``.
    Writes go through a temporary file and a rename so readers never observe
    a partially written record.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        parts = [part for part in key.split("/") if part]
        if not parts or any(part in (".", "..") for part in parts):
            raise ValueError(f"invalid state key {key!r}")
        return self._root.joinpath(*parts)

    def write_state(self, key: str, value: Any, marshal: Marshal) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = marshal(value)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_bytes(payload)
        tmp_path.replace(path)
        LOG.debug("wrote %d bytes to %s (%s)", len(payload), key, path)

    def read_state(self, key: str, unmarshal: Unmarshal) -> Any:
        path = self._path_for(key)
        if not path.is_file():
            raise StateNotFound(key)
        return unmarshal(path.read_bytes())

    def read_all(self, prefix: str) -> List[bytes]:
        directory = self._path_for(prefix)
        if not directory.is_dir():
            return []
        return [
            entry.read_bytes()
            for entry in sorted(directory.iterdir())
            if entry.is_file() and not entry.name.startswith(".")
        ]

    def clear_state(self, key: str) -> None:
        path = self._path_for(key)
        if path.is_file():
            path.unlink()
            LOG.debug("cleared %s (%s)", key, path)


def build_state_driver(kind: str, path: Path | None = None) -> StateDriver:
    if kind == "memory":
        return MemoryStateDriver()
    if kind == "file":
        if path is None:
            raise ValueError("file state driver requires a path")
        return FileStateDriver(path)
    raise ValueError(f"unsupported state driver '{kind}'")
