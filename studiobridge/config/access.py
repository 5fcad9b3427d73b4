"""Process-wide access to the bridge settings file.

``serve`` and the HTTP diagnostics read settings through ``get_config``. Each
resolved file path gets one cached ``Config``; the entry is reloaded when the
file's modification time changes (including creation or deletion), so
``save_config`` or a hand edit is seen without restarting the process.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

from studiobridge.config.loader import get_config_path, load_config
from studiobridge.config.schema import Config


def _resolve(config_path: Path | None) -> Path:
    path = Path(config_path) if config_path else get_config_path()
    return path.expanduser().resolve()


def _stamp(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


@dataclass
class _Entry:
    config: Config
    stamp: int | None


class ConfigCache:
    """Settings keyed by resolved file path, invalidated on file change."""

    def __init__(self):
        self._lock = threading.RLock()
        self._entries: dict[Path, _Entry] = {}

    def get(self, config_path: Path | None = None, *, force_reload: bool = False) -> Config:
        path = _resolve(config_path)
        stamp = _stamp(path)
        with self._lock:
            entry = self._entries.get(path)
            if force_reload or entry is None or entry.stamp != stamp:
                # module-level lookup so the loader can be swapped in tests
                entry = _Entry(config=load_config(path), stamp=stamp)
                self._entries[path] = entry
            return entry.config

    def invalidate(self, config_path: Path | None = None) -> None:
        with self._lock:
            if config_path is None:
                self._entries.clear()
            else:
                self._entries.pop(_resolve(config_path), None)

    def __len__(self) -> int:
        return len(self._entries)


_cache = ConfigCache()


def get_config(*, config_path: Path | None = None, force_reload: bool = False) -> Config:
    """Return the settings for ``config_path`` (default file when omitted)."""
    return _cache.get(config_path, force_reload=force_reload)


def clear_config_cache(*, config_path: Path | None = None) -> None:
    """Drop one cached entry, or all of them when no path is given."""
    _cache.invalidate(config_path)
