"""
Key-Value Persistence for Learned State

The engine never talks to a storage medium directly. Each learning component
keeps one JSON-serializable snapshot under its own key, and the host injects
a KeyValueStore that decides where snapshots live.

Adapters:
- MemoryStore: in-process dict (tests, throwaway sessions)
- JsonFileStore: one <key>.json file per snapshot in a directory
  (default: %APPDATA%/PromptLens/state/)

Stores raise on failure. Callers in the highlighting package catch and log
those errors so learning continues in memory for the session.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from prompt_lens.config import STATE_DIR
from prompt_lens.logging_config import debug_log


class KeyValueStore(ABC):
    """
    Persistence port used by the learning components.

    Implementations must round-trip any JSON-compatible value.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value for key, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""
        pass


class MemoryStore(KeyValueStore):
    """
    Dict-backed store.

    Values are deep-copied through JSON on write so callers cannot mutate
    stored snapshots and non-serializable values fail the same way they
    would on disk.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore(KeyValueStore):
    """
    Stores each key as a JSON file inside a directory.

    Writes go to a temporary file first and are then moved into place, so a
    crash mid-write leaves the previous snapshot intact.

    Example:
        store = JsonFileStore(Path("~/.config/PromptLens/state").expanduser())
        store.set("prompt_lens.behavior", {"phraseEngagement": {}})
    """

    _UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]')

    def __init__(self, directory: Path | None = None):
        """
        Initialize file store.

        Args:
            directory: Folder for snapshot files. Defaults to STATE_DIR.
                       Created on first write.
        """
        self.directory = Path(directory) if directory else STATE_DIR

    def _path_for(self, key: str) -> Path:
        safe_name = self._UNSAFE_CHARS.sub('_', key)
        return self.directory / f"{safe_name}.json"

    def get(self, key: str) -> Any | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        with open(path, encoding='utf-8') as f:
            return json.load(f)

    def set(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        tmp_path = path.with_suffix('.json.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(value, f)
            os.replace(tmp_path, path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise
        debug_log(f"[STORAGE] Wrote {path.name}")

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
