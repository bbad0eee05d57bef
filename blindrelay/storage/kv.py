"""
Key-value stores behind a get/set interface.

The JSON file store keeps the whole document in one file:

    { "<key>": <json value>, ... }
"""

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from blindrelay.common.errors import StorageError


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> bool:
        ...


class MemoryStore:
    """Process-local store, handy for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> bool:
        self._data[key] = copy.deepcopy(value)
        return True


class JsonFileStore:
    """
    Persists every key into a single JSON file.
    Writes go to a temp file in the same directory and are then renamed
    over the existing file, so a crash never leaves a half-written document.
    """

    def __init__(self, path):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
            if not text.strip():
                return {}
            data = json.loads(text)
        except ValueError as exc:
            raise StorageError(f"{self.path} is not a readable JSON store: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> bool:
        data = self._load()
        data[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        return True
