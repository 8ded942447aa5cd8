"""Key/value JSON file storage for client-side state."""

import json
import logging
import os
import threading
from typing import Any, Optional

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """Persists named JSON values in a single file, like a browser's localStorage."""

    def __init__(self, path: str) -> None:
        """
        Initialize the storage.

        Args:
            path: File to keep the values in
        """
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            # If file is corrupted, start fresh
            logger.warning(f"Could not read {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        os.chmod(self.path, 0o600)

    def get_item(self, key: str) -> Optional[Any]:
        """Return the value stored under key, or None."""
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        """Delete key if present."""
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)
