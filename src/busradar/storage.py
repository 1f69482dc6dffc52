"""Best-effort durable key-value storage with tiered backends."""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface for a single storage tier. Backends may raise on failure."""

    name = "store"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local tier; lost on restart."""

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore(KeyValueStore):
    """All keys in one JSON document on disk, rewritten atomically."""

    name = "file"

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return data

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                data = self._read_all()
            except ValueError as e:
                logger.warning(f"Replacing unreadable {self.path}: {e}")
                data = {}
            data[key] = value
            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, separators=(",", ":"))
                os.replace(tmp_path, self.path)
            except Exception:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise


class DurableStore:
    """
    Ordered list of storage tiers behind a single get/set contract.

    Reads try each tier in priority order; the first hit is copied back into
    the tiers that missed it. Writes go to every tier. Tier failures are
    logged and never propagate.
    """

    def __init__(self, backends: Sequence[KeyValueStore]):
        if not backends:
            raise ValueError("DurableStore needs at least one backend")
        self.backends: List[KeyValueStore] = list(backends)

    def get(self, key: str) -> Optional[str]:
        missed: List[KeyValueStore] = []
        for backend in self.backends:
            try:
                value = backend.get(key)
            except Exception as e:
                logger.warning(f"Read of {key} from {backend.name} failed: {e}")
                continue
            if value is not None:
                if missed:
                    self._write(missed, key, value)
                return value
            missed.append(backend)
        return None

    def set(self, key: str, value: str) -> bool:
        """Write to all tiers. Returns True if at least one tier accepted it."""
        return self._write(self.backends, key, value)

    def _write(self, backends: Sequence[KeyValueStore], key: str, value: str) -> bool:
        written = 0
        for backend in backends:
            try:
                backend.set(key, value)
                written += 1
            except Exception as e:
                logger.error(f"Write of {key} to {backend.name} failed: {e}")
        return written > 0

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value; missing or corrupt values return the default."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Stored value for {key} is not valid JSON: {e}")
            return default

    def set_json(self, key: str, value: Any) -> bool:
        return self.set(key, json.dumps(value, separators=(",", ":")))


def default_store(path: Optional[str] = None) -> DurableStore:
    """Memory tier in front of a JSON file tier (~/.busradar/state.json by default)."""
    if path is None:
        path = os.path.join(os.path.expanduser("~"), ".busradar", "state.json")
    return DurableStore([MemoryStore(), JsonFileStore(path)])
