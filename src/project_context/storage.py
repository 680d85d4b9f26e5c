# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Key-value persistence for cached analysis and context state.

This module provides a storage abstraction so the cache and the context
tracker never touch files directly.

Components:
- KeyValueStore: Abstract interface for storage backends
- InMemoryStore: Process-local store (tests, ephemeral sessions)
- JsonFileStore: One JSON document per key under a cache directory

Records are JSON-compatible dicts keyed by fixed string keys
(ANALYSIS_KEY, CONTEXT_STATE_KEY).
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from project_context.log_config import validate_filename_component

logger = logging.getLogger(__name__)

ANALYSIS_KEY = "project-analysis"
CONTEXT_STATE_KEY = "project-context-state"

# Type alias for stored records
Record = Dict[str, Any]


class KeyValueStore(ABC):
    """Abstract storage interface for JSON-compatible records.

    Implementations may raise on I/O failure; callers (AnalysisCache,
    ContextStateTracker) are responsible for swallowing those errors.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[Record]:
        """Get a record.

        Args:
            key: Record key.

        Returns:
            The stored record, or None if absent.

        Raises:
            Exception: If the storage backend fails.
        """
        pass

    @abstractmethod
    def set_item(self, key: str, value: Record) -> None:
        """Store a record, replacing any previous value (last writer wins).

        Args:
            key: Record key.
            value: JSON-compatible dict.

        Raises:
            Exception: If the storage backend fails.
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a record. Removing a missing key is not an error."""
        pass


class InMemoryStore(KeyValueStore):
    """In-memory storage implementation.

    Records are deep-copied on the way in and out so callers can never
    mutate stored state through a reference they hold.

    Limitations:
    - No persistence across processes
    """

    def __init__(self) -> None:
        """Initialize empty in-memory store."""
        self._items: Dict[str, Record] = {}

    def get_item(self, key: str) -> Optional[Record]:
        value = self._items.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set_item(self, key: str, value: Record) -> None:
        self._items[key] = copy.deepcopy(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        """Clear all stored records.

        Used for testing.
        """
        self._items.clear()


class JsonFileStore(KeyValueStore):
    """File-backed store: each key is a <key>.json file in a directory.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers see either the old or the new record.
    """

    def __init__(self, directory: Path) -> None:
        """Initialize the store.

        Args:
            directory: Directory holding the record files. Created lazily
                on first write.
        """
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        validate_filename_component(key, "key")
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[Record]:
        """Read a record from disk.

        Raises:
            OSError: If the file exists but cannot be read.
            json.JSONDecodeError: If the file is not valid JSON.
            ValueError: If the key is unsafe or the file is not a JSON object.
        """
        path = self._path_for(key)
        if not path.exists():
            return None

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Record {key} is not a JSON object: {type(data)}")
        return data

    def set_item(self, key: str, value: Record) -> None:
        """Write a record to disk atomically.

        Raises:
            OSError: If the directory cannot be created or the file written.
            TypeError: If value is not JSON-serializable.
        """
        path = self._path_for(key)
        self.directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f)
            os.replace(tmp_name, path)
        except BaseException:
            # Clean up the partial temp file, then propagate
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        logger.debug(f"Stored record {key} at {path}")

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
