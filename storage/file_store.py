"""File-based storage utilities for persisting bot data.

Provides a YAMLFileStore class for reading and writing single YAML files with
atomic writes, and a KeyValueStore that keeps one YAML document per key
(e.g. ``<team>_karma``) inside a data directory.
"""
import logging
import os
import re
from typing import Any, Dict

import trio
import yaml

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a document cannot be read or written."""


class YAMLFileStore:
    """Handles reading and writing YAML files with atomic operations.

    Attributes:
        path: Path to the YAML file
    """
    def __init__(self, path: str) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if the YAML file exists."""
        return os.path.exists(self.path)

    def read(self) -> Dict[str, Any]:
        """Read and parse the YAML file.

        Returns:
            Parsed YAML data as dictionary, or empty dict if the file is missing

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            return {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e

    def write(self, data: Dict[str, Any]) -> None:
        """Write data to YAML file atomically.

        Uses a temporary file and atomic rename to prevent corruption.

        Args:
            data: Dictionary to write as YAML

        Raises:
            StorageError: If the file cannot be written
        """
        tmp_path = self.path + ".tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, self.path)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e


class KeyValueStore:
    """One YAML document per key under a data directory.

    Documents are stored as ``{"id": key, "data": {...}}``. There is no
    locking: two concurrent read-modify-write sequences on the same key
    resolve as last writer wins.
    """

    def __init__(self, data_dir: str) -> None:
        self.data_dir = data_dir

    def path_for(self, key: str) -> str:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return os.path.join(self.data_dir, f"{safe}.yaml")

    async def load(self, key: str) -> Dict[str, Any]:
        """Load the data mapping stored under key, or {} if absent.

        Raises:
            StorageError: If the document exists but cannot be read
        """
        store = YAMLFileStore(self.path_for(key))
        doc = await trio.to_thread.run_sync(store.read)
        data = doc.get("data") if isinstance(doc, dict) else None
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageError(f"Malformed document for {key}")
        return data

    async def save(self, key: str, data: Dict[str, Any]) -> None:
        """Persist the data mapping under key.

        Raises:
            StorageError: If the document cannot be written
        """
        store = YAMLFileStore(self.path_for(key))
        await trio.to_thread.run_sync(store.write, {"id": key, "data": data})
        logger.debug("Saved %s (%s entries)", key, len(data))
