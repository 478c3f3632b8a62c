"""Key/value persistence used by the file-backed ledger stores.

Provides an abstract storage interface and a JSON file implementation.
Failures surface as StoreError; the ledger never retries them itself.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from folio.ledger.errors import StoreError

logger = logging.getLogger(__name__)


class IStorageService(ABC):
    """Abstract base class for storage services.

    Defines the interface for saving, loading, and deleting data
    with string keys.
    """

    @abstractmethod
    def save(self, key: str, data: Any) -> None:
        """Save data with the given key.

        Args:
            key: Unique identifier for the data
            data: JSON-serializable data to store

        Raises:
            StoreError: If the data cannot be written
        """
        ...

    @abstractmethod
    def load(self, key: str) -> Optional[Any]:
        """Load data for the given key.

        Args:
            key: Unique identifier for the data

        Returns:
            The stored data, or None if nothing was saved under the key

        Raises:
            StoreError: If stored data exists but cannot be read
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete data for the given key. Missing keys are ignored."""
        ...


class JsonFileStorage(IStorageService):
    """JSON file-based storage implementation.

    Stores each key as a separate JSON file in the base directory. Writes go
    to a temporary file first and are moved into place, so a crash never
    leaves a half-written file behind.
    """

    def __init__(self, base_path: str | Path) -> None:
        """Initialize the JSON file storage.

        Args:
            base_path: Directory path where JSON files will be stored
        """
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _get_file_path(self, key: str) -> Path:
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._base_path / f"{safe_key}.json"

    def save(self, key: str, data: Any) -> None:
        file_path = self._get_file_path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._base_path, prefix=f".{file_path.stem}-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, file_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (TypeError, ValueError, OSError) as e:
            logger.error(f"Failed to save data for key '{key}': {e}")
            raise StoreError(f"Failed to save '{key}': {e}") from e

    def load(self, key: str) -> Optional[Any]:
        file_path = self._get_file_path(key)
        if not file_path.exists():
            return None

        try:
            with file_path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted data for key '{key}': {e}")
            raise StoreError(f"Corrupted data for '{key}': {e}") from e
        except OSError as e:
            logger.error(f"Failed to load data for key '{key}': {e}")
            raise StoreError(f"Failed to load '{key}': {e}") from e

    def delete(self, key: str) -> None:
        file_path = self._get_file_path(key)
        try:
            file_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete data for key '{key}': {e}")
            raise StoreError(f"Failed to delete '{key}': {e}") from e
