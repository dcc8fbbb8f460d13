"""Durable preference document.

A single JSON object on disk holding arbitrary string keys. Every write is
read-merge-write under a lock and lands through an atomic rename, so a write
only ever touches its own key and readers never see a half-written file.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import orjson

from resight.telemetry import get_logger

log = get_logger(__name__)


class PreferenceStoreError(Exception):
    """The preference document exists but cannot be read or written safely."""

    pass


class PreferenceStore:
    """Key-value preferences persisted as one JSON document.

    Args:
        path: Location of the document. Parent directories are created on first write.
    """

    def __init__(self, path: Path) -> None:  # noqa: D107
        self.path = Path(path)
        self._lock = threading.Lock()

    def read(self) -> dict[str, Any]:
        """Current document.

        A missing file is an empty document. An unreadable or non-object file
        is logged and also reads as empty; writes refuse to replace it.
        """
        with self._lock:
            try:
                return self._load()
            except PreferenceStoreError as e:
                log.warning("preference_document_unreadable", path=str(self.path), error=str(e))
                return {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store one key, leaving every other key untouched."""
        self.merge({key: value})

    def merge(self, values: dict[str, Any]) -> dict[str, Any]:
        """Merge ``values`` into the document.

        Returns:
            The document as written.

        Raises:
            PreferenceStoreError: If the existing document is corrupt or the write fails.
        """
        with self._lock:
            document = self._load()
            document.update(values)
            self._write(document)
            return document

    def _load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PreferenceStoreError(f"Cannot read {self.path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            document = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise PreferenceStoreError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise PreferenceStoreError(f"{self.path} does not hold a JSON object")
        return document

    def _write(self, document: dict[str, Any]) -> None:
        content = orjson.dumps(document, option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(content)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PreferenceStoreError(f"Cannot write {self.path}: {e}") from e
