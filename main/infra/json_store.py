"""
Whole-document JSON persistence with an optimistic version check.

Every subsystem keeps its state in one JSON document. A document is loaded,
modified in memory and written back wholesale. ``save`` only succeeds when
the stored version still equals the version the caller loaded; otherwise
``StaleDocumentError`` is raised and the caller must reload and retry.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable

from main.infra.locks import document_lock


logger = logging.getLogger(__name__)

VERSION_KEY = "_version"


class PersistenceError(Exception):
    """Reading or writing a document failed."""


class StaleDocumentError(Exception):
    """The stored document changed since it was loaded."""

    def __init__(self, name: str, expected: int, actual: int):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Document {name} changed since load (expected version {expected}, found {actual})"
        )


class StoredDocument:
    """Document payload plus the version it was read at."""

    def __init__(self, data: dict, version: int):
        self.data = data
        self.version = version


class JsonDocumentStore:
    """JSON file on disk, replaced atomically on save."""

    def __init__(self, path: str | Path, default_factory: Callable[[], dict] = dict):
        self.path = Path(path)
        self.default_factory = default_factory

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def lock_key(self) -> str:
        return str(self.path.resolve())

    def load(self) -> StoredDocument:
        """Read the document; a missing file yields the default document at version 0."""
        data, version = self._read()
        return StoredDocument(data, version)

    def save(self, data: dict, expected_version: int) -> int:
        """Overwrite the document, return the new version."""
        with document_lock(self.lock_key):
            _, current = self._read()
            if current != expected_version:
                logger.warning(
                    "stale_document_rejected",
                    extra={"document": self.name, "expected": expected_version, "actual": current},
                )
                raise StaleDocumentError(self.name, expected_version, current)

            new_version = current + 1
            payload = dict(data)
            payload[VERSION_KEY] = new_version
            self._write(payload)
        return new_version

    def _read(self) -> tuple[dict, int]:
        if not self.path.exists():
            return self.default_factory(), 0
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Document {self.name} is not valid JSON: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Could not read {self.name}: {e}") from e

        if not isinstance(raw, dict):
            raise PersistenceError(f"Document {self.name} must hold a JSON object")
        version = int(raw.pop(VERSION_KEY, 0))
        return raw, version

    def _write(self, payload: dict) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {self.name}: {e}") from e


class InMemoryDocumentStore:
    """Drop-in replacement for ``JsonDocumentStore`` that never touches disk."""

    def __init__(self, initial: dict | None = None, default_factory: Callable[[], dict] = dict, name: str = "memory"):
        self.default_factory = default_factory
        self.name = name
        self._data = copy.deepcopy(initial) if initial is not None else None
        self._version = 0 if initial is None else 1
        self.saves = 0

    @property
    def lock_key(self) -> str:
        return f"memory:{id(self)}"

    def load(self) -> StoredDocument:
        if self._data is None:
            return StoredDocument(self.default_factory(), 0)
        return StoredDocument(copy.deepcopy(self._data), self._version)

    def save(self, data: dict, expected_version: int) -> int:
        if expected_version != self._version:
            raise StaleDocumentError(self.name, expected_version, self._version)
        # round-trip so unserializable values fail here like they would on disk
        self._data = json.loads(json.dumps(data))
        self._version += 1
        self.saves += 1
        return self._version
