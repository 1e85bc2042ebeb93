"""Baseline store — persists BaselineRecords per (target, viewport) in a JSON document."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from snapwatch.models.baseline import BaselineRecord, BaselineStoreDocument

from .base import StorageError

logger = logging.getLogger(__name__)


def baseline_key(target_id: str, viewport_key: str) -> str:
    return f"{target_id}__{viewport_key}"


class JsonBaselineStore:
    """Baseline records in a single JSON file.

    Every operation re-reads the file, so the file stays the only source of
    truth between runs. Each read-modify-write holds an exclusive ``flock`` on
    a sidecar ``.lock`` file, so separate store instances and separate runs on
    the same path are serialized. Writes go through a unique temp file and
    ``os.replace``, which makes ``compare_and_set`` atomic per key.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self._lock = threading.Lock()

    def load(self) -> BaselineStoreDocument:
        """Load the document from disk, or create a new one."""
        with self._locked():
            return self._read()

    def get(self, target_id: str, viewport_key: str) -> Optional[BaselineRecord]:
        with self._locked():
            return self._read().records.get(baseline_key(target_id, viewport_key))

    def put(self, target_id: str, viewport_key: str, record: BaselineRecord) -> None:
        with self._locked():
            doc = self._read()
            doc.records[baseline_key(target_id, viewport_key)] = record
            self._write(doc)

    def compare_and_set(
        self,
        target_id: str,
        viewport_key: str,
        expected: Optional[BaselineRecord],
        new: BaselineRecord,
    ) -> bool:
        """Replace the record only if it still equals ``expected``."""
        key = baseline_key(target_id, viewport_key)
        with self._locked():
            doc = self._read()
            current = doc.records.get(key)
            if current != expected:
                logger.warning("Baseline record %s changed concurrently; not updating", key)
                return False
            doc.records[key] = new
            self._write(doc)
        logger.debug("Updated baseline record %s -> v%d", key, new.baseline_version)
        return True

    def list_records(self) -> dict[str, BaselineRecord]:
        return dict(self.load().records)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self.lock_path, "a")
            except OSError as e:
                raise StorageError(f"Failed to lock baseline store {self.path}: {e}") from e
            try:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)
                lock_file.close()

    def _read(self) -> BaselineStoreDocument:
        if not self.path.exists():
            return BaselineStoreDocument()
        try:
            with open(self.path) as f:
                data = json.load(f)
            return BaselineStoreDocument(**data)
        except OSError as e:
            raise StorageError(f"Failed to read baseline store {self.path}: {e}") from e
        except Exception as e:
            aside = self.path.with_suffix(self.path.suffix + ".corrupt")
            logger.error("Failed to load baseline store: %s. Moving it to %s.", e, aside)
            os.replace(self.path, aside)
            raise StorageError(f"Baseline store {self.path} is corrupt; moved to {aside}") from e

    def _write(self, doc: BaselineStoreDocument) -> None:
        doc.last_updated = time.strftime("%Y-%m-%dT%H:%M:%SZ")
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.path.parent, prefix=self.path.name + ".", suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                json.dump(doc.model_dump(), f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write baseline store {self.path}: {e}") from e
