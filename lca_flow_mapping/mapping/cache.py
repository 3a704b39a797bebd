"""Persisted cache of resolved flow mappings."""

from __future__ import annotations

import csv
import os
import threading
from pathlib import Path

from lca_flow_mapping.core.exceptions import MappingParseError, MappingWriteError
from lca_flow_mapping.core.logging import get_logger
from lca_flow_mapping.core.models import FlowMappingEntry, MappingKey

from .file_lock import FileLockTimeout, hold_file_lock
from .rows import COLUMNS, RowFormatError, decode_row, encode_row

LOGGER = get_logger(__name__)


class MappingCache:
    """Key/value table of flow mappings mirrored in a delimited text file.

    Every ``put`` rewrites the file through a temporary sibling that replaces
    the mapping file, so readers never observe a partially written row.
    """

    def __init__(
        self,
        path: Path,
        *,
        delimiter: str = ";",
        lock_timeout: float | None = None,
    ) -> None:
        self._path = Path(path)
        self._delimiter = delimiter
        self._lock_timeout = lock_timeout
        self._entries: dict[MappingKey, FlowMappingEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        path: Path,
        *,
        delimiter: str = ";",
        lock_timeout: float | None = None,
    ) -> "MappingCache":
        """Load ``path`` or create an empty mapping file there."""
        cache = cls(path, delimiter=delimiter, lock_timeout=lock_timeout)
        if cache._path.exists():
            cache.reload()
            return cache
        cache._path.parent.mkdir(parents=True, exist_ok=True)
        with hold_file_lock(cache._path, reason="create", timeout_seconds=lock_timeout, logger=LOGGER):
            if cache._path.exists():
                cache._entries = cache._read_entries()
            else:
                cache._write_entries({})
                LOGGER.info("mapping_cache.created", path=str(cache._path))
        return cache

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def entries(self) -> tuple[FlowMappingEntry, ...]:
        with self._lock:
            return tuple(self._entries.values())

    def reload(self) -> None:
        """Replace the in-memory table with the content of the mapping file."""
        entries = self._read_entries() if self._path.exists() else {}
        with self._lock:
            self._entries = entries
        LOGGER.info("mapping_cache.loaded", path=str(self._path), entries=len(entries))

    def try_get(self, key: MappingKey) -> FlowMappingEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: MappingKey, entry: FlowMappingEntry) -> FlowMappingEntry:
        """Store ``entry`` durably and return it in its persisted form.

        Persistence failures raise ``MappingWriteError`` and leave the
        in-memory table unchanged.
        """
        if MappingKey.of(entry.source) != key:
            raise ValueError(f"Mapping key {key} does not match entry source {entry.source.describe()}")
        try:
            stored = decode_row(encode_row(entry))
        except RowFormatError as exc:
            raise MappingWriteError(f"Mapping for {entry.source.describe()} cannot be stored: {exc}") from exc
        with self._lock:
            if self._entries.get(key) == stored:
                return stored
            try:
                with hold_file_lock(self._path, reason="put", timeout_seconds=self._lock_timeout, logger=LOGGER):
                    # merge rows other processes may have written since our last read
                    current = self._read_entries() if self._path.exists() else {}
                    current[key] = stored
                    self._write_entries(current)
            except (FileLockTimeout, OSError) as exc:
                LOGGER.error("mapping_cache.write_failed", path=str(self._path), error=str(exc))
                raise MappingWriteError(f"Mapping file {self._path} could not be written: {exc}") from exc
            self._entries = {**self._entries, **current}
        LOGGER.debug("mapping_cache.put", path=str(self._path), key=entry.source.describe())
        return stored

    # Internal helpers --------------------------------------------------------
    def _read_entries(self) -> dict[MappingKey, FlowMappingEntry]:
        entries: dict[MappingKey, FlowMappingEntry] = {}
        with self._path.open("r", encoding="utf-8", newline="") as handle:
            reader = csv.reader(handle, delimiter=self._delimiter)
            for row in reader:
                line_number = reader.line_num
                if not row or all(not cell.strip() for cell in row):
                    continue
                if line_number == 1 and tuple(cell.strip().lower() for cell in row) == COLUMNS:
                    continue
                try:
                    entry = decode_row(row)
                except RowFormatError as exc:
                    raise MappingParseError(line_number, str(exc), self._path) from exc
                key = MappingKey.of(entry.source)
                if key in entries:
                    LOGGER.warning("mapping_cache.duplicate_row", path=str(self._path), line=line_number)
                entries[key] = entry
        return entries

    def _write_entries(self, entries: dict[MappingKey, FlowMappingEntry]) -> None:
        temp_path = self._path.with_name(f"{self._path.name}.tmp")
        with temp_path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, delimiter=self._delimiter, lineterminator="\n")
            writer.writerow(COLUMNS)
            for entry in entries.values():
                writer.writerow(encode_row(entry))
            handle.flush()
            os.fsync(handle.fileno())
        temp_path.replace(self._path)
