"""Persisted flow mapping cache."""

from .cache import MappingCache
from .file_lock import FileLockTimeout, hold_file_lock
from .rows import COLUMNS, decode_row, encode_row

__all__ = [
    "COLUMNS",
    "FileLockTimeout",
    "MappingCache",
    "decode_row",
    "encode_row",
    "hold_file_lock",
]
