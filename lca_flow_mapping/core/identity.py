"""Deterministic identifiers for records created in the reference store."""

from __future__ import annotations

import hashlib
import uuid

ID_SEPARATOR = "/"


def normalize_id_parts(*parts: str | None) -> str:
    """Trim and lower-case every part and join them with ``/``."""
    return ID_SEPARATOR.join("" if part is None else str(part).strip().lower() for part in parts)


def make_id(*parts: str | None) -> str:
    """Return a UUID string derived from the MD5 digest of the normalised parts.

    The digest is read in little-endian field order, matching ids generated by
    earlier openLCA tooling for the same fields.
    """
    path = normalize_id_parts(*parts)
    digest = hashlib.md5(path.encode("utf-8")).digest()
    return str(uuid.UUID(bytes_le=digest))
