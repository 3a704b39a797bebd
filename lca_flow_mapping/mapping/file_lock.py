"""Cross-process file lock for mapping file writes."""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

try:
    import fcntl
except ImportError as exc:  # pragma: no cover
    raise RuntimeError("Mapping file locking requires fcntl on this platform.") from exc

_DEFAULT_TIMEOUT_SECONDS = 60.0
_DEFAULT_POLL_SECONDS = 0.05


class FileLockTimeout(TimeoutError):
    """Raised when the mapping file lock cannot be acquired before timeout."""


def lock_path_for(path: Path) -> Path:
    return path.with_name(f"{path.name}.lock")


def _try_acquire_lock(handle: Any) -> bool:
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        return True
    except BlockingIOError:
        return False


def _release_lock(handle: Any) -> None:
    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def hold_file_lock(
    path: Path,
    *,
    reason: str,
    timeout_seconds: float | None = None,
    poll_seconds: float | None = None,
    logger: Any | None = None,
) -> Iterator[Path]:
    """Acquire an exclusive lock guarding writes to ``path``.

    ``timeout_seconds`` normally comes from ``Settings.file_lock_timeout``;
    zero waits indefinitely.
    """
    timeout = _DEFAULT_TIMEOUT_SECONDS if timeout_seconds is None else float(timeout_seconds)
    poll = _DEFAULT_POLL_SECONDS if poll_seconds is None else max(float(poll_seconds), 0.01)
    timeout = max(timeout, 0.0)

    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    started = time.monotonic()

    with lock_path.open("a+", encoding="utf-8") as handle:
        while not _try_acquire_lock(handle):
            waited = time.monotonic() - started
            if timeout > 0 and waited >= timeout:
                raise FileLockTimeout(f"Timed out after {waited:.2f}s acquiring lock {lock_path} (reason={reason}).")
            time.sleep(poll)

        if logger is not None:
            logger.debug(
                "mapping_file.lock_acquired",
                path=str(path),
                reason=reason,
                waited_seconds=round(time.monotonic() - started, 3),
            )
        try:
            yield path
        finally:
            _release_lock(handle)
