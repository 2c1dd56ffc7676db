"""Atomic file replacement.

Content is written to a uniquely named temporary file in the target's
directory and renamed over the target only once the write has completed.
Readers therefore see either the previous file or the complete new one.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from .errors import CacheWriteFailed


@contextlib.contextmanager
def atomic_write(path: str | Path, mode: int = 0o600) -> Iterator[BinaryIO]:
    """Yield a binary file that replaces ``path`` when the block exits cleanly.

    The temporary file is removed on every other exit path, including
    ``KeyboardInterrupt``; the existing ``path`` is left untouched.

    Raises:
        CacheWriteFailed: if the temporary file cannot be created or renamed.
    """
    target = Path(path)
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
        )
    except OSError as e:
        raise CacheWriteFailed(str(target), e.strerror or str(e)) from e

    tmp_path = Path(tmp_name)
    committed = False
    try:
        with os.fdopen(fd, "wb") as handle:
            os.chmod(tmp_path, mode)
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, target)
        committed = True
    except OSError as e:
        raise CacheWriteFailed(str(target), e.strerror or str(e)) from e
    finally:
        if not committed:
            with contextlib.suppress(OSError):
                tmp_path.unlink()


def write_bytes_atomic(path: str | Path, data: bytes, mode: int = 0o600) -> None:
    """Atomically replace ``path`` with ``data``."""
    with atomic_write(path, mode) as handle:
        handle.write(data)
