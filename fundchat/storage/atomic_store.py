from __future__ import annotations

"""
Atomic file helpers.

Every snapshot the node persists goes through atomic_write_bytes:
write to a temp file in the same directory, fsync it, os.replace it over
the target, then fsync the directory. A reader therefore sees either the
previous snapshot or the new one, never a torn file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _fsync_dir(dir_path: Path) -> None:
    # Directory fds are not supported everywhere (e.g. Windows).
    try:
        fd = os.open(str(dir_path), os.O_DIRECTORY)
    except (AttributeError, OSError) as e:
        log.debug("directory fsync unavailable for %s: %s", dir_path, e)
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def json_dumps(obj: Any) -> bytes:
    # Two-space indent keeps snapshots diffable and matches what clients wrote before.
    return json.dumps(obj, ensure_ascii=False, indent=2).encode("utf-8")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    _ensure_dir(path.parent)

    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(str(tmp_path), str(path))
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
