from __future__ import annotations

"""
Collection store.

One JSON document per named collection, each an ordered list of records:

    <data_dir>/accounts.json
    <data_dir>/projects.json
    <data_dir>/chats.json

read() always returns the full list and write() always replaces the full
list. There is no append format on disk; callers that read-modify-write
must hold the collection's lock (see storage.locks).

Tolerant load: an empty file, malformed JSON, or a document that is not a
list reads as an empty collection. This trades durability for availability
and is logged as a warning every time it happens.

Multi-collection commits (write_many) go through a journal:

    <data_dir>/txn.journal

It holds the pre-image of every collection in the commit and is written
before the first snapshot is replaced. It is removed only once every
snapshot is in place. A journal found later belongs to a commit that never
reported success, so the pre-images are restored before anything is read.
"""

import json
import logging
import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

from ..errors import StoreUnavailable
from .atomic_store import atomic_write_bytes, json_dumps

log = logging.getLogger(__name__)

Record = Dict[str, Any]
PathLike = Union[str, Path]

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
JOURNAL_FILENAME = "txn.journal"


class CollectionStore:
    """
    Whole-snapshot JSON persistence for named record collections.

    The store keeps no in-memory copy: every read goes to disk.
    """

    def __init__(self, data_dir: PathLike) -> None:
        self.data_dir = Path(data_dir)
        # Serializes journaled commits against journal recovery.
        self._txn_lock = threading.Lock()

    @property
    def journal_path(self) -> Path:
        return self.data_dir / JOURNAL_FILENAME

    def path_for(self, name: str) -> Path:
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise ValueError(f"invalid collection name: {name!r}")
        return self.data_dir / f"{name}.json"

    def collections(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        return sorted(p.stem for p in self.data_dir.glob("*.json"))

    # ---------------------------
    # Read
    # ---------------------------
    def read(self, name: str) -> List[Record]:
        path = self.path_for(name)
        if self.journal_path.exists():
            self.recover()
        return self._load(name, path)

    def _load(self, name: str, path: Path) -> List[Record]:
        if not path.exists():
            self._bootstrap(name, path)
            return []

        try:
            raw = path.read_bytes()
        except OSError as e:
            log.error("failed to read collection %s: %s", name, e)
            raise StoreUnavailable(f"cannot read collection {name}") from e

        text = raw.decode("utf-8", errors="replace")
        if not text.strip():
            return []

        try:
            data = json.loads(text)
        except ValueError as e:
            log.warning("collection %s is not valid JSON (%s); treating as empty", name, e)
            return []

        if not isinstance(data, list):
            log.warning(
                "collection %s holds %s instead of a list; treating as empty",
                name,
                type(data).__name__,
            )
            return []

        return [r for r in data if isinstance(r, dict)]

    def _bootstrap(self, name: str, path: Path) -> None:
        # O_EXCL: a lock-free reader must never clobber a snapshot a writer
        # replaced in between our exists() check and this call.
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return
        except OSError as e:
            log.error("failed to initialize collection %s: %s", name, e)
            raise StoreUnavailable(f"cannot initialize collection {name}") from e
        with os.fdopen(fd, "wb") as f:
            f.write(json_dumps([]))
        log.info("initialized empty collection %s at %s", name, path)

    # ---------------------------
    # Write (full snapshot replace)
    # ---------------------------
    def write(self, name: str, records: List[Record]) -> None:
        path = self.path_for(name)
        data = json_dumps(list(records))
        try:
            atomic_write_bytes(path, data)
        except OSError as e:
            log.error("failed to write collection %s: %s", name, e)
            raise StoreUnavailable(f"cannot write collection {name}") from e
        log.debug("wrote collection %s (%d records)", name, len(records))

    # ---------------------------
    # Journaled commit across collections
    # ---------------------------
    def write_many(self, updates: Dict[str, List[Record]]) -> None:
        """
        Replace several collections so that either all of them change or,
        once recovery has run, none of them do.

        Snapshots are replaced in the order given. The caller must hold the
        lock of every collection in ``updates``.
        """
        paths = {name: self.path_for(name) for name in updates}
        with self._txn_lock:
            self._recover_locked()
            before = {name: self._load(name, paths[name]) for name in updates}
            journal = {
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "collections": before,
            }
            try:
                atomic_write_bytes(self.journal_path, json_dumps(journal))
            except OSError as e:
                log.error("failed to write journal: %s", e)
                raise StoreUnavailable("cannot write journal") from e

            try:
                for name, records in updates.items():
                    self.write(name, records)
                self.journal_path.unlink()
            except (StoreUnavailable, OSError) as e:
                log.error("commit of %s failed (%s); rolling back", ", ".join(updates), e)
                self._rollback_locked(before)
                if isinstance(e, StoreUnavailable):
                    raise
                raise StoreUnavailable("cannot clear journal") from e

    def recover(self) -> bool:
        """Roll back an interrupted commit, if any. Returns True if one was found."""
        with self._txn_lock:
            return self._recover_locked()

    def _recover_locked(self) -> bool:
        path = self.journal_path
        if not path.exists():
            return False
        try:
            journal = json.loads(path.read_bytes().decode("utf-8"))
            before = journal["collections"]
            if not isinstance(before, dict):
                raise ValueError("journal collections is not a mapping")
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.error("journal %s is unreadable: %s", path, e)
            raise StoreUnavailable("interrupted commit cannot be recovered") from e

        log.warning("rolling back interrupted commit of %s", ", ".join(sorted(before)))
        if not self._rollback_locked(before):
            raise StoreUnavailable("interrupted commit cannot be rolled back")
        return True

    def _rollback_locked(self, before: Dict[str, List[Record]]) -> bool:
        # The journal stays on disk until every pre-image is back in place.
        try:
            for name, records in before.items():
                self.write(name, records)
            self.journal_path.unlink()
        except (StoreUnavailable, OSError) as e:
            log.error("rollback incomplete (%s); journal kept for recovery", e)
            return False
        log.info("rolled back %s", ", ".join(sorted(before)))
        return True
