"""
fundchat/runtime/messaging.py
-----------------------------

Chat threads stored in the ``chats`` collection.

Thread shapes (JSON keys match what the mobile/web clients read):

    direct: {"chatId": "chat_<hex>", "participants": [a, b], "isGroup": false,
             "createdAt": ..., "messages": [...]}
    group:  {"chatId": "group_<hex>", "participants": [...], "isGroup": true,
             "groupName": ..., "creator": ..., "createdAt": ..., "messages": [...]}

    message: {"messageId": ..., "from": ..., "message": <text> | "image": <ref>,
              "ts": <epoch seconds>, "timestamp": <ISO-8601 UTC>, "eventId"?: ...}

Rules:

- At most one direct thread per unordered participant pair. Resolution
  happens under the chats lock, so racing resolvers observe each other.
- Groups are never deduplicated; the name disambiguates.
- Within a thread ``ts`` strictly increases in storage order. A clock
  reading that does not exceed the last message is bumped to last + epsilon.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import InvalidInput, InvalidParticipants, ThreadNotFound
from ..storage.collection_store import CollectionStore, Record
from ..storage.locks import LockManager

log = logging.getLogger(__name__)

CHATS = "chats"
DEFAULT_EPSILON = 1e-6
DEFAULT_MAX_MESSAGE_LEN = 4000


def _new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _clean_ident(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def message_ts(message: Record) -> float:
    """Ordering key of a stored message; older records only carry ``timestamp``."""
    ts = message.get("ts")
    if isinstance(ts, (int, float)) and not isinstance(ts, bool):
        return float(ts)
    stamp = message.get("timestamp")
    if isinstance(stamp, str) and stamp:
        try:
            parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        except ValueError:
            return 0.0
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return 0.0


def is_direct_pair(thread: Record, a: str, b: str) -> bool:
    if thread.get("isGroup"):
        return False
    participants = thread.get("participants") or []
    return len(participants) == 2 and set(participants) == {a, b}


class MessagingEngine:
    def __init__(
        self,
        store: CollectionStore,
        locks: LockManager,
        *,
        collection: str = CHATS,
        clock: Callable[[], float] = time.time,
        epsilon: float = DEFAULT_EPSILON,
        max_message_len: int = DEFAULT_MAX_MESSAGE_LEN,
    ) -> None:
        self._store = store
        self._locks = locks
        self.collection = collection
        self._clock = clock
        self.epsilon = float(epsilon)
        self.max_message_len = int(max_message_len)

    # ------------------------------------------------------------------
    # Validation (runs before any lock)
    # ------------------------------------------------------------------

    @staticmethod
    def _pair(a: Any, b: Any) -> Tuple[str, str]:
        a, b = _clean_ident(a), _clean_ident(b)
        if not a or not b:
            raise InvalidParticipants("both participants are required")
        if a == b:
            raise InvalidParticipants("participants must differ")
        return a, b

    def _body(self, text: Optional[str], image: Optional[str]) -> Dict[str, str]:
        text = text if isinstance(text, str) and text.strip() else None
        image = _clean_ident(image) or None
        if (text is None) == (image is None):
            raise InvalidInput("exactly one of message text or image is required")
        if text is not None:
            if len(text) > self.max_message_len:
                raise InvalidInput(f"message longer than {self.max_message_len} characters")
            return {"message": text}
        return {"image": image}

    # ------------------------------------------------------------------
    # In-lock helpers (operate on the loaded snapshot)
    # ------------------------------------------------------------------

    def _resolve_in(self, chats: List[Record], a: str, b: str) -> Tuple[Record, bool]:
        for thread in chats:
            if is_direct_pair(thread, a, b):
                return thread, False
        thread = {
            "chatId": _new_id("chat"),
            "participants": [a, b],
            "isGroup": False,
            "createdAt": _iso(self._clock()),
            "messages": [],
        }
        chats.append(thread)
        return thread, True

    def _append_in(
        self,
        thread: Record,
        sender: str,
        body: Dict[str, str],
        event_id: Optional[str],
    ) -> Record:
        messages = thread.setdefault("messages", [])
        ts = float(self._clock())
        if messages:
            last = message_ts(messages[-1])
            if ts <= last:
                ts = last + self.epsilon

        message: Record = {"messageId": secrets.token_hex(8), "from": sender}
        message.update(body)
        message["ts"] = ts
        message["timestamp"] = _iso(ts)
        if event_id:
            message["eventId"] = event_id
        messages.append(message)
        return message

    @staticmethod
    def _find(chats: List[Record], thread_id: str) -> Optional[Record]:
        for thread in chats:
            if thread.get("chatId") == thread_id:
                return thread
        return None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def resolve_or_create_direct(self, participant_a: str, participant_b: str) -> Tuple[Record, bool]:
        """
        Return ``(thread, created)`` for the direct thread between the pair.

        Order of the arguments does not matter; repeated calls return the
        same thread.
        """
        a, b = self._pair(participant_a, participant_b)
        with self._locks.hold(self.collection):
            chats = self._store.read(self.collection)
            thread, created = self._resolve_in(chats, a, b)
            if created:
                self._store.write(self.collection, chats)
        if created:
            log.info("created direct thread %s for %s/%s", thread["chatId"], a, b)
        return thread, created

    def create_group(
        self,
        name: str,
        participants: List[str],
        creator: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> Record:
        name = _clean_ident(name)
        if not name:
            raise InvalidInput("group name is required")
        if not isinstance(participants, (list, tuple)):
            raise InvalidParticipants("participants must be a list")

        members: List[str] = []
        for p in participants:
            p = _clean_ident(p)
            if p and p not in members:
                members.append(p)
        if len(members) < 2:
            raise InvalidParticipants("a group needs at least 2 distinct participants")

        thread: Record = {
            "chatId": _new_id("group"),
            "participants": members,
            "isGroup": True,
            "groupName": name,
            "creator": _clean_ident(creator) or None,
            "createdAt": _iso(self._clock()),
            "messages": [],
        }
        if event_id:
            thread["eventId"] = event_id

        with self._locks.hold(self.collection):
            chats = self._store.read(self.collection)
            chats.append(thread)
            self._store.write(self.collection, chats)

        log.info("created group %s (%s) with %d members", thread["chatId"], name, len(members))
        return thread

    def append_message(
        self,
        thread_id: str,
        sender: str,
        text: Optional[str] = None,
        image: Optional[str] = None,
        event_id: Optional[str] = None,
        group_only: bool = False,
    ) -> Record:
        sender = _clean_ident(sender)
        if not sender:
            raise InvalidParticipants("sender is required")
        body = self._body(text, image)

        with self._locks.hold(self.collection):
            chats = self._store.read(self.collection)
            thread = self._find(chats, thread_id)
            if thread is None or (group_only and not thread.get("isGroup")):
                raise ThreadNotFound(f"thread {thread_id} not found")
            if sender not in (thread.get("participants") or []):
                raise InvalidParticipants(f"{sender} is not a participant of {thread_id}")

            message = self._append_in(thread, sender, body, event_id)
            self._store.write(self.collection, chats)

        log.info("message %s appended to %s by %s", message["messageId"], thread_id, sender)
        return message

    def send_direct(
        self,
        sender: str,
        recipient: str,
        text: Optional[str] = None,
        image: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> Tuple[Record, Record]:
        """Resolve (or create) the direct thread and append in one lock hold."""
        a, b = self._pair(sender, recipient)
        body = self._body(text, image)

        with self._locks.hold(self.collection):
            chats = self._store.read(self.collection)
            thread, created = self._resolve_in(chats, a, b)
            message = self._append_in(thread, a, body, event_id)
            self._store.write(self.collection, chats)

        if created:
            log.info("created direct thread %s for %s/%s", thread["chatId"], a, b)
        log.info("message %s appended to %s by %s", message["messageId"], thread["chatId"], a)
        return thread, message

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_threads_for(self, participant_id: str) -> List[Record]:
        ident = _clean_ident(participant_id)
        if not ident:
            raise InvalidParticipants("participant is required")
        return [
            t for t in self._store.read(self.collection)
            if ident in (t.get("participants") or [])
        ]

    def get_thread(self, thread_id: str) -> Record:
        thread = self._find(self._store.read(self.collection), thread_id)
        if thread is None:
            raise ThreadNotFound(f"thread {thread_id} not found")
        return thread
