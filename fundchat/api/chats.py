"""
API: /chats

Direct and group chat threads backed by runtime.messaging.MessagingEngine.

Payloads use the client field names ("from", "to", "chatId", "groupName").
Identity fields default to "" so a missing participant is reported by the
engine as invalid_participants (400) rather than a schema error.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from fundchat.api.deps import get_images, get_messaging
from fundchat.errors import FundchatError
from fundchat.runtime import MessagingEngine
from fundchat.storage.uploads import ImageStore

router = APIRouter(prefix="/chats", tags=["chats"])


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class _ClientModel(BaseModel):
    model_config = {"populate_by_name": True}


class DirectCreate(_ClientModel):
    sender: str = Field("", alias="from")
    recipient: str = Field("", alias="to")


class DirectSend(_ClientModel):
    sender: str = Field("", alias="from")
    recipient: str = Field("", alias="to")
    message: str = ""


class GroupCreate(_ClientModel):
    group_name: str = Field("", alias="groupName")
    participants: List[str] = Field(default_factory=list)
    creator: Optional[str] = None
    event_id: Optional[str] = Field(None, alias="eventId")


class GroupSend(_ClientModel):
    chat_id: str = Field(..., alias="chatId")
    sender: str = Field("", alias="from")
    message: str = ""


class MessageCreate(_ClientModel):
    sender: str = Field("", alias="from")
    message: Optional[str] = None
    image: Optional[str] = None
    event_id: Optional[str] = Field(None, alias="eventId")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("")
def list_chats(email: str, engine: MessagingEngine = Depends(get_messaging)) -> List[Dict[str, Any]]:
    return engine.list_threads_for(email)


@router.post("/create")
def create_direct(payload: DirectCreate, engine: MessagingEngine = Depends(get_messaging)) -> Dict[str, Any]:
    thread, created = engine.resolve_or_create_direct(payload.sender, payload.recipient)
    return {
        "ok": True,
        "message": "Chat created" if created else "Chat already exists",
        "created": created,
        "chat": thread,
    }


@router.post("/send")
def send_direct(payload: DirectSend, engine: MessagingEngine = Depends(get_messaging)) -> Dict[str, Any]:
    thread, message = engine.send_direct(payload.sender, payload.recipient, text=payload.message)
    return {"ok": True, "success": True, "chatId": thread["chatId"], "sent": message}


@router.post("/send-image")
def send_image(
    sender: str = Form("", alias="from"),
    recipient: str = Form("", alias="to"),
    chat_id: str = Form("", alias="chatId"),
    file: UploadFile = File(...),
    engine: MessagingEngine = Depends(get_messaging),
    images: ImageStore = Depends(get_images),
) -> Dict[str, Any]:
    ref = images.save(file.filename or "", file.file.read())
    try:
        if chat_id:
            message = engine.append_message(chat_id, sender, image=ref)
        else:
            thread, message = engine.send_direct(sender, recipient, image=ref)
            chat_id = thread["chatId"]
    except FundchatError:
        images.discard(ref)
        raise
    return {"ok": True, "success": True, "chatId": chat_id, "sent": message}


@router.post("/group/create")
def create_group(payload: GroupCreate, engine: MessagingEngine = Depends(get_messaging)) -> Dict[str, Any]:
    thread = engine.create_group(
        payload.group_name,
        payload.participants,
        creator=payload.creator,
        event_id=payload.event_id,
    )
    return {"ok": True, "message": "Group chat created", "chat": thread}


@router.post("/group/send")
def send_group(payload: GroupSend, engine: MessagingEngine = Depends(get_messaging)) -> Dict[str, Any]:
    message = engine.append_message(payload.chat_id, payload.sender, text=payload.message, group_only=True)
    return {"ok": True, "success": True, "chatId": payload.chat_id, "sent": message}


@router.get("/{chat_id}")
def get_chat(chat_id: str, engine: MessagingEngine = Depends(get_messaging)) -> Dict[str, Any]:
    return {"ok": True, "chat": engine.get_thread(chat_id)}


@router.post("/{chat_id}/messages")
def append_message(
    chat_id: str,
    payload: MessageCreate,
    engine: MessagingEngine = Depends(get_messaging),
) -> Dict[str, Any]:
    message = engine.append_message(
        chat_id,
        payload.sender,
        text=payload.message,
        image=payload.image,
        event_id=payload.event_id,
    )
    return {"ok": True, "chatId": chat_id, "sent": message}
