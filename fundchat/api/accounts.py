"""
API: registration, login and profiles.

Thin wrapper around runtime.accounts.AccountService. Request bodies keep the
field names the existing mobile/web clients already send.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fundchat.api.deps import get_accounts
from fundchat.runtime import AccountService

router = APIRouter(tags=["accounts"])


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str
    name: str = ""
    bio: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class EmailRequest(BaseModel):
    email: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None


@router.post("/register")
def register(payload: RegisterRequest, svc: AccountService = Depends(get_accounts)) -> Dict[str, Any]:
    user = svc.register(payload.email, payload.password, name=payload.name, bio=payload.bio)
    return {"ok": True, "message": "User registered successfully", "user": user}


@router.post("/login")
def login(payload: LoginRequest, svc: AccountService = Depends(get_accounts)) -> Dict[str, Any]:
    user = svc.authenticate(payload.email, payload.password)
    return {
        "ok": True,
        "message": "Login successful",
        "email": user["email"],
        "money": user["money"],
        "user": user,
    }


@router.post("/getUser")
def get_user(payload: EmailRequest, svc: AccountService = Depends(get_accounts)) -> Dict[str, Any]:
    user = svc.get_account(payload.email)
    return {"ok": True, "email": user["email"], "money": user["money"]}


@router.get("/profile")
def profile_by_query(email: str, svc: AccountService = Depends(get_accounts)) -> Dict[str, Any]:
    return {"ok": True, **svc.get_account(email)}


@router.get("/profile/{email}")
def get_profile(email: str, svc: AccountService = Depends(get_accounts)) -> Dict[str, Any]:
    return {"ok": True, **svc.get_account(email)}


@router.put("/profile/{email}")
def update_profile(
    email: str,
    payload: ProfileUpdate,
    svc: AccountService = Depends(get_accounts),
) -> Dict[str, Any]:
    return {"ok": True, **svc.update_profile(email, name=payload.name, bio=payload.bio)}
