"""
Request-scoped accessors for the engines attached to app.state.
"""

from __future__ import annotations

from fastapi import Request

from fundchat.runtime import AccountService, LedgerEngine, MessagingEngine
from fundchat.storage.uploads import ImageStore


def get_ledger(request: Request) -> LedgerEngine:
    return request.app.state.ledger


def get_messaging(request: Request) -> MessagingEngine:
    return request.app.state.messaging


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_images(request: Request) -> ImageStore:
    return request.app.state.images
