"""
fundchat.runtime

Business engines built on the collection store and lock manager.
"""

from .accounts import AccountService
from .ledger import LedgerEngine
from .messaging import MessagingEngine

__all__ = ["AccountService", "LedgerEngine", "MessagingEngine"]
