"""
fundchat/runtime/accounts.py
----------------------------

Registration, login and profile records in the ``accounts`` collection.

Only ``name`` and ``bio`` are editable through profiles. Balances change
exclusively through the LedgerEngine.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..errors import AccountExists, AccountNotFound, InvalidCredentials, InvalidInput
from ..security.hasher import DEFAULT_ARGON2_PARAMS, Argon2Params, hash_password, verify_password
from ..storage.collection_store import CollectionStore, Record
from ..storage.locks import LockManager
from .ledger import ACCOUNTS, to_json_number, to_money

log = logging.getLogger(__name__)

DEFAULT_STARTING_BALANCE = Decimal(1000)


def public_view(account: Record) -> Dict[str, Any]:
    """Account as returned to clients (never includes the password hash)."""
    return {
        "email": account.get("email"),
        "name": account.get("name", ""),
        "bio": account.get("bio", ""),
        "money": account.get("money", 0),
    }


class AccountService:
    def __init__(
        self,
        store: CollectionStore,
        locks: LockManager,
        *,
        collection: str = ACCOUNTS,
        starting_balance: Decimal = DEFAULT_STARTING_BALANCE,
        hash_params: Argon2Params = DEFAULT_ARGON2_PARAMS,
    ) -> None:
        self._store = store
        self._locks = locks
        self.collection = collection
        self.starting_balance = to_money(starting_balance)
        self.hash_params = hash_params

    def _find(self, accounts: List[Record], email: str) -> Optional[Record]:
        for a in accounts:
            if a.get("email") == email:
                return a
        return None

    def register(
        self,
        email: str,
        password: str,
        name: str = "",
        bio: str = "",
        starting_balance: Optional[Decimal] = None,
    ) -> Dict[str, Any]:
        email = (email or "").strip()
        if not email:
            raise InvalidInput("email is required")
        if not password:
            raise InvalidInput("password is required")

        opening = self.starting_balance if starting_balance is None else to_money(starting_balance)
        if opening < 0:
            raise InvalidInput("starting balance cannot be negative")

        # Hashing is slow; keep it outside the accounts lock.
        password_hash = hash_password(password, self.hash_params)

        def _insert() -> Record:
            accounts = self._store.read(self.collection)
            if self._find(accounts, email) is not None:
                log.info("registration rejected: %s already exists", email)
                raise AccountExists(f"account {email} already exists")
            record: Record = {
                "email": email,
                "password_hash": password_hash,
                "name": name or "",
                "bio": bio or "",
                "money": to_json_number(opening),
                "createdAt": datetime.now(timezone.utc).isoformat(),
            }
            accounts.append(record)
            self._store.write(self.collection, accounts)
            return record

        record = self._locks.with_lock([self.collection], _insert)
        log.info("registered account %s", email)
        return public_view(record)

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        email = (email or "").strip()
        account = self._find(self._store.read(self.collection), email)
        if account is not None and "password_hash" not in account and "password" in account:
            return self._upgrade_legacy(email, password or "", account)
        if account is None or not verify_password(password or "", account.get("password_hash", "")):
            log.info("login failed for %s", email)
            raise InvalidCredentials("invalid credentials")
        log.info("login success for %s", email)
        return public_view(account)

    def _upgrade_legacy(self, email: str, password: str, account: Record) -> Dict[str, Any]:
        # Older deployments stored plaintext under "password". Verify it once,
        # then replace it with an Argon2id hash.
        stored = str(account.get("password") or "")
        if not stored or not hmac.compare_digest(stored.encode("utf-8"), password.encode("utf-8")):
            log.info("login failed for %s", email)
            raise InvalidCredentials("invalid credentials")

        password_hash = hash_password(password, self.hash_params)
        with self._locks.hold(self.collection):
            accounts = self._store.read(self.collection)
            current = self._find(accounts, email)
            if current is not None and "password_hash" not in current:
                current.pop("password", None)
                current["password_hash"] = password_hash
                self._store.write(self.collection, accounts)
                log.info("upgraded legacy password for %s", email)

        log.info("login success for %s", email)
        return public_view(current if current is not None else account)

    def get_account(self, email: str) -> Dict[str, Any]:
        account = self._find(self._store.read(self.collection), (email or "").strip())
        if account is None:
            raise AccountNotFound(f"account {email} not found")
        return public_view(account)

    def list_accounts(self) -> List[Dict[str, Any]]:
        return [public_view(a) for a in self._store.read(self.collection)]

    def update_profile(
        self,
        email: str,
        name: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> Dict[str, Any]:
        email = (email or "").strip()
        changes = {k: v for k, v in (("name", name), ("bio", bio)) if v is not None}
        with self._locks.hold(self.collection):
            accounts = self._store.read(self.collection)
            account = self._find(accounts, email)
            if account is None:
                raise AccountNotFound(f"account {email} not found")
            if changes:
                account.update(changes)
                self._store.write(self.collection, accounts)

        log.info("profile updated for %s (%s)", email, ", ".join(sorted(changes)) or "no changes")
        return public_view(account)
