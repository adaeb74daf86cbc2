"""
fundchat/runtime/ledger.py
--------------------------

Account balances and project investments.

Amounts are Decimals quantized to ``places`` currency places. They are
parsed and validated before any lock is taken, so a doomed request never
holds a collection.

Balances are stored as JSON numbers, which readers decode as doubles. A
double holds any decimal of up to EXACT_DIGITS significant digits exactly,
so every amount, balance and project total is capped at ``max_balance``
(at most the largest value with that many digits).

Invariants:

- No committed account state has ``money < 0``.
- ``invest`` only moves value: the account loses exactly what the project
  gains, and either both snapshots reflect it or neither does.
- ``investedAmount`` on a project never decreases.
- No stored balance or total exceeds ``max_balance``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from ..errors import (
    AccountNotFound,
    BalanceLimitExceeded,
    InsufficientFunds,
    InvalidAmount,
    ProjectNotFound,
)
from ..storage.collection_store import CollectionStore, Record
from ..storage.locks import LockManager

log = logging.getLogger(__name__)

ACCOUNTS = "accounts"
PROJECTS = "projects"
DEFAULT_PLACES = 2
EXACT_DIGITS = 15

AmountLike = Union[int, float, str, Decimal]


# ---------------------------------------------------------------------------
# Amount helpers
# ---------------------------------------------------------------------------


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-int(places))


def parse_amount(raw: Any, places: int = DEFAULT_PLACES, maximum: Optional[Decimal] = None) -> Decimal:
    """
    Parse an external amount into a positive, finite, quantized Decimal.

    Accepts ints, floats, Decimals and decimal strings ("12.50").
    Raises InvalidAmount for anything else, for NaN/infinity and for values
    that are not strictly positive after rounding to ``places`` or that
    exceed ``maximum``.
    """
    if isinstance(raw, bool) or raw is None:
        raise InvalidAmount(f"invalid amount: {raw!r}")
    if isinstance(raw, str):
        raw = raw.strip()
    if not isinstance(raw, (int, float, str, Decimal)):
        raise InvalidAmount(f"invalid amount: {raw!r}")

    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise InvalidAmount(f"invalid amount: {raw!r}") from None

    if not value.is_finite():
        raise InvalidAmount(f"amount must be finite: {raw!r}")

    try:
        value = value.quantize(_quantum(places), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the decimal context can represent.
        raise InvalidAmount(f"amount out of range: {raw!r}") from None
    if value <= 0:
        raise InvalidAmount(f"amount must be positive: {raw!r}")
    if maximum is not None and value > maximum:
        raise InvalidAmount(f"amount exceeds {maximum}: {raw!r}")
    return value


def to_money(value: Any) -> Decimal:
    """Read a stored JSON number back into a Decimal (missing -> 0)."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"stored amount is not numeric: {value!r}") from None


def max_exact_balance(places: int = DEFAULT_PLACES) -> Decimal:
    """Largest amount with EXACT_DIGITS significant digits at ``places``."""
    return Decimal(10) ** (EXACT_DIGITS - int(places)) - _quantum(places)


def to_json_number(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    number = float(value)
    if Decimal(repr(number)) != value:
        raise ValueError(f"{value} cannot be stored exactly as a JSON number")
    return number


def _find(records: List[Record], key: str, ident: str) -> Optional[Record]:
    for r in records:
        if r.get(key) == ident:
            return r
    return None


@dataclass
class InvestmentResult:
    balance: Decimal
    project: Record


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class LedgerEngine:
    """
    Ledger operations over the ``accounts`` and ``projects`` collections.

    Holds no state of its own between calls; every operation re-reads the
    snapshots from the store.
    """

    def __init__(
        self,
        store: CollectionStore,
        locks: LockManager,
        *,
        places: int = DEFAULT_PLACES,
        max_balance: Optional[Decimal] = None,
        accounts: str = ACCOUNTS,
        projects: str = PROJECTS,
    ) -> None:
        self._store = store
        self._locks = locks
        self.places = int(places)
        limit = max_exact_balance(self.places)
        if max_balance is None:
            max_balance = limit
        elif Decimal(max_balance) > limit:
            raise ValueError(f"max_balance {max_balance} exceeds the exact limit {limit}")
        self.max_balance = Decimal(max_balance)
        self.accounts = accounts
        self.projects = projects

    def parse(self, raw: Any) -> Decimal:
        return parse_amount(raw, self.places, self.max_balance)

    def _check_limit(self, what: str, total: Decimal) -> None:
        if total > self.max_balance:
            log.info("%s rejected: %s would exceed %s", what, total, self.max_balance)
            raise BalanceLimitExceeded(f"{what} would exceed {self.max_balance}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, account_id: str) -> Decimal:
        account = _find(self._store.read(self.accounts), "email", account_id)
        if account is None:
            raise AccountNotFound(f"account {account_id} not found")
        return to_money(account.get("money"))

    def list_projects(self) -> List[Record]:
        return self._store.read(self.projects)

    def get_project(self, project_id: str) -> Record:
        project = _find(self._store.read(self.projects), "id", project_id)
        if project is None:
            raise ProjectNotFound(f"project {project_id} not found")
        return project

    # ------------------------------------------------------------------
    # Single-account mutations
    # ------------------------------------------------------------------

    def credit(self, account_id: str, amount: AmountLike) -> Decimal:
        value = self.parse(amount)
        with self._locks.hold(self.accounts):
            accounts = self._store.read(self.accounts)
            account = _find(accounts, "email", account_id)
            if account is None:
                raise AccountNotFound(f"account {account_id} not found")

            balance = to_money(account.get("money")) + value
            self._check_limit(f"balance of {account_id}", balance)
            account["money"] = to_json_number(balance)
            self._store.write(self.accounts, accounts)

        log.info("credit %s +%s -> %s", account_id, value, balance)
        return balance

    def debit(self, account_id: str, amount: AmountLike) -> Decimal:
        value = self.parse(amount)
        with self._locks.hold(self.accounts):
            accounts = self._store.read(self.accounts)
            account = _find(accounts, "email", account_id)
            if account is None:
                raise AccountNotFound(f"account {account_id} not found")

            current = to_money(account.get("money"))
            if value > current:
                log.info("debit %s rejected: %s > balance %s", account_id, value, current)
                raise InsufficientFunds(f"balance {current} is less than {value}")

            balance = current - value
            account["money"] = to_json_number(balance)
            self._store.write(self.accounts, accounts)

        log.info("debit %s -%s -> %s", account_id, value, balance)
        return balance

    # ------------------------------------------------------------------
    # Cross-collection: accounts + projects
    # ------------------------------------------------------------------

    def invest(self, account_id: str, project_id: str, amount: AmountLike) -> InvestmentResult:
        value = self.parse(amount)
        with self._locks.hold(self.accounts, self.projects):
            accounts = self._store.read(self.accounts)
            projects = self._store.read(self.projects)
            account = _find(accounts, "email", account_id)
            if account is None:
                raise AccountNotFound(f"account {account_id} not found")
            project = _find(projects, "id", project_id)
            if project is None:
                raise ProjectNotFound(f"project {project_id} not found")

            current = to_money(account.get("money"))
            if value > current:
                log.info("invest %s -> %s rejected: %s > balance %s", account_id, project_id, value, current)
                raise InsufficientFunds(f"balance {current} is less than {value}")

            balance = current - value
            invested = to_money(project.get("investedAmount")) + value
            self._check_limit(f"investment in {project_id}", invested)
            account["money"] = to_json_number(balance)
            project["investedAmount"] = to_json_number(invested)

            self._store.write_many({self.accounts: accounts, self.projects: projects})

        log.info("invest %s -> %s amount=%s balance=%s", account_id, project_id, value, balance)
        return InvestmentResult(balance=balance, project=project)

    # ------------------------------------------------------------------
    # Seed data
    # ------------------------------------------------------------------

    def seed_projects(self, seeds: List[Dict[str, Any]]) -> int:
        """
        Add seed projects whose ``id`` is not present yet.

        Existing projects are never touched, so seeding is safe on every boot.
        Returns the number of projects added.
        """
        if not seeds:
            return 0
        with self._locks.hold(self.projects):
            projects = self._store.read(self.projects)
            known = {p.get("id") for p in projects}
            added = 0
            for seed in seeds:
                pid = str(seed.get("id") or "").strip()
                if not pid or pid in known:
                    continue
                record = dict(seed)
                record["id"] = pid
                record.setdefault("name", pid)
                record["investedAmount"] = to_json_number(to_money(seed.get("investedAmount", 0)))
                projects.append(record)
                known.add(pid)
                added += 1
            if added:
                self._store.write(self.projects, projects)

        if added:
            log.info("seeded %d project(s)", added)
        return added
