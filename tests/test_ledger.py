import json
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from fundchat.errors import (
    AccountNotFound,
    BalanceLimitExceeded,
    InsufficientFunds,
    InvalidAmount,
    ProjectNotFound,
    StoreUnavailable,
)
from fundchat.runtime.ledger import LedgerEngine, max_exact_balance, parse_amount, to_json_number, to_money
from fundchat.storage import CollectionStore


def _total_value(store):
    accounts = sum(to_money(a.get("money")) for a in store.read("accounts"))
    projects = sum(to_money(p.get("investedAmount")) for p in store.read("projects"))
    return accounts + projects


def _project(store, pid):
    return next(p for p in store.read("projects") if p["id"] == pid)


# ---------------------------------------------------------------------------
# parse_amount
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("raw,expected", [
    (300, Decimal("300.00")),
    ("12.5", Decimal("12.50")),
    (" 7 ", Decimal("7.00")),
    (0.1, Decimal("0.10")),
    (Decimal("1.005"), Decimal("1.01")),
])
def test_parse_amount_accepts_decimal_input(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [
    "abc", "", None, True, "NaN", "inf", float("nan"), float("inf"),
    0, -5, "0.001", [1], {"a": 1}, "1e999999999",
])
def test_parse_amount_rejects_bad_input(raw):
    with pytest.raises(InvalidAmount):
        parse_amount(raw)


# ---------------------------------------------------------------------------
# credit / debit / balance
# ---------------------------------------------------------------------------


def test_credit_adds_to_balance(ledger):
    assert ledger.credit("alice", "25.50") == Decimal("1025.50")
    assert ledger.get_balance("alice") == Decimal("1025.5")


def test_credit_unknown_account(ledger):
    with pytest.raises(AccountNotFound):
        ledger.credit("mallory", 10)


def test_debit_subtracts(ledger):
    assert ledger.debit("bob", 20) == Decimal(30)
    assert ledger.get_balance("bob") == Decimal(30)


def test_debit_whole_balance_allowed(ledger):
    assert ledger.debit("bob", 50) == Decimal(0)


def test_debit_insufficient_funds_leaves_balance(ledger):
    with pytest.raises(InsufficientFunds):
        ledger.debit("bob", "50.01")
    assert ledger.get_balance("bob") == Decimal(50)


def test_invalid_amount_rejected_before_lookup(ledger):
    # InvalidAmount wins over AccountNotFound: validation happens first.
    with pytest.raises(InvalidAmount):
        ledger.credit("mallory", "lots")


def test_get_balance_unknown(ledger):
    with pytest.raises(AccountNotFound):
        ledger.get_balance("nobody")


# ---------------------------------------------------------------------------
# invest
# ---------------------------------------------------------------------------


def test_invest_scenario(ledger, store):
    result = ledger.invest("alice", "projectX", 300)
    assert result.balance == Decimal(700)
    assert result.project["investedAmount"] == 300
    assert ledger.get_balance("alice") == Decimal(700)
    assert _project(store, "projectX")["investedAmount"] == 300

    with pytest.raises(InsufficientFunds):
        ledger.invest("alice", "projectX", 800)
    assert ledger.get_balance("alice") == Decimal(700)
    assert _project(store, "projectX")["investedAmount"] == 300


def test_invest_unknown_account_or_project(ledger, store):
    before = _total_value(store)
    with pytest.raises(AccountNotFound):
        ledger.invest("mallory", "projectX", 10)
    with pytest.raises(ProjectNotFound):
        ledger.invest("alice", "nope", 10)
    assert _total_value(store) == before
    assert ledger.get_balance("alice") == Decimal(1000)


def test_invest_conserves_money(ledger, store):
    before = _total_value(store)
    ledger.invest("alice", "projectX", "10.25")
    ledger.invest("alice", "projectY", 99)
    ledger.invest("bob", "projectX", "49.75")
    with pytest.raises(InsufficientFunds):
        ledger.invest("bob", "projectY", 1)
    assert _total_value(store) == before


def test_invest_restores_accounts_when_project_write_fails(ledger, store, monkeypatch):
    real_write = store.write

    def failing_write(name, records):
        if name == "projects":
            raise StoreUnavailable("disk full")
        return real_write(name, records)

    monkeypatch.setattr(store, "write", failing_write)
    with pytest.raises(StoreUnavailable):
        ledger.invest("alice", "projectX", 300)

    assert ledger.get_balance("alice") == Decimal(1000)
    assert _project(store, "projectX")["investedAmount"] == 0
    assert not store.journal_path.exists()


class _Crash(Exception):
    pass


def _raw(store, name):
    return json.loads(store.path_for(name).read_text())


def test_failed_rollback_is_finished_on_next_read(ledger, store, monkeypatch):
    before = _total_value(store)
    real_write = store.write
    calls = []

    def flaky_write(name, records):
        calls.append(name)
        if name == "projects" or calls.count("accounts") > 1:
            raise StoreUnavailable("disk full")
        return real_write(name, records)

    monkeypatch.setattr(store, "write", flaky_write)
    with pytest.raises(StoreUnavailable):
        ledger.invest("alice", "projectX", 300)

    # accounts on disk still carry the debit; the journal still holds the pre-images
    assert _raw(store, "accounts")[0]["money"] == 700
    assert store.journal_path.exists()

    monkeypatch.undo()
    assert _total_value(store) == before
    assert ledger.get_balance("alice") == Decimal(1000)
    assert _project(store, "projectX")["investedAmount"] == 0
    assert not store.journal_path.exists()


def test_crash_between_snapshots_rolls_back_on_restart(ledger, store, monkeypatch):
    before = _total_value(store)
    real_write = store.write

    def crashing_write(name, records):
        if name == "projects":
            raise _Crash()
        return real_write(name, records)

    monkeypatch.setattr(store, "write", crashing_write)
    with pytest.raises(_Crash):
        ledger.invest("alice", "projectX", 300)

    restarted = CollectionStore(store.data_dir)
    assert restarted.recover() is True
    assert restarted.recover() is False
    assert _total_value(restarted) == before
    assert _raw(restarted, "accounts")[0]["money"] == 1000


def test_concurrent_invests_linearize(ledger, store):
    before = _total_value(store)

    def attempt(_):
        try:
            ledger.invest("alice", "projectX", 150)
            return True
        except InsufficientFunds:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(10)))

    assert outcomes.count(True) == 6
    assert ledger.get_balance("alice") == Decimal(100)
    assert _project(store, "projectX")["investedAmount"] == 900
    assert _total_value(store) == before


def test_concurrent_credits_are_not_lost(ledger):
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: ledger.credit("bob", 1), range(40)))
    assert ledger.get_balance("bob") == Decimal(90)


def test_no_negative_balances_under_mixed_load(ledger, store):
    def op(i):
        try:
            if i % 3 == 0:
                ledger.debit("bob", 7)
            elif i % 3 == 1:
                ledger.invest("bob", "projectY", 5)
            else:
                ledger.credit("bob", 2)
        except InsufficientFunds:
            pass

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(op, range(60)))
    assert all(to_money(a["money"]) >= 0 for a in store.read("accounts"))


# ---------------------------------------------------------------------------
# projects
# ---------------------------------------------------------------------------


def test_seed_projects_is_idempotent(ledger, store):
    added = ledger.seed_projects([
        {"id": "projectX", "name": "changed", "investedAmount": 999},
        {"id": "projectZ", "name": "Project Z"},
        {"name": "missing id"},
    ])
    assert added == 1
    assert _project(store, "projectX")["name"] == "Project X"
    assert _project(store, "projectZ")["investedAmount"] == 0
    assert ledger.seed_projects([{"id": "projectZ"}]) == 0


def test_get_project(ledger):
    assert ledger.get_project("projectY")["investedAmount"] == 120
    with pytest.raises(ProjectNotFound):
        ledger.get_project("ghost")


# ---------------------------------------------------------------------------
# balance limits
# ---------------------------------------------------------------------------


def test_max_exact_balance_fits_a_double():
    limit = max_exact_balance(2)
    assert limit == Decimal("9999999999999.99")
    assert Decimal(repr(float(limit))) == limit


def test_to_json_number_refuses_lossy_values():
    assert to_json_number(Decimal("1000.50")) == 1000.5
    assert to_json_number(Decimal("100000000000000")) == 100000000000000
    with pytest.raises(ValueError):
        to_json_number(Decimal("100000000000998.99"))


def test_amount_above_limit_rejected(ledger):
    with pytest.raises(InvalidAmount):
        ledger.credit("alice", "99999999999999")
    assert ledger.get_balance("alice") == Decimal(1000)


def test_credit_past_limit_rejected(ledger):
    ledger.credit("alice", "9999999998999.99")
    with pytest.raises(BalanceLimitExceeded):
        ledger.credit("alice", "0.01")
    assert ledger.get_balance("alice") == Decimal("9999999999999.99")


def test_large_balances_conserve_money(ledger, store):
    ledger.credit("alice", "9999999998999.98")
    before = _total_value(store)

    result = ledger.invest("alice", "projectX", "0.01")

    assert result.balance == Decimal("9999999999999.97")
    assert to_money(_raw(store, "accounts")[0]["money"]) == Decimal("9999999999999.97")
    assert _total_value(store) == before


def test_project_total_past_limit_rejected(store, locks):
    store.write("accounts", [{"email": "alice", "money": 100}])
    store.write("projects", [{"id": "big", "investedAmount": 99}])
    ledger = LedgerEngine(store, locks, max_balance=Decimal(100))

    with pytest.raises(BalanceLimitExceeded):
        ledger.invest("alice", "big", 2)
    assert ledger.get_balance("alice") == Decimal(100)
    assert ledger.get_project("big")["investedAmount"] == 99


def test_configured_limit_cannot_exceed_exact_range(store, locks):
    with pytest.raises(ValueError):
        LedgerEngine(store, locks, max_balance=Decimal("1e15"))
