import pytest

from fundchat.security.hasher import Argon2Params
from fundchat.runtime import AccountService, LedgerEngine, MessagingEngine
from fundchat.storage import CollectionStore, LockManager

# Cheap Argon2 parameters so registration-heavy tests stay fast.
FAST_HASH = Argon2Params(iterations=1, memory_cost_kib=64, parallelism=1, hash_len=16)


@pytest.fixture(scope="function")
def store(tmp_path):
    """Fresh collection store per test, isolated data dir"""
    return CollectionStore(tmp_path / "data")


@pytest.fixture(scope="function")
def locks():
    return LockManager(timeout=2.0)


@pytest.fixture(scope="function")
def ledger(store, locks):
    store.write("accounts", [
        {"email": "alice", "money": 1000},
        {"email": "bob", "money": 50},
    ])
    store.write("projects", [
        {"id": "projectX", "name": "Project X", "investedAmount": 0},
        {"id": "projectY", "name": "Project Y", "investedAmount": 120},
    ])
    return LedgerEngine(store, locks)


@pytest.fixture(scope="function")
def messaging(store, locks):
    return MessagingEngine(store, locks)


@pytest.fixture(scope="function")
def accounts(store, locks):
    return AccountService(store, locks, hash_params=FAST_HASH)


@pytest.fixture(scope="function")
def app_config(tmp_path):
    return {
        "storage": {"data_dir": str(tmp_path / "data"), "lock_timeout_sec": 2.0},
        "uploads": {"dir": str(tmp_path / "uploads"), "max_bytes": 1024},
        "security": {"argon2_iterations": 1, "argon2_memory_kib": 64, "argon2_lanes": 1},
        "seed": {"projects": [
            {"id": "projectX", "name": "Project X", "investedAmount": 0},
        ]},
    }


@pytest.fixture(scope="function")
def client(app_config):
    from fastapi.testclient import TestClient

    from fundchat.fundchat_api import create_app

    with TestClient(create_app(app_config)) as c:
        yield c
