"""
Pytest fixtures for the cashbox test suite.

Provides:
- a fresh SQLite file database per test (tmp_path)
- the FastAPI app wired to that database
- logged-in TestClients for the cashier and admin demo users
- small helpers to seed boxes and read balances

Sessions opened by tests are kept short: SQLite serialises writers with
BEGIN IMMEDIATE, so a test session holding a transaction open would block
the request thread.
"""

import logging
import os
import tempfile

# main.py builds the default engine at import time
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{tempfile.gettempdir()}/cashbox_test_default.db"
)
os.environ["CASHBOX_DEV_SEED"] = "0"

import pytest
from fastapi.testclient import TestClient

from cashbox.logging_config import reset_logging
from cashbox.models.base import build_engine, build_sessionmaker, get_db
from cashbox.models.user import ROLE_ADMIN, ROLE_CASHIER, ROLE_OWNER, User
from cashbox.services.auth import hash_password
from cashbox.services.db_init import init_db
from cashbox.services.ledger_store import CASH_BOX, MONEY_BOX, LedgerStore
from cashbox.services.money_boxes import MoneyBoxService

# Low iteration count keeps the suite fast
_TEST_USERS = [
    ("owner", "Owner Test", "owner1234", ROLE_OWNER),
    ("admin", "Admin Test", "admin1234", ROLE_ADMIN),
    ("cashier", "Cashier Test", "cashier1234", ROLE_CASHIER),
    ("cashier2", "Second Cashier", "cashier1234", ROLE_CASHIER),
]


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{(tmp_path / 'cashbox.db').as_posix()}")
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    factory = build_sessionmaker(engine)
    init_db(dev_seed=False, bind=engine, session_factory=factory)
    with factory() as db:
        for username, name, pw, role in _TEST_USERS:
            db.add(User(
                username=username,
                full_name=name,
                password_hash=hash_password(pw, iterations=1000),
                role=role,
                is_active=True,
            ))
        db.commit()
    return factory


@pytest.fixture
def users(session_factory) -> dict:
    with session_factory() as db:
        return {u.username: u.id for u in db.query(User).all()}


@pytest.fixture
def app(session_factory):
    from main import app as fastapi_app

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    fastapi_app.dependency_overrides[get_db] = _get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


def _login(app, username: str, password: str) -> TestClient:
    client = TestClient(app)
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return client


@pytest.fixture
def anon_client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def cashier_client(app) -> TestClient:
    return _login(app, "cashier", "cashier1234")


@pytest.fixture
def cashier2_client(app) -> TestClient:
    return _login(app, "cashier2", "cashier1234")


@pytest.fixture
def admin_client(app) -> TestClient:
    return _login(app, "admin", "admin1234")


# ---------- helpers ----------


@pytest.fixture
def make_money_box(session_factory):
    """Creates a money box with an opening deposit and returns its id."""

    def _make(name: str, amount=0) -> int:
        with session_factory() as db:
            box = MoneyBoxService(db).create_box(name, amount)
            db.commit()
            return box.id

    return _make


@pytest.fixture
def money_balance(session_factory):
    def _balance(box_id: int):
        with session_factory() as db:
            return LedgerStore(db).current_balance(MONEY_BOX, box_id)

    return _balance


@pytest.fixture
def cash_balance(session_factory):
    def _balance(cash_box_id: int):
        with session_factory() as db:
            return LedgerStore(db).current_balance(CASH_BOX, cash_box_id)

    return _balance


@pytest.fixture
def open_till():
    """Opens the client's cash box and returns its id."""

    def _open(client: TestClient, amount=0) -> int:
        resp = client.post("/api/cash-box/open", json={"opening_amount": amount})
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]["id"]

    return _open


@pytest.fixture
def clean_logging():
    reset_logging()
    yield
    reset_logging()
    logging.getLogger("cashbox").handlers.clear()
