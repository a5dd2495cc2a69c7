import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import hash_password, token_for_account
from database import get_db, oid
from main import app
from menus import MenuCatalog
from portfolios import create_account
from schemas import ROLE_OPERATOR, STATUS_PUBLISHED
from seed import seed_platform_menus


@pytest.fixture
def db():
    database = mongomock.MongoClient()["portfolio_test"]
    seed_platform_menus(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def catalog(db):
    return MenuCatalog.load(db)


@pytest.fixture
def make_account(db):
    """Create an account; returns (account document, auth headers)."""
    def _make(email="ada@example.com", name="Ada", role="regular", password="correct-horse"):
        account = create_account(db, email, hash_password(password), name, role=role)
        headers = {"Authorization": f"Bearer {token_for_account(account)}"}
        return account, headers
    return _make


@pytest.fixture
def tenant(make_account):
    return make_account()


@pytest.fixture
def operator(make_account):
    return make_account(email="ops@example.com", name="Ops", role=ROLE_OPERATOR)


@pytest.fixture
def publish(db):
    def _publish(portfolio_id, **fields):
        db["portfolio"].update_one(
            {"_id": oid(portfolio_id)},
            {"$set": {"status": STATUS_PUBLISHED, "is_public": True, **fields}},
        )
        return db["portfolio"].find_one({"_id": oid(portfolio_id)})
    return _publish
