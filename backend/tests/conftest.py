"""
Pytest fixtures for Sales CRM backend tests.

In-memory SQLite, fresh schema per test, users of every role and their tokens.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from salescrm.core.database import Base, SessionLocal, engine, get_db
from salescrm.core.permissions import Identity
from salescrm.core.security import create_access_token, get_password_hash
from salescrm.main import app
from salescrm.models.user import User, UserRole
from salescrm.services.entity_store import EntityStore

PASSWORD = "secret123"


@pytest.fixture(scope='function')
def db_session():
    """Fresh schema for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def store(db_session):
    return EntityStore(db_session)


@pytest.fixture(scope='function')
def client(db_session):
    """Test client with a separate session per request, as in production."""
    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_user(store: EntityStore, username: str, full_name: str, role: UserRole, project=None) -> User:
    return store.create_user({
        "username": username,
        "hashed_password": get_password_hash(PASSWORD),
        "full_name": full_name,
        "role": role,
        "project": project,
    })


@pytest.fixture(scope='function')
def admin(store):
    return _create_user(store, "admin", "Alexey Adminov", UserRole.ADMIN)


@pytest.fixture(scope='function')
def financist(store):
    return _create_user(store, "financist", "Faina Finansova", UserRole.FINANCIST)


@pytest.fixture(scope='function')
def manager(store):
    return _create_user(store, "manager_a", "Maria Amazonova", UserRole.MANAGER, "amazon")


@pytest.fixture(scope='function')
def other_manager(store):
    return _create_user(store, "manager_s", "Sergey Shopifaev", UserRole.MANAGER, "shopify")


def identity_of(user: User) -> Identity:
    return Identity(user_id=user.id, role=UserRole(user.role))


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def make_deal(store):
    """Factory: deal for a manager, any field can be overridden."""
    def _make(manager: User, **overrides):
        data = {
            "client_name": "Иван Клиентов",
            "phone": "+79001234567",
            "project": manager.project or "amazon",
            "program": "Amazon PRO",
            "manager_id": manager.id,
            "amount": "1000.00",
            "paid_amount": "0",
        }
        data.update(overrides)
        return store.create_deal(data)
    return _make


@pytest.fixture(scope='function')
def make_return(store):
    def _make(deal, **overrides):
        data = {
            "deal_id": deal.id,
            "return_date": datetime(2024, 5, 20, 12, 0),
            "return_amount": "50.00",
            "return_reason": "Клиент передумал",
            "status": "requested",
        }
        data.update(overrides)
        return store.create_return(data)
    return _make
