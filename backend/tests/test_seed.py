from salescrm.core.security import verify_password
from salescrm.models.user import User
from salescrm.seed import SEED_USERS, seed_data


def test_seed_is_idempotent(db_session):
    created = seed_data(db_session)
    assert created == [user["username"] for user in SEED_USERS]

    assert seed_data(db_session) == []
    assert db_session.query(User).count() == len(SEED_USERS)


def test_seeded_users(db_session):
    seed_data(db_session)
    admin = db_session.query(User).filter(User.username == "admin").one()
    assert admin.role == "admin"
    assert verify_password("admin123", admin.hashed_password)

    managers = db_session.query(User).filter(User.role == "manager").order_by(User.project).all()
    assert [manager.project for manager in managers] == ["amazon", "shopify"]


def test_seed_keeps_existing_user(db_session, admin):
    created = seed_data(db_session)
    assert "admin" not in created
    assert db_session.query(User).filter(User.username == "admin").one().full_name == admin.full_name
