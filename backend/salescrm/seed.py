"""
Заполнение БД начальными пользователями.

Запуск: python -m salescrm.seed
Повторный запуск ничего не дублирует: пользователь создается, только если его логина еще нет.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from salescrm.core.database import Base, SessionLocal, engine
from salescrm.core.security import get_password_hash
from salescrm.models.deal import Project
from salescrm.models.user import User, UserRole

logger = logging.getLogger(__name__)

SEED_USERS = [
    {
        "username": "admin",
        "password": "admin123",
        "full_name": "Администратор",
        "role": UserRole.ADMIN,
        "project": None,
    },
    {
        "username": "financist",
        "password": "financist123",
        "full_name": "Финансист Тестовый",
        "role": UserRole.FINANCIST,
        "project": None,
    },
    {
        "username": "manager_amazon",
        "password": "manager123",
        "full_name": "Менеджер Amazon",
        "role": UserRole.MANAGER,
        "project": Project.AMAZON,
    },
    {
        "username": "manager_shopify",
        "password": "manager123",
        "full_name": "Менеджер Shopify",
        "role": UserRole.MANAGER,
        "project": Project.SHOPIFY,
    },
]


def seed_data(db: Optional[Session] = None) -> List[str]:
    """Создает недостающих пользователей, возвращает логины созданных"""
    own_session = db is None
    if own_session:
        db = SessionLocal()

    created = []
    try:
        for user_data in SEED_USERS:
            existing = db.query(User).filter(User.username == user_data["username"]).first()
            if existing:
                continue
            project = user_data["project"]
            db.add(User(
                username=user_data["username"],
                hashed_password=get_password_hash(user_data["password"]),
                full_name=user_data["full_name"],
                role=user_data["role"].value,
                project=project.value if project else None,
                is_active=True,
            ))
            created.append(user_data["username"])
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Seeding failed")
        raise
    finally:
        if own_session:
            db.close()

    if created:
        logger.info("Seed users created: %s", ", ".join(created))
    else:
        logger.info("Seed users already present")
    return created


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    import salescrm.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    seed_data()
