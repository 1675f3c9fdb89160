"""
Пользователи и вход в систему.

Пароли хешируются здесь, в хранилище попадает только hashed_password.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from salescrm.core.permissions import Identity, authorize
from salescrm.core.security import get_password_hash, verify_password
from salescrm.models.user import User
from salescrm.schemas.user import UserCreate, UserUpdate
from salescrm.services.entity_store import EntityStore

logger = logging.getLogger(__name__)


class UserService:

    def __init__(self, db: Session):
        self.store = EntityStore(db)

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Пользователь при верном логине/пароле; неактивные не входят"""
        user = self.store.get_user_by_username(username)
        if not user or not verify_password(password, user.hashed_password):
            logger.warning("Failed login attempt for %s", username)
            return None
        if not user.is_active:
            logger.warning("Inactive user %s tried to log in", username)
            return None
        return user

    def list_users(self, identity: Identity) -> List[User]:
        authorize(identity, "users", "read")
        return self.store.list_users()

    def get_user(self, identity: Identity, user_id: str) -> User:
        authorize(identity, "users", "read")
        return self.store.get_user(user_id)

    def create_user(self, identity: Identity, data: UserCreate) -> User:
        authorize(identity, "users", "create")
        values = data.model_dump(exclude={"password"})
        values["hashed_password"] = get_password_hash(data.password)
        return self.store.create_user(values)

    def update_user(self, identity: Identity, user_id: str, data: UserUpdate) -> User:
        authorize(identity, "users", "update")
        partial = data.model_dump(exclude_unset=True, exclude={"password"})
        if data.password:
            partial["hashed_password"] = get_password_hash(data.password)
        return self.store.update_user(user_id, partial)

    def deactivate_user(self, identity: Identity, user_id: str) -> User:
        authorize(identity, "users", "deactivate")
        return self.store.deactivate_user(user_id)
