from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from salescrm.core.database import get_db
from salescrm.core.exceptions import Unauthorized
from salescrm.core.permissions import Identity
from salescrm.core.security import decode_access_token
from salescrm.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_active_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Пользователь из bearer-токена; без токена или для неактивного пользователя - 401"""
    if credentials is None:
        raise Unauthorized("Access token required")

    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise Unauthorized("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise Unauthorized("Invalid token")
    return user


def get_current_identity(current_user: User = Depends(get_current_active_user)) -> Identity:
    try:
        role = UserRole(current_user.role)
    except ValueError:
        raise Unauthorized("Invalid user role")
    return Identity(user_id=current_user.id, role=role)
