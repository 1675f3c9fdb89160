from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from salescrm.core.database import get_db
from salescrm.core.dependencies import get_current_active_user
from salescrm.core.exceptions import Unauthorized
from salescrm.core.security import create_access_token
from salescrm.models.user import User
from salescrm.schemas.user import LoginRequest, Token, UserResponse
from salescrm.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """Вход по логину и паролю, в ответе токен и профиль без пароля"""
    user = UserService(db).authenticate(credentials.username, credentials.password)
    if not user:
        raise Unauthorized("Incorrect username or password")

    access_token = create_access_token(user.id, user.role)
    return Token(access_token=access_token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def read_me(current_user: User = Depends(get_current_active_user)):
    return current_user
