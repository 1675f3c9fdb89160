from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from salescrm.core.database import get_db
from salescrm.core.dependencies import get_current_identity
from salescrm.core.permissions import Identity
from salescrm.schemas.user import UserCreate, UserResponse, UserUpdate
from salescrm.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserResponse])
def list_users(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Все пользователи по ФИО (Администратор)"""
    return UserService(db).list_users(identity)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return UserService(db).get_user(identity, user_id)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return UserService(db).create_user(identity, user_data)


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return UserService(db).update_user(identity, user_id, user_data)


@router.delete("/{user_id}", response_model=UserResponse)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Мягкое удаление: пользователь остается в БД с is_active = false"""
    return UserService(db).deactivate_user(identity, user_id)
