from datetime import datetime
from pydantic import EmailStr, Field
from salescrm.models.deal import Project
from salescrm.models.user import UserRole
from salescrm.schemas.common import CamelModel


class UserBase(CamelModel):
    username: str = Field(min_length=3, max_length=100)
    full_name: str = Field(min_length=1)
    email: EmailStr | None = None
    role: UserRole = UserRole.MANAGER
    project: Project | None = None


class UserCreate(UserBase):
    password: str = Field(min_length=6)


class UserUpdate(CamelModel):
    username: str | None = Field(default=None, min_length=3, max_length=100)
    full_name: str | None = Field(default=None, min_length=1)
    email: EmailStr | None = None
    role: UserRole | None = None
    project: Project | None = None
    is_active: bool | None = None
    password: str | None = Field(default=None, min_length=6)


class UserResponse(UserBase):
    """Пароль (даже хеш) наружу не отдается"""
    id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ManagerBrief(CamelModel):
    id: str
    full_name: str
    project: Project | None = None


class LoginRequest(CamelModel):
    username: str
    password: str


class Token(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
