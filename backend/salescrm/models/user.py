import uuid
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from salescrm.core.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    FINANCIST = "financist"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    # Роль и проект храним строками, как и статусы сделок
    role = Column(String(50), nullable=False, default=UserRole.MANAGER.value)
    project = Column(String(50), nullable=True)  # имеет смысл только для менеджера
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    deals_managed = relationship("Deal", back_populates="manager", foreign_keys="Deal.manager_id")
    plans = relationship("Plan", back_populates="manager")
