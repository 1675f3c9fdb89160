import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from salescrm.core.database import Base


class PlanType(str, enum.Enum):
    FIRST_HALF = "first_half"    # 1-15 число
    SECOND_HALF = "second_half"  # 16 - конец месяца


class Plan(Base):
    """План продаж менеджера на половину месяца"""
    __tablename__ = "plans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project = Column(String(50), nullable=False)
    manager_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    plan_type = Column(String(50), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    planned_amount = Column(Numeric(12, 2), nullable=False)
    planned_deals = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    manager = relationship("User", back_populates="plans")
