import uuid
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from salescrm.core.database import Base


class Project(str, enum.Enum):
    AMAZON = "amazon"
    SHOPIFY = "shopify"


class DealStatus(str, enum.Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    PREPAYMENT = "prepayment"
    PARTIAL = "partial"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FROZEN = "frozen"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


# Стадии воронки: каждая следующая - подмножество предыдущей
CONTACT_STATUSES = (
    DealStatus.IN_PROGRESS.value,
    DealStatus.PREPAYMENT.value,
    DealStatus.PARTIAL.value,
    DealStatus.COMPLETED.value,
)
NEGOTIATION_STATUSES = (
    DealStatus.PREPAYMENT.value,
    DealStatus.PARTIAL.value,
    DealStatus.COMPLETED.value,
)
ACTIVE_STATUSES = (
    DealStatus.NEW.value,
    DealStatus.IN_PROGRESS.value,
    DealStatus.PREPAYMENT.value,
    DealStatus.PARTIAL.value,
)


class Deal(Base):
    __tablename__ = "deals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    
    # Клиент
    client_name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String, nullable=True)
    
    project = Column(String(50), nullable=False)
    program = Column(String, nullable=False)  # Amazon PRO, Amazon PRO+, Shopify Basic...
    manager_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(50), default=DealStatus.NEW.value, nullable=False)
    
    # Суммы. remaining_amount = amount - paid_amount, пересчитывается при каждом изменении сумм
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), default=0, nullable=False)
    remaining_amount = Column(Numeric(12, 2), default=0, nullable=False)
    
    # Маркетинг и сегментация
    source = Column(String, nullable=True)
    marketing_channel = Column(String, nullable=True)
    payment_method = Column(String, nullable=True)
    gender = Column(String(20), nullable=True)
    client_segment = Column(String, nullable=True)
    comments = Column(Text, nullable=True)
    bank_order_number = Column(String, nullable=True)
    
    # Даты
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    manager = relationship("User", foreign_keys=[manager_id], back_populates="deals_managed")
    returns = relationship("DealReturn", back_populates="deal", cascade="all, delete-orphan")
