import uuid
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from salescrm.core.database import Base


class ReturnStatus(str, enum.Enum):
    REQUESTED = "requested"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


# После этих статусов возврат больше не меняется
TERMINAL_RETURN_STATUSES = (ReturnStatus.COMPLETED.value, ReturnStatus.REJECTED.value)


class DealReturn(Base):
    """Возврат средств по сделке. Отдельный реестр: сумму оплаты сделки не меняет"""
    __tablename__ = "returns"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deal_id = Column(String(36), ForeignKey("deals.id"), nullable=False, index=True)
    return_date = Column(DateTime, nullable=False)
    return_amount = Column(Numeric(12, 2), nullable=False)
    return_reason = Column(Text, nullable=False)
    status = Column(String(50), default=ReturnStatus.REQUESTED.value, nullable=False)
    processed_by = Column(String(36), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    deal = relationship("Deal", back_populates="returns")
    processor = relationship("User", foreign_keys=[processed_by])
