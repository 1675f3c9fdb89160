from pydantic import EmailStr, Field, field_validator
from decimal import Decimal
from datetime import datetime
from typing import List, Optional
import enum
from salescrm.core.config import settings
from salescrm.models.deal import DealStatus, Gender, Project
from salescrm.schemas.common import CamelModel, Money, PositiveMoney, parse_day_bound
from salescrm.schemas.user import ManagerBrief


class SearchBy(str, enum.Enum):
    CLIENT = "client"
    PHONE = "phone"
    MANAGER = "manager"


class DealBase(CamelModel):
    client_name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: EmailStr | None = None
    project: Project
    program: str = Field(min_length=1)
    status: DealStatus = DealStatus.NEW
    source: str | None = None
    marketing_channel: str | None = None
    payment_method: str | None = None
    gender: Gender | None = None
    client_segment: str | None = None
    comments: str | None = None
    bank_order_number: str | None = None


class DealCreate(DealBase):
    manager_id: str | None = None  # для менеджера подставляется он сам
    amount: Money
    paid_amount: Money = Decimal("0")


class DealUpdate(CamelModel):
    client_name: str | None = Field(default=None, min_length=1)
    phone: str | None = Field(default=None, min_length=1)
    email: EmailStr | None = None
    project: Project | None = None
    program: str | None = Field(default=None, min_length=1)
    manager_id: str | None = None
    status: DealStatus | None = None
    amount: Optional[Money] = None
    paid_amount: Optional[Money] = None
    source: str | None = None
    marketing_channel: str | None = None
    payment_method: str | None = None
    gender: Gender | None = None
    client_segment: str | None = None
    comments: str | None = None
    bank_order_number: str | None = None


class PaymentCreate(CamelModel):
    amount: PositiveMoney


class DealResponse(DealBase):
    id: str
    manager_id: str
    amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    created_at: datetime
    updated_at: datetime
    manager: ManagerBrief | None = None


class DealFilters(CamelModel):
    """Фильтры списка сделок. Ограничение по владельцу сюда не входит - его накладывает сервис"""
    project: Project | None = None
    status: DealStatus | None = None
    manager_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None
    search_by: SearchBy | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT)

    @field_validator("date_from", mode="before")
    @classmethod
    def parse_date_from(cls, v):
        return parse_day_bound(v)

    @field_validator("date_to", mode="before")
    @classmethod
    def parse_date_to(cls, v):
        return parse_day_bound(v, end_of_day=True)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class DealListResponse(CamelModel):
    deals: List[DealResponse]
    pagination: Pagination
