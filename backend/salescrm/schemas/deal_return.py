from pydantic import Field, field_validator
from decimal import Decimal
from datetime import datetime
from salescrm.models.deal_return import ReturnStatus
from salescrm.schemas.common import CamelModel, PositiveMoney, parse_day_bound
from salescrm.schemas.user import ManagerBrief


class ReturnCreate(CamelModel):
    deal_id: str
    return_date: datetime
    return_amount: PositiveMoney
    return_reason: str = Field(min_length=1)

    @field_validator("return_date", mode="before")
    @classmethod
    def parse_return_date(cls, v):
        return parse_day_bound(v)


class ReturnUpdate(CamelModel):
    return_date: datetime | None = None
    return_amount: PositiveMoney | None = None
    return_reason: str | None = Field(default=None, min_length=1)
    status: ReturnStatus | None = None
    processed_by: str | None = None


class DealBrief(CamelModel):
    id: str
    client_name: str
    project: str
    manager_id: str
    amount: Decimal
    paid_amount: Decimal
    created_at: datetime


class ReturnResponse(CamelModel):
    id: str
    deal_id: str
    return_date: datetime
    return_amount: Decimal
    return_reason: str
    status: ReturnStatus
    processed_by: str | None = None
    created_at: datetime
    updated_at: datetime
    deal: DealBrief | None = None
    processor: ManagerBrief | None = None


class ReturnFilters(CamelModel):
    deal_id: str | None = None
    status: ReturnStatus | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None

    @field_validator("date_from", mode="before")
    @classmethod
    def parse_date_from(cls, v):
        return parse_day_bound(v)

    @field_validator("date_to", mode="before")
    @classmethod
    def parse_date_to(cls, v):
        return parse_day_bound(v, end_of_day=True)
