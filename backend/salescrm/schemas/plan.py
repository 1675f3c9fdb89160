from pydantic import Field
from decimal import Decimal
from datetime import datetime
from salescrm.models.deal import Project
from salescrm.models.plan import PlanType
from salescrm.schemas.common import CamelModel, Money
from salescrm.schemas.user import ManagerBrief


class PlanBase(CamelModel):
    project: Project
    manager_id: str
    plan_type: PlanType
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    planned_amount: Money
    planned_deals: int = Field(ge=0)
    is_active: bool = True


class PlanCreate(PlanBase):
    pass


class PlanUpdate(CamelModel):
    project: Project | None = None
    manager_id: str | None = None
    plan_type: PlanType | None = None
    year: int | None = Field(default=None, ge=2000, le=2100)
    month: int | None = Field(default=None, ge=1, le=12)
    planned_amount: Money | None = None
    planned_deals: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class PlanResponse(PlanBase):
    id: str
    planned_amount: Decimal
    created_at: datetime
    updated_at: datetime
    manager: ManagerBrief | None = None


class PlanFilters(CamelModel):
    manager_id: str | None = None
    project: Project | None = None
    plan_type: PlanType | None = None
    year: int | None = Field(default=None, ge=2000, le=2100)
    month: int | None = Field(default=None, ge=1, le=12)
