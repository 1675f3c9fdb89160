from pydantic import Field, field_validator, model_validator
from decimal import Decimal
from datetime import date, datetime
from typing import List
import enum
from salescrm.core.config import settings
from salescrm.models.deal import Project
from salescrm.schemas.common import CamelModel, parse_day_bound
from salescrm.schemas.deal import DealResponse
from salescrm.schemas.deal_return import ReturnResponse


class Period(str, enum.Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


PERIOD_DAYS = {
    Period.WEEK: 7,
    Period.MONTH: 30,
    Period.QUARTER: 90,
    Period.YEAR: 365,
}


# ========== Фильтры ==========

class DashboardFilters(CamelModel):
    project: Project | None = None
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


class TrendWindow(CamelModel):
    """Окно в днях: явное days или period (week/month/quarter/year)"""
    period: Period | None = None
    days: int | None = Field(default=None, ge=1, le=366)
    project: Project | None = None

    @model_validator(mode="after")
    def resolve_days(self):
        if self.days is None:
            self.days = PERIOD_DAYS[self.period or Period.MONTH]
        return self


class OverviewFilters(CamelModel):
    period: Period = Period.MONTH
    project: Project | None = None


class ProjectFilter(CamelModel):
    project: Project | None = None


class TopManagersFilter(CamelModel):
    limit: int = Field(default=settings.TOP_MANAGERS_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT)


class MonthlyReportFilters(CamelModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    project: Project | None = None


# ========== Ответы ==========

class DashboardMetrics(CamelModel):
    total_sales: Decimal
    total_deals: int
    average_deal: Decimal
    completed_deals: int
    total_returns: Decimal
    returns_count: int
    net_revenue: Decimal
    conversion_rate: int
    plan_completion: int


class SalesChartPoint(CamelModel):
    date: date
    revenue: Decimal
    deals: int


class ProjectComparisonItem(CamelModel):
    project: Project
    total_amount: Decimal
    percentage: int
    count: int


class TopManager(CamelModel):
    id: str
    full_name: str
    project: Project | None = None
    total_sales: Decimal
    deal_count: int
    completed_deals: int
    avg_deal_size: Decimal
    conversion_rate: int
    plan_completion: int


class AnalyticsOverview(CamelModel):
    gross_revenue: Decimal
    total_returns: Decimal
    net_revenue: Decimal
    active_deals: int
    completed_deals: int
    total_deals: int
    conversion_rate: int
    plan_completion: int
    revenue_growth: Decimal


class RevenueTrendPoint(CamelModel):
    period: date
    gross_revenue: Decimal
    returns: Decimal
    net_revenue: Decimal


class ManagerPerformance(CamelModel):
    id: str
    full_name: str
    project: Project | None = None
    revenue: Decimal
    deals_count: int
    conversion_rate: int
    plan_completion: int


class ConversionFunnel(CamelModel):
    leads: int
    contacts: int
    negotiations: int
    completed: int


class ReturnsAnalysisPoint(CamelModel):
    period: date
    amount: Decimal
    count: int


class ManagerMonthlyStats(CamelModel):
    manager_id: str
    full_name: str
    deal_count: int
    gross_revenue: Decimal
    returns: Decimal
    net_revenue: Decimal


class MonthlyReport(CamelModel):
    year: int
    month: int
    project: Project | None = None
    gross_revenue: Decimal
    total_returns: Decimal
    net_revenue: Decimal
    total_deals: int
    return_count: int
    sales: List[DealResponse]
    returns: List[ReturnResponse]
    manager_stats: List[ManagerMonthlyStats]
