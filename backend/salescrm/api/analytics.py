from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from salescrm.core.database import get_db
from salescrm.core.dependencies import get_current_identity
from salescrm.core.permissions import Identity, require_permission
from salescrm.schemas.analytics import (
    AnalyticsOverview, ConversionFunnel, DashboardFilters, DashboardMetrics, ManagerPerformance,
    MonthlyReport, MonthlyReportFilters, OverviewFilters, ProjectComparisonItem, ProjectFilter,
    ReturnsAnalysisPoint, RevenueTrendPoint, SalesChartPoint, TopManager, TopManagersFilter, TrendWindow,
)
from salescrm.schemas.common import parse_model
from salescrm.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])

analytics_reader = require_permission("analytics", "read")


# ========== Дашборд (менеджер видит свои сделки) ==========

@router.get("/dashboard", response_model=DashboardMetrics)
def get_dashboard_metrics(
    project: str | None = Query(None),
    date_from: str | None = Query(None, alias="dateFrom", description="YYYY-MM-DD"),
    date_to: str | None = Query(None, alias="dateTo", description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    filters = parse_model(DashboardFilters, {"project": project, "date_from": date_from, "date_to": date_to})
    return AnalyticsService(db).dashboard_metrics(identity, filters)


@router.get("/sales-chart", response_model=List[SalesChartPoint])
def get_sales_chart(
    days: str | None = Query(None, description="1-366, default 30"),
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    window = parse_model(TrendWindow, {"days": days, "project": project})
    return AnalyticsService(db).sales_chart(identity, window)


# ========== Аналитика (Администратор, Финансист) ==========

@router.get("/overview", response_model=AnalyticsOverview)
def get_overview(
    period: str | None = Query(None, description="week | month | quarter | year"),
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    filters = parse_model(OverviewFilters, {"period": period, "project": project})
    return AnalyticsService(db).overview(identity, filters)


@router.get("/revenue-trend", response_model=List[RevenueTrendPoint])
def get_revenue_trend(
    period: str | None = Query(None, description="week | month | quarter"),
    days: str | None = Query(None, description="1-366"),
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    window = parse_model(TrendWindow, {"period": period, "days": days, "project": project})
    return AnalyticsService(db).revenue_trend(identity, window)


@router.get("/project-comparison", response_model=List[ProjectComparisonItem])
def get_project_comparison(
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    return AnalyticsService(db).project_comparison(identity)


@router.get("/top-managers", response_model=List[TopManager])
def get_top_managers(
    limit: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    filters = parse_model(TopManagersFilter, {"limit": limit})
    return AnalyticsService(db).top_managers(identity, filters)


@router.get("/managers-performance", response_model=List[ManagerPerformance])
def get_managers_performance(
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    filters = parse_model(ProjectFilter, {"project": project})
    return AnalyticsService(db).managers_performance(identity, filters)


@router.get("/conversion-funnel", response_model=ConversionFunnel)
def get_conversion_funnel(
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    filters = parse_model(ProjectFilter, {"project": project})
    return AnalyticsService(db).conversion_funnel(identity, filters)


@router.get("/returns-analysis", response_model=List[ReturnsAnalysisPoint])
def get_returns_analysis(
    period: str | None = Query(None, description="week | month | quarter"),
    days: str | None = Query(None, description="1-366"),
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    window = parse_model(TrendWindow, {"period": period, "days": days, "project": project})
    return AnalyticsService(db).returns_analysis(identity, window)


@router.get("/monthly-report", response_model=MonthlyReport)
def get_monthly_report(
    year: str | None = Query(None),
    month: str | None = Query(None),
    project: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(analytics_reader)
):
    """Месячный отчет: выручка, возвраты, строки продаж и возвратов, разбивка по менеджерам"""
    filters = parse_model(MonthlyReportFilters, {"year": year, "month": month, "project": project})
    return AnalyticsService(db).monthly_report(identity, filters)
