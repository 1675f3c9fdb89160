"""
Аналитика по сделкам и возвратам.

Все агрегаты считаются синхронно на каждый запрос по текущему состоянию БД.
Пустая выборка дает нули, а не None и не деление на ноль.

Правила атрибуции:
    - валовая выручка (gross) = sum(amount) завершенных сделок;
    - возвраты относятся к дате создания исходной сделки, а не к дате возврата
      (кроме анализа возвратов, который смотрит именно на дату возврата);
    - выполнение плана = факт оплат / план, по половинам месяца.
"""
import calendar
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.orm import Session, contains_eager, joinedload

from salescrm.core.permissions import Identity, authorize, owner_filter
from salescrm.models.deal import ACTIVE_STATUSES, CONTACT_STATUSES, NEGOTIATION_STATUSES, Deal, DealStatus, Project
from salescrm.models.deal_return import DealReturn, ReturnStatus
from salescrm.models.plan import Plan, PlanType
from salescrm.models.user import User, UserRole
from salescrm.schemas.analytics import (
    PERIOD_DAYS, AnalyticsOverview, ConversionFunnel, DashboardFilters, DashboardMetrics,
    ManagerMonthlyStats, ManagerPerformance, MonthlyReport, MonthlyReportFilters,
    OverviewFilters, ProjectComparisonItem, ProjectFilter, ReturnsAnalysisPoint,
    RevenueTrendPoint, SalesChartPoint, TopManager, TopManagersFilter, TrendWindow,
)
from salescrm.schemas.common import quantize_money, percent
from salescrm.schemas.deal import DealResponse
from salescrm.schemas.deal_return import ReturnResponse
from salescrm.services.entity_store import DealQuery, EntityStore, deal_conditions

COMPLETED = DealStatus.COMPLETED.value
RETURN_COMPLETED = ReturnStatus.COMPLETED.value


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def day_window(days: int, end: Optional[date] = None) -> Tuple[List[date], datetime, datetime]:
    """Последние days календарных дней, заканчивая end (по умолчанию сегодня). Правая граница не включается"""
    end = end or today_utc()
    start = end - timedelta(days=days - 1)
    dates = [start + timedelta(days=i) for i in range(days)]
    return dates, datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    start = datetime(year, month, 1)
    if month == 12:
        return start, datetime(year + 1, 1, 1)
    return start, datetime(year, month + 1, 1)


def half_month_bounds(year: int, month: int, plan_type: str) -> Tuple[datetime, datetime]:
    """first_half: 1-15 число, second_half: 16 - конец месяца"""
    if plan_type == PlanType.FIRST_HALF.value:
        return datetime(year, month, 1), datetime(year, month, 16)
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, 16), datetime.combine(date(year, month, last_day) + timedelta(days=1), time.min)


def _day_of(value) -> date:
    return value.date() if isinstance(value, datetime) else value


class AnalyticsService:

    def __init__(self, db: Session):
        self.db = db
        self.store = EntityStore(db)

    # ========== Общие выборки ==========

    def _sum(self, column, *conditions) -> Decimal:
        with self.store.guard("analytics"):
            value = self.db.query(func.coalesce(func.sum(column), 0)).filter(*conditions).scalar()
        return quantize_money(value)

    def _count(self, *conditions) -> int:
        with self.store.guard("analytics"):
            return self.db.query(func.count(Deal.id)).filter(*conditions).scalar() or 0

    def _completed_returns_sum(self, *deal_filters) -> Decimal:
        """Завершенные возвраты по сделкам, попадающим под deal_filters"""
        with self.store.guard("analytics"):
            value = (
                self.db.query(func.coalesce(func.sum(DealReturn.return_amount), 0))
                .join(Deal, DealReturn.deal_id == Deal.id)
                .filter(DealReturn.status == RETURN_COMPLETED, *deal_filters)
                .scalar()
            )
        return quantize_money(value)

    # ========== Выполнение плана ==========

    def plan_completion(
        self,
        year: int,
        month: int,
        manager_id: Optional[str] = None,
        project: Optional[str] = None,
    ) -> int:
        """
        Процент выполнения активных планов за месяц.

        План = sum(planned_amount), факт = sum(paid_amount) сделок менеджера плана
        в проекте плана, созданных в половине месяца, на которую поставлен план.
        """
        conditions = [Plan.is_active.is_(True), Plan.year == year, Plan.month == month]
        if manager_id:
            conditions.append(Plan.manager_id == manager_id)
        if project:
            conditions.append(Plan.project == getattr(project, "value", project))

        with self.store.guard("plan_completion"):
            plans = self.db.query(Plan).filter(*conditions).all()

        planned = sum((plan.planned_amount for plan in plans), Decimal("0"))
        actual = Decimal("0")
        for plan in plans:
            start, end = half_month_bounds(plan.year, plan.month, plan.plan_type)
            actual += self._sum(
                Deal.paid_amount,
                Deal.manager_id == plan.manager_id,
                Deal.project == plan.project,
                Deal.created_at >= start,
                Deal.created_at < end,
            )
        return percent(actual, planned)

    def _current_plan_completion(self, manager_id: Optional[str] = None, project: Optional[str] = None) -> int:
        today = today_utc()
        return self.plan_completion(today.year, today.month, manager_id=manager_id, project=project)

    # ========== Дашборд ==========

    def dashboard_metrics(self, identity: Identity, filters: DashboardFilters) -> DashboardMetrics:
        """Метрики дашборда по сделкам в области видимости вызывающего"""
        scope = authorize(identity, "dashboard", "read")
        owner_id = owner_filter(identity, scope)
        conditions = deal_conditions(DealQuery(
            owner_id=owner_id,
            project=filters.project,
            date_from=filters.date_from,
            date_to=filters.date_to,
        ))

        with self.store.guard("dashboard_metrics"):
            total_deals, total_sales, completed_deals = self.db.query(
                func.count(Deal.id),
                func.coalesce(func.sum(Deal.paid_amount), 0),
                func.coalesce(func.sum(case((Deal.status == COMPLETED, 1), else_=0)), 0),
            ).filter(*conditions).one()

            returns_count, total_returns = (
                self.db.query(func.count(DealReturn.id), func.coalesce(func.sum(DealReturn.return_amount), 0))
                .join(Deal, DealReturn.deal_id == Deal.id)
                .filter(DealReturn.status == RETURN_COMPLETED, *conditions)
                .one()
            )

        total_sales = quantize_money(total_sales)
        total_returns = quantize_money(total_returns)
        average_deal = quantize_money(total_sales / total_deals) if total_deals else quantize_money(0)

        return DashboardMetrics(
            total_sales=total_sales,
            total_deals=total_deals,
            average_deal=average_deal,
            completed_deals=int(completed_deals),
            total_returns=total_returns,
            returns_count=returns_count,
            net_revenue=total_sales - total_returns,
            conversion_rate=percent(completed_deals, total_deals),
            plan_completion=self._current_plan_completion(manager_id=owner_id, project=filters.project),
        )

    def sales_chart(self, identity: Identity, window: TrendWindow) -> List[SalesChartPoint]:
        """По дням: сумма оплат и число созданных сделок"""
        scope = authorize(identity, "dashboard", "read")
        dates, start, end = day_window(window.days)
        conditions = deal_conditions(DealQuery(owner_id=owner_filter(identity, scope), project=window.project))

        with self.store.guard("sales_chart"):
            rows = (
                self.db.query(Deal.created_at, Deal.paid_amount)
                .filter(Deal.created_at >= start, Deal.created_at < end, *conditions)
                .all()
            )

        revenue: Dict[date, Decimal] = defaultdict(Decimal)
        counts: Dict[date, int] = defaultdict(int)
        for created_at, paid_amount in rows:
            day = _day_of(created_at)
            revenue[day] += paid_amount or 0
            counts[day] += 1

        return [
            SalesChartPoint(date=day, revenue=quantize_money(revenue[day]), deals=counts[day])
            for day in dates
        ]

    # ========== Аналитика ==========

    def project_comparison(self, identity: Identity) -> List[ProjectComparisonItem]:
        """Завершенные сделки по проектам: сумма amount и доля от общей суммы. Проекты без сделок - нули"""
        authorize(identity, "analytics", "read")
        with self.store.guard("project_comparison"):
            rows = (
                self.db.query(Deal.project, func.sum(Deal.amount), func.count(Deal.id))
                .filter(Deal.status == COMPLETED)
                .group_by(Deal.project)
                .all()
            )

        totals = {project: (quantize_money(amount), count) for project, amount, count in rows}
        grand_total = sum((amount for amount, _ in totals.values()), Decimal("0"))

        items = []
        for project in Project:
            amount, count = totals.get(project.value, (quantize_money(0), 0))
            items.append(ProjectComparisonItem(
                project=project,
                total_amount=amount,
                percentage=percent(amount, grand_total),
                count=count,
            ))
        return items

    def _manager_rows(self, sum_column, project: Optional[str] = None):
        """Активные менеджеры с агрегатами по их сделкам (left join: менеджеры без сделок тоже попадают)"""
        total = func.coalesce(func.sum(sum_column), 0)
        query = (
            self.db.query(
                User.id,
                User.full_name,
                User.project,
                total.label("total"),
                func.count(Deal.id).label("deal_count"),
                func.coalesce(func.sum(case((Deal.status == COMPLETED, 1), else_=0)), 0).label("completed"),
            )
            .outerjoin(Deal, Deal.manager_id == User.id)
            .filter(User.role == UserRole.MANAGER.value, User.is_active.is_(True))
        )
        if project:
            query = query.filter(User.project == getattr(project, "value", project))
        return (
            query.group_by(User.id, User.full_name, User.project)
            .order_by(total.desc(), User.full_name.asc())
        )

    def top_managers(self, identity: Identity, filters: TopManagersFilter) -> List[TopManager]:
        authorize(identity, "analytics", "read")
        with self.store.guard("top_managers"):
            rows = self._manager_rows(Deal.paid_amount).limit(filters.limit).all()

        result = []
        for row in rows:
            total_sales = quantize_money(row.total)
            result.append(TopManager(
                id=row.id,
                full_name=row.full_name,
                project=row.project,
                total_sales=total_sales,
                deal_count=row.deal_count,
                completed_deals=int(row.completed),
                avg_deal_size=quantize_money(total_sales / row.deal_count) if row.deal_count else quantize_money(0),
                conversion_rate=percent(row.completed, row.deal_count),
                plan_completion=self._current_plan_completion(manager_id=row.id),
            ))
        return result

    def managers_performance(self, identity: Identity, filters: ProjectFilter) -> List[ManagerPerformance]:
        authorize(identity, "analytics", "read")
        with self.store.guard("managers_performance"):
            rows = self._manager_rows(Deal.amount, project=filters.project).all()

        return [
            ManagerPerformance(
                id=row.id,
                full_name=row.full_name,
                project=row.project,
                revenue=quantize_money(row.total),
                deals_count=row.deal_count,
                conversion_rate=percent(row.completed, row.deal_count),
                plan_completion=self._current_plan_completion(manager_id=row.id),
            )
            for row in rows
        ]

    def overview(self, identity: Identity, filters: OverviewFilters) -> AnalyticsOverview:
        """Сводка за период и рост валовой выручки относительно предыдущего периода той же длины"""
        authorize(identity, "analytics", "read")
        days = PERIOD_DAYS[filters.period]
        _, start, end = day_window(days)
        previous_start = start - timedelta(days=days)

        project_filter = []
        if filters.project:
            project_filter.append(Deal.project == filters.project.value)
        in_window = [Deal.created_at >= start, Deal.created_at < end, *project_filter]
        in_previous = [Deal.created_at >= previous_start, Deal.created_at < start, *project_filter]

        gross = self._sum(Deal.amount, Deal.status == COMPLETED, *in_window)
        previous_gross = self._sum(Deal.amount, Deal.status == COMPLETED, *in_previous)
        total_returns = self._completed_returns_sum(*in_window)

        total_deals = self._count(*in_window)
        completed_deals = self._count(Deal.status == COMPLETED, *in_window)
        active_deals = self._count(Deal.status.in_(ACTIVE_STATUSES), *in_window)

        growth = Decimal("0.0")
        if previous_gross > 0:
            growth = ((gross - previous_gross) / previous_gross * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

        return AnalyticsOverview(
            gross_revenue=gross,
            total_returns=total_returns,
            net_revenue=gross - total_returns,
            active_deals=active_deals,
            completed_deals=completed_deals,
            total_deals=total_deals,
            conversion_rate=percent(completed_deals, total_deals),
            plan_completion=self._current_plan_completion(project=filters.project),
            revenue_growth=growth,
        )

    def revenue_trend(self, identity: Identity, window: TrendWindow) -> List[RevenueTrendPoint]:
        """
        По дням окна: gross = sum(amount) завершенных сделок, созданных в этот день;
        returns = завершенные возвраты по сделкам, созданным в этот день.
        """
        authorize(identity, "analytics", "read")
        dates, start, end = day_window(window.days)
        conditions = [Deal.created_at >= start, Deal.created_at < end]
        if window.project:
            conditions.append(Deal.project == window.project.value)

        with self.store.guard("revenue_trend"):
            deal_rows = (
                self.db.query(Deal.created_at, Deal.amount)
                .filter(Deal.status == COMPLETED, *conditions)
                .all()
            )
            return_rows = (
                self.db.query(Deal.created_at, DealReturn.return_amount)
                .join(Deal, DealReturn.deal_id == Deal.id)
                .filter(DealReturn.status == RETURN_COMPLETED, *conditions)
                .all()
            )

        gross: Dict[date, Decimal] = defaultdict(Decimal)
        returns: Dict[date, Decimal] = defaultdict(Decimal)
        for created_at, amount in deal_rows:
            gross[_day_of(created_at)] += amount
        for created_at, amount in return_rows:
            returns[_day_of(created_at)] += amount

        points = []
        for day in dates:
            day_gross = quantize_money(gross[day])
            day_returns = quantize_money(returns[day])
            points.append(RevenueTrendPoint(
                period=day,
                gross_revenue=day_gross,
                returns=day_returns,
                net_revenue=day_gross - day_returns,
            ))
        return points

    def conversion_funnel(self, identity: Identity, filters: ProjectFilter) -> ConversionFunnel:
        """Каждая стадия воронки включает все последующие"""
        scope = authorize(identity, "analytics", "read")
        conditions = deal_conditions(DealQuery(owner_id=owner_filter(identity, scope), project=filters.project))

        def stage(statuses):
            return func.coalesce(func.sum(case((Deal.status.in_(statuses), 1), else_=0)), 0)

        with self.store.guard("conversion_funnel"):
            leads, contacts, negotiations, completed = self.db.query(
                func.count(Deal.id),
                stage(CONTACT_STATUSES),
                stage(NEGOTIATION_STATUSES),
                stage((COMPLETED,)),
            ).filter(*conditions).one()

        return ConversionFunnel(
            leads=leads,
            contacts=int(contacts),
            negotiations=int(negotiations),
            completed=int(completed),
        )

    def returns_analysis(self, identity: Identity, window: TrendWindow) -> List[ReturnsAnalysisPoint]:
        """Возвраты любого статуса по дате возврата"""
        authorize(identity, "analytics", "read")
        dates, start, end = day_window(window.days)

        with self.store.guard("returns_analysis"):
            query = (
                self.db.query(DealReturn.return_date, DealReturn.return_amount)
                .join(Deal, DealReturn.deal_id == Deal.id)
                .filter(DealReturn.return_date >= start, DealReturn.return_date < end)
            )
            if window.project:
                query = query.filter(Deal.project == window.project.value)
            rows = query.all()

        amounts: Dict[date, Decimal] = defaultdict(Decimal)
        counts: Dict[date, int] = defaultdict(int)
        for return_date, amount in rows:
            day = _day_of(return_date)
            amounts[day] += amount
            counts[day] += 1

        return [
            ReturnsAnalysisPoint(period=day, amount=quantize_money(amounts[day]), count=counts[day])
            for day in dates
        ]

    def monthly_report(self, identity: Identity, filters: MonthlyReportFilters) -> MonthlyReport:
        """Отчет за месяц: завершенные сделки месяца, завершенные возвраты по ним и разбивка по менеджерам"""
        authorize(identity, "analytics", "read")
        start, end = month_bounds(filters.year, filters.month)
        conditions = [Deal.created_at >= start, Deal.created_at < end]
        if filters.project:
            conditions.append(Deal.project == filters.project.value)

        with self.store.guard("monthly_report"):
            sales = (
                self.db.query(Deal)
                .outerjoin(User, Deal.manager_id == User.id)
                .options(contains_eager(Deal.manager))
                .filter(Deal.status == COMPLETED, *conditions)
                .order_by(Deal.created_at.desc(), Deal.id.desc())
                .all()
            )
            returns = (
                self.db.query(DealReturn)
                .join(Deal, DealReturn.deal_id == Deal.id)
                .options(
                    contains_eager(DealReturn.deal).joinedload(Deal.manager),
                    joinedload(DealReturn.processor),
                )
                .filter(DealReturn.status == RETURN_COMPLETED, *conditions)
                .order_by(DealReturn.created_at.desc(), DealReturn.id.desc())
                .all()
            )

        stats: Dict[str, dict] = {}

        def manager_entry(deal: Deal) -> dict:
            if deal.manager_id not in stats:
                stats[deal.manager_id] = {
                    "manager_id": deal.manager_id,
                    "full_name": deal.manager.full_name if deal.manager else "",
                    "deal_count": 0,
                    "gross_revenue": Decimal("0"),
                    "returns": Decimal("0"),
                }
            return stats[deal.manager_id]

        for deal in sales:
            entry = manager_entry(deal)
            entry["deal_count"] += 1
            entry["gross_revenue"] += deal.amount
        for record in returns:
            manager_entry(record.deal)["returns"] += record.return_amount

        manager_stats = [
            ManagerMonthlyStats(
                manager_id=entry["manager_id"],
                full_name=entry["full_name"],
                deal_count=entry["deal_count"],
                gross_revenue=quantize_money(entry["gross_revenue"]),
                returns=quantize_money(entry["returns"]),
                net_revenue=quantize_money(entry["gross_revenue"] - entry["returns"]),
            )
            for entry in stats.values()
        ]
        manager_stats.sort(key=lambda item: (-item.gross_revenue, item.full_name))

        gross = quantize_money(sum((deal.amount for deal in sales), Decimal("0")))
        total_returns = quantize_money(sum((record.return_amount for record in returns), Decimal("0")))

        return MonthlyReport(
            year=filters.year,
            month=filters.month,
            project=filters.project,
            gross_revenue=gross,
            total_returns=total_returns,
            net_revenue=gross - total_returns,
            total_deals=len(sales),
            return_count=len(returns),
            sales=[DealResponse.model_validate(deal) for deal in sales],
            returns=[ReturnResponse.model_validate(record) for record in returns],
            manager_stats=manager_stats,
        )
