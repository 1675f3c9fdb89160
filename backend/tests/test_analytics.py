"""
Analytics: dashboard, trends, leaderboards, funnel, monthly report, plan completion.
"""
from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest

from salescrm.core.exceptions import Forbidden
from salescrm.schemas.analytics import (
    DashboardFilters, MonthlyReportFilters, OverviewFilters, ProjectFilter, TopManagersFilter, TrendWindow
)
from salescrm.services.analytics_service import (
    AnalyticsService, day_window, half_month_bounds, today_utc
)
from conftest import identity_of

ZERO = Decimal("0.00")


def at_noon(day):
    return datetime.combine(day, time(12, 0))


@pytest.fixture
def analytics(db_session):
    return AnalyticsService(db_session)


@pytest.fixture
def plan_factory(store):
    def _make(manager, plan_type="first_half", year=2024, month=5, planned_amount="1000.00", **overrides):
        data = {
            "project": manager.project,
            "manager_id": manager.id,
            "plan_type": plan_type,
            "year": year,
            "month": month,
            "planned_amount": planned_amount,
            "planned_deals": 5,
        }
        data.update(overrides)
        return store.create_plan(data)
    return _make


class TestWindows:

    def test_day_window_is_inclusive_of_today(self):
        today = today_utc()
        dates, start, end = day_window(7)
        assert len(dates) == 7
        assert dates[-1] == today
        assert start == datetime.combine(today - timedelta(days=6), time.min)
        assert end == datetime.combine(today + timedelta(days=1), time.min)

    def test_half_month_bounds(self):
        assert half_month_bounds(2024, 2, "first_half") == (datetime(2024, 2, 1), datetime(2024, 2, 16))
        assert half_month_bounds(2024, 2, "second_half") == (datetime(2024, 2, 16), datetime(2024, 3, 1))
        assert half_month_bounds(2024, 12, "second_half") == (datetime(2024, 12, 16), datetime(2025, 1, 1))

    def test_trend_window_resolves_days(self):
        assert TrendWindow().days == 30
        assert TrendWindow(period="week").days == 7
        assert TrendWindow(period="quarter").days == 90
        assert TrendWindow(period="week", days=3).days == 3


class TestZeroState:

    def test_dashboard_on_empty_store(self, analytics, admin):
        metrics = analytics.dashboard_metrics(identity_of(admin), DashboardFilters())
        assert metrics.total_sales == ZERO
        assert metrics.total_deals == 0
        assert metrics.average_deal == ZERO
        assert metrics.total_returns == ZERO
        assert metrics.net_revenue == ZERO
        assert metrics.conversion_rate == 0
        assert metrics.plan_completion == 0

    def test_overview_on_empty_store(self, analytics, financist):
        overview = analytics.overview(identity_of(financist), OverviewFilters())
        assert overview.gross_revenue == ZERO
        assert overview.total_deals == 0
        assert overview.conversion_rate == 0
        assert overview.revenue_growth == Decimal("0")

    def test_lists_on_empty_store(self, analytics, admin):
        identity = identity_of(admin)
        assert analytics.top_managers(identity, TopManagersFilter()) == []
        trend = analytics.revenue_trend(identity, TrendWindow(days=3))
        assert [point.net_revenue for point in trend] == [ZERO, ZERO, ZERO]
        funnel = analytics.conversion_funnel(identity, ProjectFilter())
        assert (funnel.leads, funnel.contacts, funnel.negotiations, funnel.completed) == (0, 0, 0, 0)
        comparison = analytics.project_comparison(identity)
        assert all(item.percentage == 0 and item.total_amount == ZERO for item in comparison)

    def test_monthly_report_on_empty_month(self, analytics, admin):
        report = analytics.monthly_report(identity_of(admin), MonthlyReportFilters(year=2024, month=5))
        assert report.gross_revenue == ZERO
        assert report.net_revenue == ZERO
        assert report.sales == [] and report.returns == [] and report.manager_stats == []

    def test_manager_with_deals_but_no_plan(self, analytics, make_deal, manager):
        make_deal(manager, paid_amount="100.00")
        assert analytics.plan_completion(2024, 5, manager_id=manager.id) == 0


class TestDashboard:

    def test_metrics(self, analytics, make_deal, make_return, manager, admin):
        completed = make_deal(manager, amount="1000.00", paid_amount="600.00", status="completed")
        make_deal(manager, amount="500.00", paid_amount="200.00", status="in_progress")
        make_deal(manager, amount="300.00", paid_amount="0", status="new")
        make_return(completed, return_amount="100.00", status="completed")
        make_return(completed, return_amount="50.00", status="requested")

        metrics = analytics.dashboard_metrics(identity_of(admin), DashboardFilters())
        assert metrics.total_sales == Decimal("800.00")
        assert metrics.total_deals == 3
        assert metrics.average_deal == Decimal("266.67")
        assert metrics.completed_deals == 1
        assert metrics.total_returns == Decimal("100.00")
        assert metrics.returns_count == 1
        assert metrics.net_revenue == Decimal("700.00")
        assert metrics.conversion_rate == 33

    def test_manager_sees_only_own_metrics(self, analytics, make_deal, manager, other_manager):
        make_deal(manager, paid_amount="100.00")
        make_deal(other_manager, paid_amount="900.00")
        metrics = analytics.dashboard_metrics(identity_of(manager), DashboardFilters())
        assert metrics.total_deals == 1
        assert metrics.total_sales == Decimal("100.00")

    def test_project_and_date_filters(self, analytics, make_deal, manager, other_manager, admin):
        make_deal(manager, paid_amount="100.00", created_at=datetime(2024, 5, 10, 9, 0))
        make_deal(manager, paid_amount="200.00", created_at=datetime(2024, 6, 10, 9, 0))
        make_deal(other_manager, paid_amount="400.00", created_at=datetime(2024, 5, 10, 9, 0))

        filters = DashboardFilters(project="amazon", date_from="2024-05-01", date_to="2024-05-31")
        metrics = analytics.dashboard_metrics(identity_of(admin), filters)
        assert metrics.total_deals == 1
        assert metrics.total_sales == Decimal("100.00")

    def test_idempotent(self, analytics, make_deal, make_return, manager, admin):
        deal = make_deal(manager, paid_amount="500.00", status="completed")
        make_return(deal, status="completed")
        first = analytics.dashboard_metrics(identity_of(admin), DashboardFilters())
        second = analytics.dashboard_metrics(identity_of(admin), DashboardFilters())
        assert first == second

    def test_sales_chart(self, analytics, make_deal, manager, other_manager):
        today = today_utc()
        make_deal(manager, paid_amount="100.00", created_at=at_noon(today))
        make_deal(manager, paid_amount="50.00", created_at=at_noon(today))
        make_deal(manager, paid_amount="70.00", created_at=at_noon(today - timedelta(days=1)))
        make_deal(other_manager, paid_amount="999.00", created_at=at_noon(today))

        chart = analytics.sales_chart(identity_of(manager), TrendWindow(days=2))
        assert [point.date for point in chart] == [today - timedelta(days=1), today]
        assert (chart[1].revenue, chart[1].deals) == (Decimal("150.00"), 2)
        assert (chart[0].revenue, chart[0].deals) == (Decimal("70.00"), 1)


class TestRevenueTrend:

    def test_single_day_window(self, analytics, make_deal, make_return, manager, admin):
        today = today_utc()
        sold = make_deal(manager, amount="500.00", paid_amount="500.00", status="completed", created_at=at_noon(today))
        refunded = make_deal(manager, amount="80.00", paid_amount="80.00", status="cancelled", created_at=at_noon(today))
        make_return(refunded, return_amount="50.00", status="completed", return_date=at_noon(today))
        make_return(sold, return_amount="10.00", status="requested")

        trend = analytics.revenue_trend(identity_of(admin), TrendWindow(days=1))
        assert len(trend) == 1
        assert trend[0].period == today
        assert trend[0].gross_revenue == Decimal("500.00")
        assert trend[0].returns == Decimal("50.00")
        assert trend[0].net_revenue == Decimal("450.00")

    def test_returns_attributed_to_deal_creation_day(self, analytics, make_deal, make_return, manager, admin):
        today = today_utc()
        yesterday = today - timedelta(days=1)
        deal = make_deal(manager, amount="300.00", paid_amount="300.00", status="completed", created_at=at_noon(yesterday))
        make_return(deal, return_amount="30.00", status="completed", return_date=at_noon(today))

        trend = analytics.revenue_trend(identity_of(admin), TrendWindow(days=2))
        assert trend[0].period == yesterday
        assert trend[0].returns == Decimal("30.00")
        assert trend[0].net_revenue == Decimal("270.00")
        assert trend[1].returns == ZERO

    def test_oldest_first_with_period(self, analytics, admin):
        trend = analytics.revenue_trend(identity_of(admin), TrendWindow(period="week"))
        assert len(trend) == 7
        assert trend[0].period < trend[-1].period == today_utc()


class TestLeaderboards:

    def test_top_managers_limit(self, analytics, make_deal, manager, other_manager, financist):
        make_deal(manager, paid_amount="100.00", status="completed")
        make_deal(other_manager, paid_amount="200.00")

        top = analytics.top_managers(identity_of(financist), TopManagersFilter(limit=1))
        assert len(top) == 1
        assert top[0].id == other_manager.id
        assert top[0].total_sales == Decimal("200.00")

    def test_top_managers_figures(self, analytics, make_deal, manager, admin, store):
        make_deal(manager, paid_amount="100.00", status="completed")
        make_deal(manager, paid_amount="50.00", status="new")
        idle = store.create_user({
            "username": "idle", "hashed_password": "x", "full_name": "Idle Manager", "role": "manager",
        })
        store.create_user({
            "username": "gone", "hashed_password": "x", "full_name": "Gone Manager", "role": "manager",
            "is_active": False,
        })

        top = analytics.top_managers(identity_of(admin), TopManagersFilter(limit=5))
        assert [row.id for row in top] == [manager.id, idle.id]
        assert top[0].deal_count == 2
        assert top[0].completed_deals == 1
        assert top[0].avg_deal_size == Decimal("75.00")
        assert top[0].conversion_rate == 50
        assert top[1].total_sales == ZERO and top[1].conversion_rate == 0

    def test_managers_performance_uses_amount(self, analytics, make_deal, manager, other_manager, admin):
        make_deal(manager, amount="1000.00", paid_amount="10.00")
        make_deal(other_manager, amount="400.00", paid_amount="400.00", status="completed")

        rows = analytics.managers_performance(identity_of(admin), ProjectFilter())
        assert [(row.id, row.revenue) for row in rows] == [
            (manager.id, Decimal("1000.00")),
            (other_manager.id, Decimal("400.00")),
        ]
        assert rows[1].conversion_rate == 100

        shopify_only = analytics.managers_performance(identity_of(admin), ProjectFilter(project="shopify"))
        assert [row.id for row in shopify_only] == [other_manager.id]

    def test_project_comparison_single_project(self, analytics, make_deal, manager, admin):
        make_deal(manager, amount="700.00", status="completed")
        make_deal(manager, amount="300.00", status="completed")
        make_deal(manager, amount="5000.00", status="new")

        comparison = {item.project.value: item for item in analytics.project_comparison(identity_of(admin))}
        assert comparison["amazon"].percentage == 100
        assert comparison["amazon"].total_amount == Decimal("1000.00")
        assert comparison["amazon"].count == 2
        assert comparison["shopify"].total_amount == ZERO
        assert comparison["shopify"].percentage == 0

    def test_project_comparison_split(self, analytics, make_deal, manager, other_manager, admin):
        make_deal(manager, amount="750.00", status="completed")
        make_deal(other_manager, amount="250.00", status="completed", program="Shopify Basic")
        comparison = {item.project.value: item.percentage for item in analytics.project_comparison(identity_of(admin))}
        assert comparison == {"amazon": 75, "shopify": 25}


class TestFunnelAndReturns:

    def test_funnel_stages_are_cumulative(self, analytics, make_deal, manager, admin):
        for status in ("new", "in_progress", "prepayment", "partial", "completed", "completed", "cancelled", "frozen"):
            make_deal(manager, status=status)

        funnel = analytics.conversion_funnel(identity_of(admin), ProjectFilter())
        assert funnel.leads == 8
        assert funnel.contacts == 5
        assert funnel.negotiations == 4
        assert funnel.completed == 2

    def test_returns_analysis_by_return_date(self, analytics, make_deal, make_return, manager, admin):
        today = today_utc()
        old_deal = make_deal(manager, paid_amount="500.00", created_at=at_noon(today - timedelta(days=200)))
        make_return(old_deal, return_amount="40.00", status="requested", return_date=at_noon(today))
        make_return(old_deal, return_amount="60.00", status="rejected", return_date=at_noon(today))

        points = analytics.returns_analysis(identity_of(admin), TrendWindow(days=1))
        assert (points[0].amount, points[0].count) == (Decimal("100.00"), 2)


class TestOverview:

    def test_window_figures_and_growth(self, analytics, make_deal, make_return, manager, admin):
        today = today_utc()
        current = make_deal(manager, amount="150.00", paid_amount="150.00", status="completed",
                            created_at=at_noon(today - timedelta(days=2)))
        make_deal(manager, amount="100.00", status="completed", created_at=at_noon(today - timedelta(days=10)))
        make_deal(manager, amount="80.00", status="prepayment", created_at=at_noon(today - timedelta(days=1)))
        make_return(current, return_amount="15.00", status="completed", return_date=at_noon(today))

        overview = analytics.overview(identity_of(admin), OverviewFilters(period="week"))
        assert overview.gross_revenue == Decimal("150.00")
        assert overview.total_returns == Decimal("15.00")
        assert overview.net_revenue == Decimal("135.00")
        assert overview.total_deals == 2
        assert overview.completed_deals == 1
        assert overview.active_deals == 1
        assert overview.conversion_rate == 50
        assert overview.revenue_growth == Decimal("50.0")

    def test_manager_has_no_access(self, analytics, manager):
        with pytest.raises(Forbidden):
            analytics.overview(identity_of(manager), OverviewFilters())


class TestPlanCompletion:

    def test_counts_paid_within_half_month(self, analytics, make_deal, manager, plan_factory):
        plan_factory(manager, plan_type="first_half", planned_amount="1000.00")
        make_deal(manager, paid_amount="250.00", created_at=datetime(2024, 5, 5, 10, 0))
        make_deal(manager, paid_amount="300.00", created_at=datetime(2024, 5, 20, 10, 0))

        assert analytics.plan_completion(2024, 5, manager_id=manager.id) == 25

    def test_both_halves_and_inactive_plans(self, analytics, make_deal, manager, plan_factory):
        plan_factory(manager, plan_type="first_half", planned_amount="1000.00")
        plan_factory(manager, plan_type="second_half", planned_amount="1000.00")
        plan_factory(manager, plan_type="second_half", planned_amount="9000.00", is_active=False)
        make_deal(manager, paid_amount="500.00", created_at=datetime(2024, 5, 15, 23, 0))
        make_deal(manager, paid_amount="700.00", created_at=datetime(2024, 5, 31, 18, 0))

        assert analytics.plan_completion(2024, 5, manager_id=manager.id) == 60

    def test_only_plan_project_counts(self, analytics, make_deal, manager, plan_factory):
        plan_factory(manager, planned_amount="100.00")
        make_deal(manager, project="shopify", paid_amount="100.00", created_at=datetime(2024, 5, 3, 10, 0))
        assert analytics.plan_completion(2024, 5, manager_id=manager.id) == 0

    def test_dashboard_reports_current_month(self, analytics, make_deal, manager, plan_factory):
        today = today_utc()
        plan_type = "first_half" if today.day <= 15 else "second_half"
        plan_factory(manager, plan_type=plan_type, year=today.year, month=today.month, planned_amount="400.00")
        make_deal(manager, paid_amount="100.00", created_at=at_noon(today))

        metrics = analytics.dashboard_metrics(identity_of(manager), DashboardFilters())
        assert metrics.plan_completion == 25


class TestMonthlyReport:

    def test_report(self, analytics, make_deal, make_return, manager, other_manager, admin):
        may_a = make_deal(manager, amount="1000.00", paid_amount="1000.00", status="completed",
                          created_at=datetime(2024, 5, 3, 10, 0))
        make_deal(manager, amount="500.00", status="completed", created_at=datetime(2024, 5, 31, 23, 0))
        make_deal(other_manager, amount="2000.00", status="completed", created_at=datetime(2024, 5, 10, 10, 0))
        make_deal(manager, amount="700.00", status="in_progress", created_at=datetime(2024, 5, 11, 10, 0))
        make_deal(manager, amount="900.00", status="completed", created_at=datetime(2024, 6, 1, 0, 0))
        make_return(may_a, return_amount="200.00", status="completed", return_date=datetime(2024, 6, 5, 10, 0))
        make_return(may_a, return_amount="100.00", status="processing")

        report = analytics.monthly_report(identity_of(admin), MonthlyReportFilters(year=2024, month=5))
        assert report.gross_revenue == Decimal("3500.00")
        assert report.total_returns == Decimal("200.00")
        assert report.net_revenue == Decimal("3300.00")
        assert report.total_deals == 3
        assert report.return_count == 1
        assert [row.manager_id for row in report.manager_stats] == [other_manager.id, manager.id]

        mine = report.manager_stats[1]
        assert (mine.deal_count, mine.gross_revenue, mine.returns, mine.net_revenue) == (
            2, Decimal("1500.00"), Decimal("200.00"), Decimal("1300.00")
        )

    def test_project_filter(self, analytics, make_deal, manager, other_manager, admin):
        make_deal(manager, amount="100.00", status="completed", created_at=datetime(2024, 5, 3, 10, 0))
        make_deal(other_manager, amount="200.00", status="completed", created_at=datetime(2024, 5, 3, 10, 0))
        report = analytics.monthly_report(
            identity_of(admin), MonthlyReportFilters(year=2024, month=5, project="shopify")
        )
        assert report.gross_revenue == Decimal("200.00")
        assert [deal.manager_id for deal in report.sales] == [other_manager.id]
