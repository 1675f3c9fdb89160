"""
Policy table, filter composition and role-scoped services.
"""
from decimal import Decimal

import pytest

from salescrm.core.exceptions import Forbidden, NotFound, Unauthorized, ValidationError
from salescrm.core.permissions import (
    POLICY, Identity, Scope, authorize, ensure_owner, has_permission, owner_filter
)
from salescrm.models.user import UserRole
from salescrm.schemas.deal import DealCreate, DealFilters, DealUpdate, PaymentCreate
from salescrm.schemas.deal_return import ReturnCreate, ReturnFilters, ReturnUpdate
from salescrm.schemas.plan import PlanCreate, PlanFilters
from salescrm.services.deal_service import DealService
from salescrm.services.plan_service import PlanService
from salescrm.services.return_service import ReturnService
from salescrm.services.scoping import build_deal_query
from conftest import identity_of

ADMIN = Identity(user_id="a-1", role=UserRole.ADMIN)
MANAGER = Identity(user_id="m-1", role=UserRole.MANAGER)
FINANCIST = Identity(user_id="f-1", role=UserRole.FINANCIST)


class TestPolicyTable:

    @pytest.mark.parametrize("identity,resource,action,expected", [
        (ADMIN, "deals", "read", Scope.ALL),
        (MANAGER, "deals", "read", Scope.OWN),
        (FINANCIST, "deals", "read", Scope.ALL),
        (MANAGER, "deals", "create", Scope.OWN),
        (MANAGER, "returns", "create", Scope.OWN),
        (MANAGER, "plans", "read", Scope.OWN),
        (MANAGER, "dashboard", "read", Scope.OWN),
        (FINANCIST, "analytics", "read", Scope.ALL),
    ])
    def test_allowed(self, identity, resource, action, expected):
        assert authorize(identity, resource, action) == expected

    @pytest.mark.parametrize("identity,resource,action", [
        (FINANCIST, "deals", "create"),
        (FINANCIST, "deals", "update"),
        (MANAGER, "deals", "delete"),
        (MANAGER, "returns", "read"),
        (MANAGER, "returns", "update"),
        (MANAGER, "plans", "create"),
        (MANAGER, "analytics", "read"),
        (FINANCIST, "users", "read"),
    ])
    def test_denied(self, identity, resource, action):
        with pytest.raises(Forbidden):
            authorize(identity, resource, action)

    def test_unknown_action_denied(self):
        with pytest.raises(Forbidden):
            authorize(ADMIN, "deals", "explode")

    def test_missing_identity_is_unauthorized(self):
        with pytest.raises(Unauthorized):
            authorize(None, "deals", "read")

    def test_only_admin_manages_users(self):
        for action in ("read", "create", "update", "deactivate"):
            assert set(POLICY[("users", action)]) == {UserRole.ADMIN}

    def test_has_permission(self):
        assert has_permission(UserRole.ADMIN, "deals", "delete")
        assert not has_permission(UserRole.FINANCIST, "payments", "create")

    def test_owner_helpers(self):
        assert owner_filter(MANAGER, Scope.OWN) == "m-1"
        assert owner_filter(ADMIN, Scope.ALL) is None
        ensure_owner(MANAGER, Scope.OWN, "m-1")
        ensure_owner(ADMIN, Scope.ALL, "someone-else")
        with pytest.raises(Forbidden):
            ensure_owner(MANAGER, Scope.OWN, "m-2")


class TestFilterComposition:

    def test_manager_owner_constraint_always_present(self):
        filters = DealFilters(project="amazon", status="completed", search="anna", search_by="client")
        q = build_deal_query(MANAGER, Scope.OWN, filters)
        assert q.owner_id == "m-1"
        assert q.project == filters.project
        assert q.search == "anna"

    def test_caller_manager_filter_cannot_replace_owner(self):
        q = build_deal_query(MANAGER, Scope.OWN, DealFilters(manager_id="m-2"))
        assert q.owner_id == "m-1"
        assert q.manager_id == "m-2"

    def test_admin_has_no_owner_constraint(self):
        q = build_deal_query(ADMIN, Scope.ALL, DealFilters(page=3, limit=20))
        assert q.owner_id is None
        assert (q.limit, q.offset) == (20, 40)

    def test_search_without_discriminator_is_ignored(self, store, make_deal, manager):
        make_deal(manager, client_name="Anna")
        make_deal(manager, client_name="Bob")
        q = build_deal_query(ADMIN, Scope.ALL, DealFilters(search="Anna"))
        assert store.count_deals(q) == 2


class TestDealService:

    def test_managers_see_only_their_deals(self, db_session, make_deal, manager, other_manager, admin, financist):
        make_deal(manager, client_name="Deal 1")
        make_deal(manager, client_name="Deal 2")
        service = DealService(db_session)

        deals, pagination = service.list_deals(identity_of(other_manager), DealFilters())
        assert deals == []
        assert pagination.total == 0

        for viewer in (admin, financist):
            deals, pagination = service.list_deals(identity_of(viewer), DealFilters())
            assert len(deals) == 2

        deals, _ = service.list_deals(identity_of(manager), DealFilters())
        assert {d.manager_id for d in deals} == {manager.id}

    def test_manager_filter_only_narrows(self, db_session, make_deal, manager, other_manager):
        make_deal(manager)
        make_deal(other_manager)
        deals, _ = DealService(db_session).list_deals(
            identity_of(manager), DealFilters(manager_id=other_manager.id)
        )
        assert deals == []

    def test_pagination_metadata(self, db_session, make_deal, manager, admin):
        for _ in range(5):
            make_deal(manager)
        deals, pagination = DealService(db_session).list_deals(identity_of(admin), DealFilters(page=2, limit=2))
        assert len(deals) == 2
        assert (pagination.total, pagination.pages, pagination.page) == (5, 3, 2)

    def test_foreign_deal_is_forbidden_absent_is_not_found(self, db_session, make_deal, manager, other_manager):
        deal = make_deal(manager)
        service = DealService(db_session)
        with pytest.raises(Forbidden):
            service.get_deal(identity_of(other_manager), deal.id)
        with pytest.raises(NotFound):
            service.get_deal(identity_of(other_manager), "missing")

    def test_manager_created_deal_is_forced_to_self(self, db_session, manager, other_manager):
        data = DealCreate(
            client_name="Anna", phone="+7900", project="amazon", program="Amazon PRO",
            manager_id=other_manager.id, amount="1000.00", paid_amount="300.00",
        )
        deal = DealService(db_session).create_deal(identity_of(manager), data)
        assert deal.manager_id == manager.id
        assert deal.remaining_amount == Decimal("700.00")

    def test_admin_must_name_manager(self, db_session, admin):
        data = DealCreate(client_name="Anna", phone="+7900", project="amazon", program="PRO", amount="10.00")
        with pytest.raises(ValidationError) as exc_info:
            DealService(db_session).create_deal(identity_of(admin), data)
        assert exc_info.value.fields[0]["field"] == "manager_id"

    def test_admin_cannot_give_deal_to_non_manager(self, db_session, admin, financist):
        data = DealCreate(
            client_name="Anna", phone="+7900", project="amazon", program="PRO",
            manager_id=financist.id, amount="10.00",
        )
        with pytest.raises(ValidationError) as exc_info:
            DealService(db_session).create_deal(identity_of(admin), data)
        assert exc_info.value.fields[0]["field"] == "manager_id"

    def test_financist_cannot_write(self, db_session, make_deal, manager, financist):
        deal = make_deal(manager)
        service = DealService(db_session)
        with pytest.raises(Forbidden):
            service.update_deal(identity_of(financist), deal.id, DealUpdate(status="completed"))
        with pytest.raises(Forbidden):
            service.record_payment(identity_of(financist), deal.id, PaymentCreate(amount="1.00"))

    def test_manager_cannot_reassign_or_delete(self, db_session, make_deal, manager, other_manager):
        deal = make_deal(manager)
        service = DealService(db_session)
        with pytest.raises(Forbidden):
            service.update_deal(identity_of(manager), deal.id, DealUpdate(manager_id=other_manager.id))
        with pytest.raises(Forbidden):
            service.delete_deal(identity_of(manager), deal.id)

    def test_manager_updates_and_pays_own_deal(self, db_session, make_deal, manager):
        deal = make_deal(manager, amount="1000.00")
        service = DealService(db_session)
        service.update_deal(identity_of(manager), deal.id, DealUpdate(status="partial"))
        updated = service.record_payment(identity_of(manager), deal.id, PaymentCreate(amount="400.00"))
        assert updated.status == "partial"
        assert updated.remaining_amount == Decimal("600.00")


class TestReturnService:

    def _request(self, deal, amount):
        return ReturnCreate(
            deal_id=deal.id, return_date="2024-05-20", return_amount=amount, return_reason="Не подошло",
        )

    def test_amount_bounded_by_paid(self, db_session, make_deal, manager, admin):
        deal = make_deal(manager, amount="1000.00", paid_amount="300.00")
        with pytest.raises(ValidationError) as exc_info:
            ReturnService(db_session).create_return(identity_of(admin), self._request(deal, "300.01"))
        assert exc_info.value.fields[0]["field"] == "return_amount"

    def test_created_as_requested(self, db_session, make_deal, manager):
        deal = make_deal(manager, paid_amount="300.00")
        record = ReturnService(db_session).create_return(identity_of(manager), self._request(deal, "300.00"))
        assert record.status == "requested"

    def test_manager_only_against_own_deal(self, db_session, make_deal, manager, other_manager):
        deal = make_deal(manager, paid_amount="300.00")
        with pytest.raises(Forbidden):
            ReturnService(db_session).create_return(identity_of(other_manager), self._request(deal, "10.00"))

    def test_manager_cannot_list_returns(self, db_session, manager):
        with pytest.raises(Forbidden):
            ReturnService(db_session).list_returns(identity_of(manager), ReturnFilters())

    def test_terminal_status_sets_processor_and_freezes(self, db_session, make_deal, manager, admin):
        deal = make_deal(manager, paid_amount="300.00")
        service = ReturnService(db_session)
        record = service.create_return(identity_of(manager), self._request(deal, "100.00"))

        completed = service.update_return(identity_of(admin), record.id, ReturnUpdate(status="completed"))
        assert completed.processed_by == admin.id

        with pytest.raises(ValidationError):
            service.update_return(identity_of(admin), record.id, ReturnUpdate(return_reason="правка"))

    def test_completed_return_leaves_deal_untouched(self, db_session, store, make_deal, manager, admin):
        # Возвраты - отдельный реестр: оплата и статус сделки не меняются
        deal = make_deal(manager, amount="1000.00", paid_amount="300.00", status="completed")
        service = ReturnService(db_session)
        record = service.create_return(identity_of(admin), self._request(deal, "300.00"))
        service.update_return(identity_of(admin), record.id, ReturnUpdate(status="completed"))

        reloaded = store.get_deal(deal.id)
        assert reloaded.paid_amount == Decimal("300.00")
        assert reloaded.remaining_amount == Decimal("700.00")
        assert reloaded.status == "completed"


class TestPlanService:

    def test_manager_sees_own_plans_only(self, db_session, manager, other_manager, admin):
        service = PlanService(db_session)
        for owner in (manager, other_manager):
            service.create_plan(identity_of(admin), PlanCreate(
                project=owner.project, manager_id=owner.id, plan_type="first_half",
                year=2024, month=5, planned_amount="5000.00", planned_deals=5,
            ))

        plans = service.list_plans(identity_of(manager), PlanFilters())
        assert [p.manager_id for p in plans] == [manager.id]
        assert len(service.list_plans(identity_of(admin), PlanFilters(year=2024, month=5))) == 2

    def test_plans_ordered_newest_first(self, db_session, manager, admin):
        service = PlanService(db_session)
        for year, month in ((2024, 3), (2025, 1), (2024, 11)):
            service.create_plan(identity_of(admin), PlanCreate(
                project="amazon", manager_id=manager.id, plan_type="second_half",
                year=year, month=month, planned_amount="1.00", planned_deals=1,
            ))
        plans = service.list_plans(identity_of(admin), PlanFilters())
        assert [(p.year, p.month) for p in plans] == [(2025, 1), (2024, 11), (2024, 3)]

    def test_plan_owner_must_be_manager(self, db_session, admin):
        with pytest.raises(ValidationError) as exc_info:
            PlanService(db_session).create_plan(identity_of(admin), PlanCreate(
                project="amazon", manager_id=admin.id, plan_type="first_half",
                year=2024, month=5, planned_amount="1.00", planned_deals=1,
            ))
        assert exc_info.value.fields[0] == {"field": "manager_id", "message": "User is not a manager"}

    def test_manager_cannot_create_plans(self, db_session, manager):
        with pytest.raises(Forbidden):
            PlanService(db_session).create_plan(identity_of(manager), PlanCreate(
                project="amazon", manager_id=manager.id, plan_type="first_half",
                year=2024, month=5, planned_amount="1.00", planned_deals=1,
            ))
