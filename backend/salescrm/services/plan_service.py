from typing import List

from sqlalchemy.orm import Session

from salescrm.core.permissions import Identity, authorize, ensure_owner
from salescrm.models.plan import Plan
from salescrm.schemas.plan import PlanCreate, PlanFilters, PlanUpdate
from salescrm.services.entity_store import EntityStore
from salescrm.services.scoping import build_plan_query


class PlanService:
    """Планы продаж: создают и меняют только администраторы, менеджер видит свои"""

    def __init__(self, db: Session):
        self.store = EntityStore(db)

    def list_plans(self, identity: Identity, filters: PlanFilters) -> List[Plan]:
        scope = authorize(identity, "plans", "read")
        return self.store.list_plans(build_plan_query(identity, scope, filters))

    def get_plan(self, identity: Identity, plan_id: str) -> Plan:
        scope = authorize(identity, "plans", "read")
        plan = self.store.get_plan(plan_id)
        ensure_owner(identity, scope, plan.manager_id)
        return plan

    def create_plan(self, identity: Identity, data: PlanCreate) -> Plan:
        authorize(identity, "plans", "create")
        return self.store.create_plan(data.model_dump())

    def update_plan(self, identity: Identity, plan_id: str, data: PlanUpdate) -> Plan:
        authorize(identity, "plans", "update")
        return self.store.update_plan(plan_id, data.model_dump(exclude_unset=True))
