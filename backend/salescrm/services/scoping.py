"""
Построение запросов с учетом роли.

Порядок всегда один: сначала ограничение владельца из политики доступа,
затем фильтры вызывающего. Фильтры вызывающего могут только сузить выборку,
но не заменить ограничение владельца.
"""
from salescrm.core.permissions import Identity, Scope, owner_filter
from salescrm.schemas.deal import DealFilters
from salescrm.schemas.deal_return import ReturnFilters
from salescrm.schemas.plan import PlanFilters
from salescrm.services.entity_store import DealQuery, PlanQuery, ReturnQuery


def build_deal_query(identity: Identity, scope: Scope, filters: DealFilters, paginate: bool = True) -> DealQuery:
    q = DealQuery(owner_id=owner_filter(identity, scope))
    q.manager_id = filters.manager_id
    q.project = filters.project
    q.status = filters.status
    q.date_from = filters.date_from
    q.date_to = filters.date_to
    if filters.search:
        q.search = filters.search
        q.search_by = filters.search_by
    if paginate:
        q.limit = filters.limit
        q.offset = filters.offset
    return q


def build_return_query(identity: Identity, scope: Scope, filters: ReturnFilters) -> ReturnQuery:
    q = ReturnQuery(owner_id=owner_filter(identity, scope))
    q.deal_id = filters.deal_id
    q.status = filters.status
    q.date_from = filters.date_from
    q.date_to = filters.date_to
    return q


def build_plan_query(identity: Identity, scope: Scope, filters: PlanFilters) -> PlanQuery:
    q = PlanQuery(owner_id=owner_filter(identity, scope))
    q.manager_id = filters.manager_id
    q.project = filters.project
    q.plan_type = filters.plan_type
    q.year = filters.year
    q.month = filters.month
    return q
