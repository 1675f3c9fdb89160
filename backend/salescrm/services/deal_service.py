"""
Сделки с учетом роли вызывающего.

Менеджер видит и меняет только свои сделки, создает сделки только на себя.
Администратор работает со всеми, финансист только читает.
"""
import logging
import math
from typing import List, Tuple

from sqlalchemy.orm import Session

from salescrm.core.exceptions import Forbidden, ValidationError
from salescrm.core.permissions import Identity, Scope, authorize, ensure_owner
from salescrm.models.deal import Deal
from salescrm.schemas.deal import DealCreate, DealFilters, DealUpdate, Pagination, PaymentCreate
from salescrm.services.entity_store import EntityStore
from salescrm.services.scoping import build_deal_query

logger = logging.getLogger(__name__)


class DealService:

    def __init__(self, db: Session):
        self.store = EntityStore(db)

    def list_deals(self, identity: Identity, filters: DealFilters) -> Tuple[List[Deal], Pagination]:
        scope = authorize(identity, "deals", "read")
        q = build_deal_query(identity, scope, filters)
        deals = self.store.list_deals(q)
        total = self.store.count_deals(q)
        pagination = Pagination(
            page=filters.page,
            limit=filters.limit,
            total=total,
            pages=math.ceil(total / filters.limit),
        )
        return deals, pagination

    def get_deal(self, identity: Identity, deal_id: str) -> Deal:
        """Нет сделки - 404, чужая сделка менеджера - 403"""
        scope = authorize(identity, "deals", "read")
        deal = self.store.get_deal(deal_id)
        ensure_owner(identity, scope, deal.manager_id)
        return deal

    def create_deal(self, identity: Identity, data: DealCreate) -> Deal:
        scope = authorize(identity, "deals", "create")
        payload = data.model_dump()
        if scope == Scope.OWN:
            # Менеджер создает сделки только на себя
            payload["manager_id"] = identity.user_id
        elif not payload.get("manager_id"):
            raise ValidationError.for_field("manager_id", "Field required")
        return self.store.create_deal(payload)

    def update_deal(self, identity: Identity, deal_id: str, data: DealUpdate) -> Deal:
        scope = authorize(identity, "deals", "update")
        deal = self.store.get_deal(deal_id)
        ensure_owner(identity, scope, deal.manager_id)

        partial = data.model_dump(exclude_unset=True)
        if scope == Scope.OWN and partial.get("manager_id", identity.user_id) != identity.user_id:
            logger.warning("Manager %s tried to reassign deal %s", identity.user_id, deal_id)
            raise Forbidden("Managers cannot reassign deals")
        return self.store.update_deal(deal_id, partial)

    def record_payment(self, identity: Identity, deal_id: str, data: PaymentCreate) -> Deal:
        scope = authorize(identity, "payments", "create")
        deal = self.store.get_deal(deal_id)
        ensure_owner(identity, scope, deal.manager_id)
        return self.store.record_payment(deal_id, data.amount)

    def delete_deal(self, identity: Identity, deal_id: str) -> None:
        authorize(identity, "deals", "delete")
        self.store.delete_deal(deal_id)
