"""
Возвраты по сделкам.

Возврат - отдельный реестр: завершение возврата не меняет оплату и статус сделки.
Сумма возврата не может превышать оплаченную по сделке сумму.
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from salescrm.core.exceptions import ValidationError
from salescrm.core.permissions import Identity, authorize, ensure_owner
from salescrm.models.deal_return import DealReturn, ReturnStatus, TERMINAL_RETURN_STATUSES
from salescrm.schemas.deal_return import ReturnCreate, ReturnFilters, ReturnUpdate
from salescrm.services.entity_store import EntityStore
from salescrm.services.scoping import build_return_query

logger = logging.getLogger(__name__)


class ReturnService:

    def __init__(self, db: Session):
        self.store = EntityStore(db)

    def list_returns(self, identity: Identity, filters: ReturnFilters) -> List[DealReturn]:
        scope = authorize(identity, "returns", "read")
        return self.store.list_returns(build_return_query(identity, scope, filters))

    def create_return(self, identity: Identity, data: ReturnCreate) -> DealReturn:
        scope = authorize(identity, "returns", "create")
        deal = self.store.get_deal(data.deal_id)
        ensure_owner(identity, scope, deal.manager_id)

        if data.return_amount > deal.paid_amount:
            raise ValidationError.for_field("return_amount", "Return amount exceeds paid amount of the deal")

        payload = data.model_dump()
        payload["status"] = ReturnStatus.REQUESTED.value
        return self.store.create_return(payload)

    def update_return(self, identity: Identity, return_id: str, data: ReturnUpdate) -> DealReturn:
        authorize(identity, "returns", "update")
        record = self.store.get_return(return_id)
        if record.status in TERMINAL_RETURN_STATUSES:
            raise ValidationError.for_field("status", f"Return is already {record.status}")

        partial = data.model_dump(exclude_unset=True)
        new_amount = partial.get("return_amount")
        if new_amount is not None and new_amount > record.deal.paid_amount:
            raise ValidationError.for_field("return_amount", "Return amount exceeds paid amount of the deal")

        new_status = partial.get("status")
        if new_status is not None and new_status.value in TERMINAL_RETURN_STATUSES and not partial.get("processed_by"):
            partial["processed_by"] = identity.user_id

        updated = self.store.update_return(return_id, partial)
        if new_status is not None:
            logger.info("Return %s moved %s -> %s by %s", return_id, record.status, updated.status, identity.user_id)
        return updated
