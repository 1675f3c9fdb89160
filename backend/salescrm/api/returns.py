from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from salescrm.core.database import get_db
from salescrm.core.dependencies import get_current_identity
from salescrm.core.permissions import Identity
from salescrm.schemas.common import parse_model
from salescrm.schemas.deal_return import ReturnCreate, ReturnFilters, ReturnResponse, ReturnUpdate
from salescrm.services.return_service import ReturnService

router = APIRouter(prefix="/returns", tags=["returns"])


@router.get("", response_model=List[ReturnResponse])
def list_returns(
    deal_id: str | None = Query(None, alias="dealId"),
    status_filter: str | None = Query(None, alias="status", description="requested | processing | completed | rejected"),
    date_from: str | None = Query(None, alias="dateFrom", description="YYYY-MM-DD"),
    date_to: str | None = Query(None, alias="dateTo", description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Реестр возвратов (Администратор, Финансист)"""
    filters = parse_model(ReturnFilters, {
        "deal_id": deal_id,
        "status": status_filter,
        "date_from": date_from,
        "date_to": date_to,
    })
    return ReturnService(db).list_returns(identity, filters)


@router.post("", response_model=ReturnResponse, status_code=status.HTTP_201_CREATED)
def create_return(
    return_data: ReturnCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Оформить возврат. Сумма не больше оплаченной по сделке, статус всегда requested"""
    return ReturnService(db).create_return(identity, return_data)


@router.put("/{return_id}", response_model=ReturnResponse)
def update_return(
    return_id: str,
    return_data: ReturnUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Смена статуса и данных возврата (Администратор). Завершенные и отклоненные не меняются"""
    return ReturnService(db).update_return(identity, return_id, return_data)
