from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from salescrm.core.database import get_db
from salescrm.core.dependencies import get_current_identity
from salescrm.core.permissions import Identity, require_permission
from salescrm.schemas.common import parse_model
from salescrm.schemas.deal import (
    DealCreate, DealFilters, DealListResponse, DealResponse, DealUpdate, PaymentCreate
)
from salescrm.services.deal_service import DealService

router = APIRouter(prefix="/deals", tags=["deals"])


@router.get("", response_model=DealListResponse)
def list_deals(
    project: str | None = Query(None, description="amazon | shopify"),
    status_filter: str | None = Query(None, alias="status", description="Filter by deal status"),
    manager_id: str | None = Query(None, alias="managerId"),
    date_from: str | None = Query(None, alias="dateFrom", description="YYYY-MM-DD"),
    date_to: str | None = Query(None, alias="dateTo", description="YYYY-MM-DD"),
    search: str | None = Query(None),
    search_by: str | None = Query(None, alias="searchBy", description="client | phone | manager"),
    page: int | None = Query(None),
    limit: int | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Список сделок с фильтрами и пагинацией.

    Менеджер всегда видит только свои сделки, фильтры лишь сужают выборку.
    """
    filters = parse_model(DealFilters, {
        "project": project,
        "status": status_filter,
        "manager_id": manager_id,
        "date_from": date_from,
        "date_to": date_to,
        "search": search,
        "search_by": search_by,
        "page": page,
        "limit": limit,
    })
    deals, pagination = DealService(db).list_deals(identity, filters)
    return DealListResponse(
        deals=[DealResponse.model_validate(deal) for deal in deals],
        pagination=pagination,
    )


@router.get("/{deal_id}", response_model=DealResponse)
def get_deal(
    deal_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return DealService(db).get_deal(identity, deal_id)


@router.post("", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
def create_deal(
    deal_data: DealCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Создание сделки. Сделка менеджера всегда закрепляется за ним самим"""
    return DealService(db).create_deal(identity, deal_data)


@router.put("/{deal_id}", response_model=DealResponse)
def update_deal(
    deal_id: str,
    deal_data: DealUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return DealService(db).update_deal(identity, deal_id, deal_data)


@router.post("/{deal_id}/payments", response_model=DealResponse)
def record_payment(
    deal_id: str,
    payment: PaymentCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """Внести оплату по сделке: paid_amount растет, remaining_amount уменьшается"""
    return DealService(db).record_payment(identity, deal_id, payment)


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deal(
    deal_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_permission("deals", "delete"))
):
    """Удаление сделки (Администратор)"""
    DealService(db).delete_deal(identity, deal_id)
