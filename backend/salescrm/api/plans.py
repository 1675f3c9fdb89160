from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from salescrm.core.database import get_db
from salescrm.core.dependencies import get_current_identity
from salescrm.core.permissions import Identity
from salescrm.schemas.common import parse_model
from salescrm.schemas.plan import PlanCreate, PlanFilters, PlanResponse, PlanUpdate
from salescrm.services.plan_service import PlanService

router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("", response_model=List[PlanResponse])
def list_plans(
    manager_id: str | None = Query(None, alias="managerId"),
    project: str | None = Query(None),
    plan_type: str | None = Query(None, alias="planType", description="first_half | second_half"),
    year: str | None = Query(None),
    month: str | None = Query(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    filters = parse_model(PlanFilters, {
        "manager_id": manager_id,
        "project": project,
        "plan_type": plan_type,
        "year": year,
        "month": month,
    })
    return PlanService(db).list_plans(identity, filters)


@router.get("/{plan_id}", response_model=PlanResponse)
def get_plan(
    plan_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return PlanService(db).get_plan(identity, plan_id)


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    plan_data: PlanCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return PlanService(db).create_plan(identity, plan_data)


@router.put("/{plan_id}", response_model=PlanResponse)
def update_plan(
    plan_id: str,
    plan_data: PlanUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    return PlanService(db).update_plan(identity, plan_id, plan_data)
