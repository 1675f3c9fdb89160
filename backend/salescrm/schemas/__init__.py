from salescrm.schemas.user import UserCreate, UserUpdate, UserResponse, LoginRequest, Token
from salescrm.schemas.deal import (
    DealCreate, DealUpdate, DealResponse, DealFilters, DealListResponse, PaymentCreate, SearchBy
)
from salescrm.schemas.deal_return import ReturnCreate, ReturnUpdate, ReturnResponse, ReturnFilters
from salescrm.schemas.plan import PlanCreate, PlanUpdate, PlanResponse, PlanFilters

__all__ = [
    "UserCreate",
    "UserUpdate",
    "UserResponse",
    "LoginRequest",
    "Token",
    "DealCreate",
    "DealUpdate",
    "DealResponse",
    "DealFilters",
    "DealListResponse",
    "PaymentCreate",
    "SearchBy",
    "ReturnCreate",
    "ReturnUpdate",
    "ReturnResponse",
    "ReturnFilters",
    "PlanCreate",
    "PlanUpdate",
    "PlanResponse",
    "PlanFilters",
]
