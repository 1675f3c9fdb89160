from salescrm.models.user import User, UserRole
from salescrm.models.deal import Deal, DealStatus, Project, Gender
from salescrm.models.deal_return import DealReturn, ReturnStatus
from salescrm.models.plan import Plan, PlanType

__all__ = [
    "User",
    "UserRole",
    "Deal",
    "DealStatus",
    "Project",
    "Gender",
    "DealReturn",
    "ReturnStatus",
    "Plan",
    "PlanType",
]
