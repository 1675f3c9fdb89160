from fastapi import APIRouter
from salescrm.api import auth, users, deals, returns, plans, analytics

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/api")
api_router.include_router(users.router, prefix="/api")
api_router.include_router(deals.router, prefix="/api")
api_router.include_router(returns.router, prefix="/api")
api_router.include_router(plans.router, prefix="/api")
api_router.include_router(analytics.router, prefix="/api")
