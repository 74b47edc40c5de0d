from fastapi import APIRouter

from app.api.v1.routers import (
    approvals,
    health,
    loan_applications,
    notifications,
    roles,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(approvals.router)
api_router.include_router(loan_applications.router)
api_router.include_router(notifications.router)
api_router.include_router(roles.router)

__all__ = ["api_router"]
