from fastapi import APIRouter

from app.api.v1.routers import health, lenders, loans, prospects

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(prospects.router)
api_router.include_router(loans.router)
api_router.include_router(lenders.router)

__all__ = ["api_router"]
