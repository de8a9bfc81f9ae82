"""
Version 1 router: plans, coupons, billing and admin.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import admin, billing, coupons, plans

api_router = APIRouter()


@api_router.get("/ping", tags=["Health"])
async def ping():
    return {"message": "pong", "api_version": "v1"}


api_router.include_router(plans.router, prefix="/plans", tags=["Plans"])
api_router.include_router(coupons.router, prefix="/coupons", tags=["Coupons"])
api_router.include_router(billing.router, prefix="/billing", tags=["Billing"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
