"""API v1 router composition."""

from fastapi import APIRouter

from payportal.api.v1.endpoints import auth, payments

api_router: APIRouter = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
