from fastapi import APIRouter
from vouchervault.api.v1.endpoints import auth, vouchers, families, invites, notifications

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(vouchers.router, prefix="/vouchers", tags=["vouchers"])
api_router.include_router(families.router, prefix="/families", tags=["families"])
api_router.include_router(invites.router, prefix="/invites", tags=["invites"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
