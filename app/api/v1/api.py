from fastapi import APIRouter
from app.api.v1.endpoints import admin, invites, referrals, waitlist

api_router = APIRouter()

api_router.include_router(waitlist.router, tags=["waitlist"])
api_router.include_router(referrals.router)
api_router.include_router(invites.router)
api_router.include_router(admin.router)
