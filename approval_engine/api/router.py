from fastapi import APIRouter

from approval_engine.api.directory import directory_router
from approval_engine.api.profiles import profiles_router
from approval_engine.api.realtime import realtime_router
from approval_engine.api.requests import forget_scans_router, leave_requests_router, swap_days_router

api_router = APIRouter()
api_router.include_router(profiles_router)
api_router.include_router(leave_requests_router)
api_router.include_router(forget_scans_router)
api_router.include_router(swap_days_router)
api_router.include_router(directory_router)
api_router.include_router(realtime_router)
