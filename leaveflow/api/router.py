from fastapi import APIRouter

from leaveflow.api.balances import adjustment_router, user_balance_router
from leaveflow.api.leave_types import router as leave_types_router
from leaveflow.api.policies import policies_router
from leaveflow.api.requests import requests_router
from leaveflow.api.tenants import tenant_router
from leaveflow.api.users import users_router

api_router = APIRouter()
api_router.include_router(tenant_router)
api_router.include_router(leave_types_router)
api_router.include_router(policies_router)
api_router.include_router(users_router)
api_router.include_router(user_balance_router)
api_router.include_router(adjustment_router)
api_router.include_router(requests_router)
