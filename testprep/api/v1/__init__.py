"""API v1 router."""
from fastapi import APIRouter

from testprep.api.v1 import attempts, payments, tests

api_router = APIRouter()

api_router.include_router(tests.router, prefix="/tests", tags=["Tests"])
api_router.include_router(attempts.router, prefix="/attempts", tags=["Attempts"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
