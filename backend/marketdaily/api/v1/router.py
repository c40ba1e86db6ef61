from fastapi import APIRouter
from marketdaily.api.v1 import reports, subscriptions

api_router = APIRouter()

api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
