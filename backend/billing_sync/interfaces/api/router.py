from fastapi import APIRouter

from billing_sync.interfaces.api.billing_webhooks import router as billing_webhooks_router
from billing_sync.interfaces.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(billing_webhooks_router)
