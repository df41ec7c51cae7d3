"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from aidwatch.api.webhooks import router as webhooks_router
from aidwatch.api.jobs import router as jobs_router
from aidwatch.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(jobs_router)
api_router.include_router(health_router)
