"""API v1 router that aggregates all endpoints."""

from fastapi import APIRouter

from model_discovery.api.v1.endpoints import health, models

router = APIRouter()

router.include_router(health.router)
router.include_router(models.router)
