"""Main API router aggregating all routes."""

from fastapi import APIRouter

from linksign.api.routes import agreements, health

# Create main router
api_router = APIRouter()

# Include route modules
api_router.include_router(health.router)
api_router.include_router(agreements.router)
