"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from carousel_studio.api.v1 import carousels

api_router = APIRouter()

api_router.include_router(carousels.router, prefix="/carousels", tags=["carousels"])
