"""
API v1 router combining all v1 endpoints.
"""
from fastapi import APIRouter
from nclex_cat.api.v1 import candidates, health, exams

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(exams.router, prefix="/exams", tags=["exams"])
api_router.include_router(candidates.router, prefix="/candidates", tags=["candidates"])
