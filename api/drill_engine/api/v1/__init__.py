"""
API v1 router aggregation.
"""
from fastapi import APIRouter
from drill_engine.api.v1.endpoints import drills, assignments, reviews, practice

api_router = APIRouter()

# Include all endpoint routers
# Note: Each router already defines its own prefix, so we don't add another one here
api_router.include_router(drills.router)
api_router.include_router(assignments.router)
api_router.include_router(reviews.router)
api_router.include_router(practice.router)
