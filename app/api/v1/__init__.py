"""
API v1 routes aggregation
"""
from fastapi import APIRouter
from app.api.v1 import subscriptions

api_router = APIRouter()

# Subscriptions
api_router.include_router(subscriptions.router, tags=["subscriptions"])
