"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from ticketgate.api.routes import tickets, admin

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(tickets.router)
api_router.include_router(admin.router)
