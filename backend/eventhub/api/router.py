"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from eventhub.api.routes import auth, events, organisations, users, applications, notifications, ws

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(events.router)
api_router.include_router(organisations.router)
api_router.include_router(users.router)
api_router.include_router(applications.router)
api_router.include_router(notifications.router)
api_router.include_router(ws.router)
