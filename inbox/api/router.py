from fastapi import APIRouter

from inbox.api.v1.routes import (
    conversations,
    distribution,
    health,
    messages,
    webhook,
    workspace,
)

api_router = APIRouter()
api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(conversations.router, prefix="/v1", tags=["conversations"])
api_router.include_router(messages.router, prefix="/v1", tags=["messages"])
api_router.include_router(distribution.router, prefix="/v1", tags=["distribution"])
api_router.include_router(webhook.router, prefix="/v1", tags=["webhooks"])
api_router.include_router(workspace.router, prefix="/v1/workspace", tags=["workspace"])
