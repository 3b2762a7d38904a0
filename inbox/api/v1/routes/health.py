import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.core.db import get_db_session
from inbox.infra.realtime.channels import CONVERSATIONS_CHANNEL

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    hub = getattr(request.app.state, "realtime_hub", None)
    return {
        "status": "ok",
        "realtime": hub is not None,
        "conversation_listeners": hub.subscriber_count(CONVERSATIONS_CHANNEL) if hub else 0,
        "channel_client": getattr(request.app.state, "channel_http", None) is not None,
    }


@router.get("/health/db")
async def db_health(session: AsyncSession = Depends(get_db_session)) -> dict[str, str]:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="database unavailable"
        ) from exc
    return {"db": "ok"}
