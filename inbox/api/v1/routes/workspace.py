import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from inbox.core.config import get_settings
from inbox.core.db import get_session_factory
from inbox.services.conversation_service import ConversationService
from inbox.services.distribution_service import DistributionService
from inbox.workspace.store import InboxStore
from inbox.workspace.subscriptions import InboxSubscriptionManager

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def _parse_uuid(raw: Any) -> UUID | None:
    if not isinstance(raw, str):
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


def _event(event: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"event": event, "payload": payload, "sent_at": datetime.now(UTC).isoformat()}


def _messages_event(store: InboxStore, conversation_id: UUID) -> dict[str, Any]:
    window = store.session_window(conversation_id)
    return _event(
        "messages.snapshot",
        {
            "conversation_id": str(conversation_id),
            "items": [
                message.model_dump(mode="json", by_alias=False)
                for message in store.messages_for(conversation_id)
            ],
            "has_more_older": store.has_more_older(conversation_id),
            "session_window": {
                "status": window.status.value,
                "hours_remaining": round(window.hours_remaining, 2),
                "needs_template_first": window.needs_template_first,
                "can_send_freeform": window.can_send_freeform,
            },
        },
    )


@router.websocket("/ws")
async def workspace_ws(websocket: WebSocket) -> None:
    hub = getattr(websocket.app.state, "realtime_hub", None)
    feed = getattr(websocket.app.state, "inbox_feed", None)
    if hub is None or feed is None:
        await websocket.close(code=1011, reason="Realtime hub not initialized")
        return

    try:
        session_factory = get_session_factory()
    except RuntimeError:
        await websocket.close(code=1011, reason="Database session is not initialized")
        return

    async def mark_as_read(conversation_id: UUID) -> None:
        async with session_factory() as session:
            await ConversationService(session, realtime=hub).mark_as_read(conversation_id)

    async def assign_conversation(conversation_id: UUID, agent_id: str | None) -> None:
        async with session_factory() as session:
            await DistributionService(session, realtime=hub).assign(conversation_id, agent_id)

    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    store = InboxStore()

    def on_change(section: str, conversation_id: UUID | None) -> None:
        if section == "conversations":
            outbox.put_nowait(
                _event(
                    "conversations.snapshot",
                    {
                        "items": [
                            conversation.model_dump(mode="json")
                            for conversation in store.conversations
                        ]
                    },
                )
            )
        elif conversation_id is not None:
            outbox.put_nowait(_messages_event(store, conversation_id))

    store.on_change = on_change
    manager = InboxSubscriptionManager(
        store=store,
        feed=feed,
        mark_as_read=mark_as_read,
        assign_conversation=assign_conversation,
        conversation_limit=settings.inbox_conversation_limit,
        message_page_size=settings.inbox_message_page_size,
    )

    await websocket.accept()

    async def pump() -> None:
        while True:
            await websocket.send_json(await outbox.get())

    sender = asyncio.create_task(pump())
    try:
        await manager.init()
        while True:
            raw_message = await websocket.receive_text()
            if raw_message.strip().lower() == "ping":
                outbox.put_nowait(_event("system.pong", {}))
                continue

            try:
                message = json.loads(raw_message)
            except json.JSONDecodeError:
                outbox.put_nowait(_event("system.error", {"detail": "Expected JSON payload"}))
                continue
            if not isinstance(message, dict):
                outbox.put_nowait(_event("system.error", {"detail": "Expected JSON object"}))
                continue

            action = message.get("action")
            if action == "select":
                conversation_id = _parse_uuid(message.get("conversation_id"))
                if message.get("conversation_id") is not None and conversation_id is None:
                    outbox.put_nowait(
                        _event("system.error", {"detail": "Invalid conversation_id"})
                    )
                    continue
                await manager.select_conversation(conversation_id)
                continue

            if action == "visibility":
                await manager.set_visibility(bool(message.get("visible", True)))
                continue

            if action == "load_older":
                conversation_id = _parse_uuid(message.get("conversation_id"))
                older = await manager.load_older_messages(conversation_id)
                target_id = conversation_id or store.selected_conversation_id
                outbox.put_nowait(
                    _event(
                        "messages.older",
                        {
                            "conversation_id": str(target_id) if target_id else None,
                            "count": len(older),
                            "has_more_older": (
                                store.has_more_older(target_id) if target_id else False
                            ),
                        },
                    )
                )
                continue

            if action == "assign":
                conversation_id = _parse_uuid(message.get("conversation_id"))
                if conversation_id is None:
                    outbox.put_nowait(
                        _event("system.error", {"detail": "Invalid conversation_id"})
                    )
                    continue
                agent_id = message.get("agent_id")
                assigned = await manager.assign(
                    conversation_id, str(agent_id) if agent_id else None
                )
                outbox.put_nowait(
                    _event(
                        "conversation.assign_result",
                        {"conversation_id": str(conversation_id), "ok": assigned},
                    )
                )
                continue

            outbox.put_nowait(_event("system.error", {"detail": "Unsupported action"}))
    except WebSocketDisconnect:
        return
    finally:
        await manager.close()
        sender.cancel()
