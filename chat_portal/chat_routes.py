"""
Chat endpoints for the browser: relay widget events to the session's inactivity monitor,
read the monitor state, and forward case updates to the case system.
"""
import logging
from enum import Enum

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chat_portal.auth import RequireSession
from chat_portal.case_client import CaseUpdateError
from chat_portal.registry import MonitorRegistry, get_registry
from chat_portal.session_store import WebSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


class ChatEventType(str, Enum):
    CONVERSATION_STARTED = "conversation_started"
    USER_INPUT = "user_input"
    AGENT_MESSAGE = "agent_message"
    CONVERSATION_ENDED = "conversation_ended"


class ChatEvent(BaseModel):
    type: ChatEventType
    chat_session_id: str | None = Field(default=None, alias="chatSessionId")


class CaseUpdateRequest(BaseModel):
    chat_session_id: str = Field(alias="chatSessionId", min_length=1)
    status: str = Field(min_length=1)
    reason: str = Field(min_length=1)


@router.post("/chat/events")
async def chat_event(
    event: ChatEvent,
    session: WebSession = RequireSession,
    registry: MonitorRegistry = Depends(get_registry),
):
    """Relay one widget event (established, user input, agent message, ended)."""
    monitor = registry.get_or_create(session.session_id)
    if event.type is ChatEventType.CONVERSATION_STARTED:
        if not event.chat_session_id:
            raise HTTPException(
                status_code=422,
                detail={"error": "invalid_request", "error_description": "chatSessionId is required"},
            )
        monitor.on_conversation_started(event.chat_session_id)
    elif event.type is ChatEventType.CONVERSATION_ENDED:
        monitor.on_conversation_ended()
    else:
        monitor.on_activity_observed()
    return monitor.snapshot()


@router.get("/chat/state")
async def chat_state(
    session: WebSession = RequireSession,
    registry: MonitorRegistry = Depends(get_registry),
):
    """Current monitor state for this login (idle when no conversation was ever seen)."""
    monitor = registry.get(session.session_id)
    if monitor is None:
        return {"state": "idle", "chatSessionId": None, "warningSent": False, "lastActivityAt": None}
    return monitor.snapshot()


@router.post("/api/case/update")
async def case_update(
    body: CaseUpdateRequest,
    session: WebSession = RequireSession,
    registry: MonitorRegistry = Depends(get_registry),
):
    """Forward a case status update for a chat conversation."""
    try:
        await registry.case_updater.update_case(body.chat_session_id, body.status, body.reason)
    except CaseUpdateError as e:
        logger.error("Error updating case for chat session %s: %s", body.chat_session_id, e)
        return JSONResponse({"success": False, "error": str(e)}, status_code=502)
    return {"success": True}
