"""
Chat lifecycle audit log. Records what the inactivity monitor did to each conversation
(started, warned, closed, case updated, ended) so operators can trace forced closures.
No tokens, user details, or message text.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from chat_portal.database import SessionLocal, get_db
from chat_portal.models import ChatAuditLog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["audit"])


def log_chat_event(
    db: Session,
    event_type: str,
    *,
    chat_session_id: str | None = None,
    outcome: str = "success",
) -> None:
    """Append one audit record."""
    db.add(ChatAuditLog(event_type=event_type, chat_session_id=chat_session_id, outcome=outcome))
    db.commit()


def record_chat_event(event_type: str, chat_session_id: str | None, outcome: str) -> None:
    """Monitor hook: write one record in its own DB session. Failures are logged, not raised."""
    db = SessionLocal()
    try:
        log_chat_event(db, event_type, chat_session_id=chat_session_id, outcome=outcome)
    except Exception as e:
        db.rollback()
        logger.warning("Could not write chat audit event %s: %s", event_type, e)
    finally:
        db.close()


def _query_chat_events(
    db: Session,
    *,
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    chat_session_id: str | None = None,
):
    """Query audit events with optional filters. Most recent first."""
    q = db.query(ChatAuditLog).order_by(ChatAuditLog.created_at.desc(), ChatAuditLog.id.desc())
    if event_type:
        q = q.filter(ChatAuditLog.event_type == event_type)
    if outcome:
        q = q.filter(ChatAuditLog.outcome == outcome)
    if chat_session_id:
        q = q.filter(ChatAuditLog.chat_session_id == chat_session_id)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "chat_session_id": r.chat_session_id,
            "outcome": r.outcome,
        }
        for r in rows
    ]


@router.get("/audit")
def list_chat_events(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    chat_session_id: str | None = None,
    db: Session = Depends(get_db),
):
    """List recent chat lifecycle events. Most recent first."""
    return _query_chat_events(
        db, limit=limit, event_type=event_type, outcome=outcome, chat_session_id=chat_session_id
    )
