"""
Inactivity monitor for one chat conversation.

Idle for INACTIVITY_TIMEOUT_SECONDS -> post a warning into the conversation and start a
grace timer of WARNING_WAIT_SECONDS. Any activity in between restarts the cycle. If the
grace timer expires, the conversation is ended and its case is marked closed for
inactivity, after which the monitor is idle again and can watch the next conversation.

Timer callbacks carry the generation they were scheduled under; every reschedule or
cancel bumps the generation, so a callback that was already queued when its timer got
superseded sees a mismatch and does nothing.
"""
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from chat_portal.case_client import CASE_REASON_INACTIVE, CASE_STATUS_INACTIVE, CaseUpdater
from chat_portal.config import INACTIVITY_TIMEOUT_SECONDS, WARNING_WAIT_SECONDS
from chat_portal.scheduler import Scheduler, TimerHandle
from chat_portal.transport import ChatTransport

logger = logging.getLogger(__name__)

WARNING_MESSAGE = (
    "It looks like you have left the chat. "
    "I am going to go ahead and close the chat if you have no objections"
)
END_REASON_INACTIVE = "User Inactivity"

EVENT_CONVERSATION_STARTED = "conversation_started"
EVENT_WARNING_SENT = "warning_sent"
EVENT_CLOSED_INACTIVE = "conversation_closed_inactive"
EVENT_CASE_UPDATED = "case_updated"
EVENT_CONVERSATION_ENDED = "conversation_ended"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"

# (event_type, session_id, outcome) -> None
AuditRecorder = Callable[[str, str | None, str], None]


class MonitorState(str, enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    WARNED = "warned"
    CLOSING = "closing"


@dataclass
class InactivitySession:
    session_id: str | None = None
    last_activity_at: float | None = None
    warning_sent: bool = False
    inactivity_deadline: TimerHandle | None = None
    warning_deadline: TimerHandle | None = None


class InactivityMonitor:
    def __init__(
        self,
        scheduler: Scheduler,
        transport: ChatTransport,
        case_updater: CaseUpdater,
        *,
        inactivity_timeout: float = INACTIVITY_TIMEOUT_SECONDS,
        warning_wait: float = WARNING_WAIT_SECONDS,
        audit: AuditRecorder | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._scheduler = scheduler
        self._transport = transport
        self._case_updater = case_updater
        self._inactivity_timeout = inactivity_timeout
        self._warning_wait = warning_wait
        self._audit = audit
        self._clock = clock
        self._session = InactivitySession()
        self._state = MonitorState.IDLE
        self._generation = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def session(self) -> InactivitySession:
        return self._session

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> dict:
        """Plain-dict view of the monitor for JSON responses."""
        return {
            "state": self._state.value,
            "chatSessionId": self._session.session_id,
            "warningSent": self._session.warning_sent,
            "lastActivityAt": self._session.last_activity_at,
        }

    # --- inbound events ---

    def on_conversation_started(self, session_id: str) -> None:
        if not session_id:
            raise ValueError("session_id is required")
        if self._state is not MonitorState.IDLE:
            logger.info(
                "Conversation %s started while %s was still monitored; dropping its timers",
                session_id,
                self._session.session_id,
            )
        self._cancel_timers()
        self._session = InactivitySession(session_id=session_id)
        self._restart_inactivity_timer()
        self._record(EVENT_CONVERSATION_STARTED, session_id)
        logger.info("Started inactivity monitoring for chat session %s", session_id)

    def on_activity_observed(self) -> None:
        if self._state not in (MonitorState.ACTIVE, MonitorState.WARNED):
            return
        self._cancel_timers()
        self._restart_inactivity_timer()
        logger.debug("Inactivity timer reset for chat session %s", self._session.session_id)

    def on_conversation_ended(self) -> None:
        if self._state is MonitorState.IDLE:
            return
        session_id = self._session.session_id
        self._reset()
        self._record(EVENT_CONVERSATION_ENDED, session_id)
        logger.info("Chat timers and state cleaned up for chat session %s", session_id)

    # --- timer expiry ---

    async def on_inactivity_timeout(self, generation: int) -> None:
        if generation != self._generation or self._state is not MonitorState.ACTIVE:
            return
        if self._session.warning_sent:
            return
        session_id = self._session.session_id
        self._generation += 1
        self._session.inactivity_deadline = None
        self._session.warning_sent = True
        grace_generation = self._generation
        self._session.warning_deadline = self._scheduler.call_later(
            self._warning_wait, lambda: self.on_warning_timeout(grace_generation)
        )
        self._state = MonitorState.WARNED
        logger.info("Chat session %s idle; sending warning, grace timer started", session_id)
        try:
            await self._transport.send_message(session_id, WARNING_MESSAGE)
        except Exception as e:
            logger.error("Error sending inactivity warning to chat session %s: %s", session_id, e)
            self._record(EVENT_WARNING_SENT, session_id, OUTCOME_FAIL)
        else:
            self._record(EVENT_WARNING_SENT, session_id)

    async def on_warning_timeout(self, generation: int) -> None:
        if generation != self._generation or self._state is not MonitorState.WARNED:
            return
        session_id = self._session.session_id
        self._cancel_timers()
        self._state = MonitorState.CLOSING
        closing_generation = self._generation

        try:
            await self._transport.end_conversation(session_id, END_REASON_INACTIVE)
        except Exception as e:
            logger.error("Error ending inactive chat session %s: %s", session_id, e)
            self._record(EVENT_CLOSED_INACTIVE, session_id, OUTCOME_FAIL)
        else:
            self._record(EVENT_CLOSED_INACTIVE, session_id)

        try:
            await self._case_updater.update_case(session_id, CASE_STATUS_INACTIVE, CASE_REASON_INACTIVE)
        except Exception as e:
            logger.error("Error updating case for chat session %s: %s", session_id, e)
            self._record(EVENT_CASE_UPDATED, session_id, OUTCOME_FAIL)
        else:
            self._record(EVENT_CASE_UPDATED, session_id)

        # A conversation adopted while we were awaiting owns the monitor now
        if self._generation == closing_generation:
            self._reset()
        logger.info("Chat session %s closed due to inactivity", session_id)

    # --- internals ---

    def _restart_inactivity_timer(self) -> None:
        self._session.warning_sent = False
        self._session.last_activity_at = self._clock()
        generation = self._generation
        self._session.inactivity_deadline = self._scheduler.call_later(
            self._inactivity_timeout, lambda: self.on_inactivity_timeout(generation)
        )
        self._state = MonitorState.ACTIVE

    def _cancel_timers(self) -> None:
        if self._session.inactivity_deadline is not None:
            self._session.inactivity_deadline.cancel()
        if self._session.warning_deadline is not None:
            self._session.warning_deadline.cancel()
        self._session.inactivity_deadline = None
        self._session.warning_deadline = None
        self._session.warning_sent = False
        self._generation += 1

    def _reset(self) -> None:
        self._cancel_timers()
        self._session = InactivitySession()
        self._state = MonitorState.IDLE

    def _record(self, event_type: str, session_id: str | None, outcome: str = OUTCOME_SUCCESS) -> None:
        if self._audit is None:
            return
        try:
            self._audit(event_type, session_id, outcome)
        except Exception as e:
            logger.warning("Audit record %s failed for chat session %s: %s", event_type, session_id, e)
