"""
One inactivity monitor per logged-in web session, sharing the scheduler, chat transport,
case client and audit hook.
"""
import logging
from collections.abc import Callable

from chat_portal.audit import record_chat_event
from chat_portal.case_client import CaseUpdateClient, CaseUpdater
from chat_portal.monitor import AuditRecorder, InactivityMonitor, MonitorState
from chat_portal.scheduler import LoopScheduler, Scheduler
from chat_portal.session_store import session_exists
from chat_portal.transport import ChatTransport, HttpChatTransport

logger = logging.getLogger(__name__)


class MonitorRegistry:
    def __init__(
        self,
        scheduler: Scheduler,
        transport: ChatTransport,
        case_updater: CaseUpdater,
        audit: AuditRecorder | None = None,
        session_alive: Callable[[str], bool] = session_exists,
    ):
        self.scheduler = scheduler
        self.transport = transport
        self.case_updater = case_updater
        self._audit = audit
        self._session_alive = session_alive
        self._monitors: dict[str, InactivityMonitor] = {}

    def get(self, web_session_id: str) -> InactivityMonitor | None:
        return self._monitors.get(web_session_id)

    def get_or_create(self, web_session_id: str) -> InactivityMonitor:
        self.prune()
        monitor = self._monitors.get(web_session_id)
        if monitor is None:
            monitor = InactivityMonitor(
                self.scheduler,
                self.transport,
                self.case_updater,
                audit=self._audit,
            )
            self._monitors[web_session_id] = monitor
        return monitor

    def discard(self, web_session_id: str) -> None:
        """Stop monitoring for a web session (logout). Cancels any pending timers."""
        monitor = self._monitors.pop(web_session_id, None)
        if monitor is not None:
            monitor.on_conversation_ended()
            logger.debug("Discarded inactivity monitor for web session")
        self.prune()

    def prune(self) -> int:
        """
        Drop idle monitors whose web session expired or was removed. A monitor still
        watching a conversation keeps its timers and is dropped on a later prune once idle.
        Returns the number of monitors dropped.
        """
        dead = [
            sid
            for sid, monitor in self._monitors.items()
            if monitor.state is MonitorState.IDLE and not self._session_alive(sid)
        ]
        for sid in dead:
            del self._monitors[sid]
        if dead:
            logger.debug("Pruned %d inactivity monitors for expired web sessions", len(dead))
        return len(dead)

    def __len__(self) -> int:
        return len(self._monitors)


_registry: MonitorRegistry | None = None


def get_registry() -> MonitorRegistry:
    """Dependency: process-wide registry wired to the real scheduler and HTTP clients."""
    global _registry
    if _registry is None:
        _registry = MonitorRegistry(
            LoopScheduler(),
            HttpChatTransport(),
            CaseUpdateClient(),
            audit=record_chat_event,
        )
    return _registry
