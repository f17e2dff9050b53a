"""
Case update client: records the closure of a chat conversation on its backend case.
"""
import logging
from typing import Protocol

import httpx

from chat_portal.config import CASE_API_URL, HTTP_TIMEOUT

logger = logging.getLogger(__name__)

CASE_STATUS_INACTIVE = "Closed - Customer Inactive"
CASE_REASON_INACTIVE = "User inactivity timeout"


class CaseUpdateError(Exception):
    """Raised when the case system cannot be reached or rejects the update."""

    def __init__(self, message: str, session_id: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.session_id = session_id
        self.status_code = status_code


class CaseUpdater(Protocol):
    async def update_case(self, session_id: str, status: str, reason: str) -> None: ...


class CaseUpdateClient:
    """POST {base_url}/case/update with the chat session id, new status and reason."""

    def __init__(
        self,
        base_url: str = CASE_API_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    async def update_case(self, session_id: str, status: str, reason: str) -> None:
        url = f"{self._base_url}/case/update"
        payload = {"chatSessionId": session_id, "status": status, "reason": reason}
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        try:
            if self._http_client is not None:
                r = await self._http_client.post(url, json=payload, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise CaseUpdateError(f"Case system unreachable: {e}", session_id=session_id) from e
        if not r.is_success:
            raise CaseUpdateError(
                f"Failed to update case (HTTP {r.status_code})",
                session_id=session_id,
                status_code=r.status_code,
            )
        logger.info("Case updated for chat session %s (status=%s)", session_id, status)
