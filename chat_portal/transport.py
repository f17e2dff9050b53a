"""
Chat transport: the server-side side of the embedded chat widget.
Posts agent messages into a conversation and ends conversations via the messaging API.
"""
import logging
from typing import Protocol

import httpx

from chat_portal.config import CHAT_API_TOKEN, CHAT_API_URL, HTTP_TIMEOUT

logger = logging.getLogger(__name__)


class ChatTransportError(Exception):
    """Raised when the messaging API rejects or cannot be reached for a conversation call."""

    def __init__(self, message: str, session_id: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.session_id = session_id
        self.status_code = status_code


class ChatTransport(Protocol):
    async def send_message(self, session_id: str, text: str) -> None: ...

    async def end_conversation(self, session_id: str, reason: str) -> None: ...


class HttpChatTransport:
    """ChatTransport over the messaging REST API (httpx.AsyncClient)."""

    def __init__(
        self,
        base_url: str = CHAT_API_URL,
        token: str | None = CHAT_API_TOKEN,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._http_client = http_client
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _post(self, session_id: str, path: str, payload: dict) -> None:
        url = f"{self._base_url}/conversations/{session_id}/{path}"
        try:
            if self._http_client is not None:
                r = await self._http_client.post(url, json=payload, headers=self._headers(), timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    r = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise ChatTransportError(f"Messaging API unreachable: {e}", session_id=session_id) from e
        if r.status_code >= 400:
            raise ChatTransportError(
                f"Messaging API returned {r.status_code} for {path}",
                session_id=session_id,
                status_code=r.status_code,
            )

    async def send_message(self, session_id: str, text: str) -> None:
        await self._post(session_id, "messages", {"text": text})
        logger.debug("Agent message posted to conversation %s", session_id)

    async def end_conversation(self, session_id: str, reason: str) -> None:
        await self._post(session_id, "end", {"reason": reason})
        logger.info("Conversation %s ended (reason=%s)", session_id, reason)
