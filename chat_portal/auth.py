"""
Session-cookie dependencies for routes that need a logged-in user.
"""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from chat_portal.config import SESSION_COOKIE_NAME
from chat_portal.session_store import WebSession, get_session


def get_current_session(request: Request) -> WebSession | None:
    """Session for the request's cookie, or None if absent/expired."""
    return get_session(request.cookies.get(SESSION_COOKIE_NAME))


def require_session(
    session: Annotated[WebSession | None, Depends(get_current_session)],
) -> WebSession:
    """Dependency: raise 401 unless the request carries a live session cookie."""
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "not_authenticated", "error_description": "Log in first"},
        )
    return session


RequireSession = Depends(require_session)
