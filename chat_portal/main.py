"""
Chat Portal web app.
OIDC login against the IdP (authorization code + PKCE, optional private_key_jwt),
server-side session, embedded chat widget for logged-in users with inactivity auto-close.
GET /, /config, /start-login, /callback, /auth/status, /auth/logout, /logged-out.
"""
import html
import logging
from contextlib import asynccontextmanager
from urllib.parse import parse_qs

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from chat_portal.audit import router as audit_router
from chat_portal.auth import get_current_session
from chat_portal.chat_routes import router as chat_router
from chat_portal.config import (
    CHAT_DEPLOYMENT_NAME,
    CHAT_LANGUAGE,
    CHAT_ORG_ID,
    CHAT_SCRT2_URL,
    CHAT_SITE_URL,
    CLIENT_ID,
    DEFAULT_SCOPE,
    INACTIVITY_TIMEOUT_SECONDS,
    ISSUER,
    POST_LOGOUT_REDIRECT_URI,
    PORT,
    REDIRECT_URI,
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SECURE,
    SESSION_TTL_SECONDS,
    WARNING_WAIT_SECONDS,
)
from chat_portal.database import init_db
from chat_portal.flow_store import get_flow, store_flow
from chat_portal.oidc import OIDCError, exchange_code, fetch_userinfo
from chat_portal.pkce import build_authorize_url, build_logout_url, generate_nonce, generate_pkce, generate_state
from chat_portal.registry import MonitorRegistry, get_registry
from chat_portal.session_store import create_session, delete_session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create audit tables on startup."""
    init_db()
    yield


app = FastAPI(title="Chat Portal", version="0.5.0", lifespan=lifespan)
app.include_router(chat_router)
app.include_router(audit_router)


def _error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
  <p><a href="/">Home</a></p>
</body>
</html>""",
        status_code=status_code,
    )


# Relays widget SDK events to /chat/events; the server owns the inactivity timers.
_CHAT_BOOTSTRAP = """
<script>
async function relayChatEvent(type, chatSessionId) {
  try {
    await fetch('/chat/events', {
      method: 'POST',
      headers: {'Content-Type': 'application/json'},
      credentials: 'same-origin',
      body: JSON.stringify({type: type, chatSessionId: chatSessionId || null})
    });
  } catch (err) {
    console.error('Error relaying chat event:', err);
  }
}

async function initializeChat() {
  if (window.chatInitialized) { return; }
  try {
    const config = await (await fetch('/config')).json();
    embeddedservice_bootstrap.settings.language = config.language;
    embeddedservice_bootstrap.init(config.orgId, config.deploymentName, config.siteUrl, {scrt2URL: config.scrt2Url});
    embeddedservice_bootstrap.addEventListener('onChatEstablished', (data) => relayChatEvent('conversation_started', data.chatSessionId));
    embeddedservice_bootstrap.addEventListener('onChatUserInput', () => relayChatEvent('user_input'));
    embeddedservice_bootstrap.addEventListener('onAgentMessage', () => relayChatEvent('agent_message'));
    embeddedservice_bootstrap.addEventListener('onChatEndedByAgent', () => relayChatEvent('conversation_ended'));
    window.chatInitialized = true;
  } catch (err) {
    console.error('Error loading Embedded Messaging:', err);
  }
}
window.addEventListener('onEmbeddedMessagingReady', initializeChat);
</script>
"""


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "chat_portal"}


@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    """Home page: login link when anonymous; welcome, logout and chat widget when logged in."""
    session = get_current_session(request)
    if session is None:
        return HTMLResponse(
            """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Chat Portal</title></head>
<body>
  <h1>Chat Portal</h1>
  <p id="auth-status">Not authenticated</p>
  <p><a id="login-button" href="/start-login">Log in</a></p>
</body>
</html>"""
        )
    user = session.user
    name = html.escape(user.get("name") or "")
    email = html.escape(user.get("email") or "")
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Chat Portal</title></head>
<body>
  <h1>Chat Portal</h1>
  <p id="auth-status">Authenticated</p>
  <div id="user-info-display">
    <h2>Welcome, {name}!</h2>
    <p>Email: {email}</p>
  </div>
  <p><a id="logout-button" href="/auth/logout">Log out</a></p>
  {_CHAT_BOOTSTRAP}
</body>
</html>"""
    )


@app.get("/config")
def chat_config():
    """Widget bootstrap settings. Public identifiers only; never keys or secrets."""
    return {
        "orgId": CHAT_ORG_ID,
        "deploymentName": CHAT_DEPLOYMENT_NAME,
        "siteUrl": CHAT_SITE_URL,
        "scrt2Url": CHAT_SCRT2_URL,
        "language": CHAT_LANGUAGE,
        "inactivityTimeoutSeconds": INACTIVITY_TIMEOUT_SECONDS,
        "warningWaitSeconds": WARNING_WAIT_SECONDS,
    }


@app.get("/start-login")
def start_login():
    """
    Generate state, nonce, PKCE verifier + challenge; store for callback; redirect to IdP authorize.
    """
    state = generate_state()
    nonce = generate_nonce()
    code_verifier, code_challenge = generate_pkce()
    store_flow(state, nonce=nonce, code_verifier=code_verifier)

    url = build_authorize_url(
        issuer=ISSUER,
        client_id=CLIENT_ID,
        redirect_uri=REDIRECT_URI,
        scope=DEFAULT_SCOPE,
        state=state,
        code_challenge=code_challenge,
        nonce=nonce,
    )
    return RedirectResponse(url=url, status_code=302)


@app.get("/callback", response_class=HTMLResponse)
def callback(request: Request):
    """
    Handle redirect from the IdP: validate state, exchange code, fetch userinfo,
    start a server-side session and go home.
    """
    params = parse_qs(request.url.query, keep_blank_values=False) if request.url.query else {}
    code = params.get("code", [None])[0]
    state = params.get("state", [None])[0]
    error = params.get("error", [None])[0]
    error_description = params.get("error_description", [None])[0]

    if error:
        # Drop the pending flow so the state cannot be replayed
        if state:
            get_flow(state)
        return _error_page("Login error", error_description or error, 400)

    if not state:
        return _error_page("Error", "Missing state parameter.", 400)

    flow = get_flow(state)
    if not flow:
        return _error_page("Error", "Invalid or expired state. Please try logging in again.", 400)

    if not code:
        return _error_page("Error", "Missing code parameter.", 400)

    try:
        tokens = exchange_code(code, flow.code_verifier)
    except OIDCError as e:
        return _error_page("Token exchange failed", str(e), 502 if e.status_code is None else 400)

    access_token = tokens.get("access_token", "")
    if not access_token:
        return _error_page("Token exchange failed", "No access token in token response.", 400)

    try:
        user_info = fetch_userinfo(access_token)
    except OIDCError as e:
        return _error_page("Login error", f"Could not load user info: {e}", 502 if e.status_code is None else 400)

    session = create_session(
        access_token=access_token,
        user_info=user_info,
        id_token=tokens.get("id_token"),
    )
    logger.info("User %s logged in", user_info.get("sub", "unknown"))
    response = RedirectResponse(url="/", status_code=302)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session.session_id,
        max_age=SESSION_TTL_SECONDS,
        httponly=True,
        secure=SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return response


@app.get("/auth/status")
def auth_status(request: Request):
    """Whether the browser has a live session, and who it belongs to."""
    session = get_current_session(request)
    if session is None:
        return {"isAuthenticated": False, "user": None}
    return {"isAuthenticated": True, "user": session.user}


@app.get("/auth/logout")
async def logout(request: Request, registry: MonitorRegistry = Depends(get_registry)):
    """
    Stop chat monitoring, drop the server-side session and cookie, then hand off to the
    IdP logout when we hold an ID token.
    """
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    session = delete_session(session_id)
    if session_id:
        registry.discard(session_id)

    if session is not None and session.id_token:
        url = build_logout_url(
            issuer=ISSUER,
            id_token=session.id_token,
            post_logout_redirect_uri=POST_LOGOUT_REDIRECT_URI,
        )
    else:
        url = "/"
    response = RedirectResponse(url=url, status_code=302)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@app.get("/logged-out", response_class=HTMLResponse)
def logged_out():
    return HTMLResponse(
        """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Logged out</title></head>
<body>
  <h1>Logged out</h1>
  <p>You are logged out.</p>
  <p><a href="/">Home</a></p>
</body>
</html>"""
    )


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "chat_portal.main:app",
        host="127.0.0.1",
        port=PORT,
        reload=True,
    )
