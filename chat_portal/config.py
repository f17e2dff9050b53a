"""
Chat Portal configuration. Values come from the environment; no secrets in this file.
"""
import os

# OIDC provider (Okta authorization server). Endpoints hang off {issuer}/v1/...
ISSUER = os.environ.get("OKTA_ISSUER_URL", "http://127.0.0.1:9000/oauth2/default").rstrip("/")

CLIENT_ID = os.environ.get("OKTA_CLIENT_ID", "chat-portal")

# Optional confidential-client secret; ignored when a private key is configured
CLIENT_SECRET = os.environ.get("OKTA_CLIENT_SECRET", "").strip() or None

# Private key for private_key_jwt client assertion: inline PEM (may contain literal \n) or a file path
PRIVATE_KEY = os.environ.get("OKTA_PRIVATE_KEY", "")
PRIVATE_KEY_PATH = os.environ.get("OKTA_PRIVATE_KEY_PATH", "").strip() or None
# Key id registered with the IdP for that key; sent as the assertion's JWT "kid" header
PRIVATE_KEY_ID = os.environ.get("OKTA_PRIVATE_KEY_ID", "").strip() or None

REDIRECT_URI = os.environ.get("OKTA_REDIRECT_URI", "http://127.0.0.1:3000/callback")

# Where the IdP sends the browser after logout; must be registered for the client
POST_LOGOUT_REDIRECT_URI = os.environ.get("OKTA_POST_LOGOUT_REDIRECT_URI", "http://127.0.0.1:3000/logged-out")

DEFAULT_SCOPE = os.environ.get("OKTA_SCOPE", "openid profile email")

# Embedded chat widget bootstrap settings (public identifiers, served by GET /config)
CHAT_ORG_ID = os.environ.get("CHAT_ORG_ID", "")
CHAT_DEPLOYMENT_NAME = os.environ.get("CHAT_DEPLOYMENT_NAME", "External_Site")
CHAT_SITE_URL = os.environ.get("CHAT_SITE_URL", "")
CHAT_SCRT2_URL = os.environ.get("CHAT_SCRT2_URL", "")
CHAT_LANGUAGE = os.environ.get("CHAT_LANGUAGE", "en_US")

# Server-side chat messaging API used to post the warning and end idle conversations
CHAT_API_URL = os.environ.get("CHAT_API_URL", "http://127.0.0.1:7100").rstrip("/")
CHAT_API_TOKEN = os.environ.get("CHAT_API_TOKEN", "").strip() or None

# Case system that records why a conversation was closed
CASE_API_URL = os.environ.get("CASE_API_URL", "http://127.0.0.1:7200").rstrip("/")

# Timeout for outbound chat/case/IdP calls (seconds)
HTTP_TIMEOUT = float(os.environ.get("CHAT_HTTP_TIMEOUT", "10"))

# Server-side session cookie
SESSION_COOKIE_NAME = os.environ.get("SESSION_COOKIE_NAME", "chat_portal_session")
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", "3600"))
SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# SQLite DB for the chat audit log
DATABASE_URL = os.environ.get("CHAT_DATABASE_URL", "sqlite:///./chat_portal.db")

PORT = int(os.environ.get("PORT", "3000"))

# Inactivity monitor. Fixed, not environment-tunable.
INACTIVITY_TIMEOUT_SECONDS = 20 * 60
WARNING_WAIT_SECONDS = 2 * 60
