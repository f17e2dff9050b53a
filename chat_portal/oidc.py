"""
Calls to the OIDC provider made from the login callback: code exchange and userinfo.
Client authentication is chosen by configuration: private_key_jwt when a key is set,
else client_secret_post when a secret is set, else a public client (PKCE only).
"""
import logging

import httpx

from chat_portal.client_assertion import CLIENT_ASSERTION_TYPE, create_client_assertion, load_private_key
from chat_portal.config import (
    CLIENT_ID,
    CLIENT_SECRET,
    HTTP_TIMEOUT,
    ISSUER,
    PRIVATE_KEY,
    PRIVATE_KEY_ID,
    PRIVATE_KEY_PATH,
    REDIRECT_URI,
)
from chat_portal.pkce import token_endpoint, userinfo_endpoint

logger = logging.getLogger(__name__)


class OIDCError(Exception):
    """
    Token or userinfo call failed. status_code is None for transport errors
    (IdP unreachable), otherwise the HTTP status the IdP returned.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


_private_key = None


def _get_private_key():
    global _private_key
    if _private_key is None:
        _private_key = load_private_key(PRIVATE_KEY, PRIVATE_KEY_PATH)
    return _private_key


def client_auth_params() -> dict[str, str]:
    """Form fields that authenticate this client at the token endpoint."""
    key = _get_private_key()
    if key is not None:
        return {
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": create_client_assertion(CLIENT_ID, key, token_endpoint(ISSUER), kid=PRIVATE_KEY_ID),
        }
    if CLIENT_SECRET:
        return {"client_id": CLIENT_ID, "client_secret": CLIENT_SECRET}
    return {"client_id": CLIENT_ID}


def _error_description(r: httpx.Response, default: str) -> str:
    err = r.json() if r.headers.get("content-type", "").startswith("application/json") else {}
    return err.get("error_description", err.get("error", r.text)) or default


def exchange_code(code: str, code_verifier: str) -> dict:
    """Exchange an authorization code for tokens. Returns the token response dict."""
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": REDIRECT_URI,
        "code_verifier": code_verifier,
        **client_auth_params(),
    }
    try:
        r = httpx.post(
            token_endpoint(ISSUER),
            data=data,
            headers={"Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
    except Exception as e:
        logger.error("Token exchange request failed: %s", e)
        raise OIDCError(str(e)) from e
    if r.status_code != 200:
        desc = _error_description(r, "Token exchange failed")
        logger.warning("Token exchange rejected (%s): %s", r.status_code, desc)
        raise OIDCError(str(desc), status_code=r.status_code)
    tokens = r.json()
    if tokens.get("error"):
        raise OIDCError(tokens.get("error_description") or tokens["error"], status_code=r.status_code)
    logger.info("Received tokens from IdP")
    return tokens


def fetch_userinfo(access_token: str) -> dict:
    """GET userinfo with the access token. Returns the claims dict."""
    try:
        r = httpx.get(
            userinfo_endpoint(ISSUER),
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
    except Exception as e:
        logger.error("Userinfo request failed: %s", e)
        raise OIDCError(str(e)) from e
    if r.status_code != 200:
        raise OIDCError(str(_error_description(r, "Userinfo request failed")), status_code=r.status_code)
    return r.json()
