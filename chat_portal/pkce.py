"""
PKCE (RFC 7636) and authorization request helpers for starting a login at the IdP.
S256 only; state and nonce generation.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in callback."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value binding the ID token to this login."""
    return secrets.token_urlsafe(32)


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge).
    """
    # 32 bytes -> 43 chars base64url
    code_verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def authorize_endpoint(issuer: str) -> str:
    return f"{issuer}/v1/authorize"


def token_endpoint(issuer: str) -> str:
    return f"{issuer}/v1/token"


def userinfo_endpoint(issuer: str) -> str:
    return f"{issuer}/v1/userinfo"


def logout_endpoint(issuer: str) -> str:
    return f"{issuer}/v1/logout"


def build_authorize_url(
    *,
    issuer: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str,
    nonce: str | None = None,
) -> str:
    """Build the IdP authorize URL with required and optional params."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if nonce:
        params["nonce"] = nonce
    return f"{authorize_endpoint(issuer)}?{urlencode(params)}"


def build_logout_url(*, issuer: str, id_token: str, post_logout_redirect_uri: str) -> str:
    """RP-initiated logout URL at the IdP."""
    params = {"id_token_hint": id_token, "post_logout_redirect_uri": post_logout_redirect_uri}
    return f"{logout_endpoint(issuer)}?{urlencode(params)}"
