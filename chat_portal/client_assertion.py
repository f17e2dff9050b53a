"""
private_key_jwt client authentication (RFC 7523) for the token endpoint.
The assertion is a short-lived RS256 JWT signed with the client's registered private key.
"""
import logging
import time
import uuid
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization

logger = logging.getLogger(__name__)

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

# Assertion lifetime (seconds)
ASSERTION_TTL = 300


def normalize_private_key(raw: str) -> str:
    """
    Env-supplied PEM often arrives with literal "\\n" sequences and surrounding quotes.
    Turn those back into a loadable PEM.
    """
    return raw.replace("\\n", "\n").replace('"', "").strip()


def load_private_key(pem_text: str | None = None, path: str | None = None):
    """
    Load an RSA private key from inline PEM text or a PEM file. Returns None if neither is set.
    Raises ValueError if the key material cannot be parsed.
    """
    if pem_text and pem_text.strip():
        pem = normalize_private_key(pem_text).encode("utf-8")
    elif path:
        pem = Path(path).read_bytes()
    else:
        return None
    try:
        return serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid client private key: {e}") from e


def create_client_assertion(client_id: str, private_key, audience: str, kid: str | None = None) -> str:
    """Signed JWT with iss=sub=client_id, aud=token endpoint, 5 minute lifetime and a unique jti."""
    now = int(time.time())
    payload = {
        "iss": client_id,
        "sub": client_id,
        "aud": audience,
        "iat": now,
        "exp": now + ASSERTION_TTL,
        "jti": str(uuid.uuid4()),
    }
    headers = {"kid": kid} if kid else None
    return jwt.encode(payload, private_key, algorithm="RS256", headers=headers)
