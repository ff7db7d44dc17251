"""Connect-time token authentication."""

import hmac
from collections.abc import Mapping
from urllib.parse import parse_qs, urlsplit

from websockets.asyncio.server import ServerConnection

from roomcast.exceptions import AuthenticationError

# Application close code for a rejected token
AUTH_FAILED_CLOSE_CODE = 4001
AUTH_FAILED_REASON = "Authentication failed"


def extract_token(path: str | None, headers: Mapping[str, str] | None = None) -> str | None:
    """Pull a client token from ``?token=`` or an ``Authorization: Bearer`` header."""
    if path:
        values = parse_qs(urlsplit(path).query).get("token")
        if values and values[0]:
            return values[0]

    if headers:
        auth = headers.get("Authorization") or ""
        scheme, _, credentials = auth.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return None


def verify_token(expected: str | None, presented: str | None) -> bool:
    """Constant-time token comparison. No expected token means open access."""
    if not expected:
        return True
    if not presented:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))


def authenticate(websocket: ServerConnection, expected: str | None) -> None:
    """Check the handshake request of ``websocket`` against ``expected``.

    Raises:
        AuthenticationError: The token is missing or wrong
    """
    if not expected:
        return
    request = getattr(websocket, "request", None)
    path = getattr(request, "path", None)
    headers = getattr(request, "headers", None)
    if not verify_token(expected, extract_token(path, headers)):
        raise AuthenticationError(AUTH_FAILED_REASON)
