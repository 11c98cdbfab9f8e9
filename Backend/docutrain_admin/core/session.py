"""
Request-scoped auth context.

The caller's bearer token is resolved once per request and handed down
explicitly to every backend call, instead of being looked up from ambient
storage inside each API wrapper.
"""
import base64
import json
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from docutrain_admin.core.errors import AuthenticationRequiredError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    access_token: str
    user_id: Optional[str] = None

    @property
    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}


def user_id_from_token(token: str) -> Optional[str]:
    """
    Read the ``sub`` claim of a Supabase JWT without verifying it.
    The backend verifies every token; we only need the id to pick the realtime channel.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    except (ValueError, UnicodeDecodeError) as e:
        logger.debug(f"Could not decode token payload: {e}")
        return None
    sub = claims.get("sub") if isinstance(claims, dict) else None
    return sub if isinstance(sub, str) else None


def session_from_token(token: str) -> Session:
    return Session(access_token=token, user_id=user_id_from_token(token))


async def get_session(request: Request) -> Session:
    """FastAPI dependency: build a Session from the Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthenticationRequiredError()
    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        raise AuthenticationRequiredError()
    return session_from_token(token)
