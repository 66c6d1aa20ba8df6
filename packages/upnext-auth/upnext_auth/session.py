import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

DEFAULT_COOKIE_NAME = "upnext_session"
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7  # 7 days


@dataclass(frozen=True)
class Identity:
    voter_id: str
    creator_id: Optional[str] = None

    def owns_room(self, room_id: str) -> bool:
        return self.creator_id is not None and self.creator_id == room_id


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _secret(secret: str | None) -> str:
    secret = secret or os.getenv("SESSION_JWT_SECRET", "")
    if not secret:
        raise ValueError("SESSION_JWT_SECRET is required")
    return secret


def issue_session_token(
    secret: str | None = None,
    ttl_seconds: int | None = None,
    creator_id: str | None = None,
) -> tuple[str, Dict[str, Any]]:
    secret = _secret(secret)
    ttl = ttl_seconds or int(os.getenv("SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS))
    session_id = str(uuid.uuid4())
    now = _utc_now()
    exp = now + timedelta(seconds=ttl)

    payload: Dict[str, Any] = {
        "sid": session_id,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if creator_id:
        payload["cid"] = creator_id
    token = jwt.encode(payload, secret, algorithm="HS256")
    return token, {"session_id": session_id, "creator_id": creator_id, "expires_at": exp}


def verify_session_token(token: str, secret: str | None = None) -> Dict[str, Any]:
    return jwt.decode(token, _secret(secret), algorithms=["HS256"])


def identity_from_token(token: str, secret: str | None = None) -> Identity:
    claims = verify_session_token(token, secret)
    session_id = claims.get("sid")
    if not session_id:
        raise ValueError("Session token missing sid claim")
    return Identity(voter_id=session_id, creator_id=claims.get("cid") or None)
