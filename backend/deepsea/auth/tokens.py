from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt
from jose.exceptions import JWTError

ALGORITHM = "HS256"


def issue_session_token(
    payload: Dict[str, Any],
    secret: str,
    ttl_days: int = 30,
    now: Optional[datetime] = None,
) -> str:
    issued = now or datetime.now(timezone.utc)
    claims = dict(payload)
    claims["iat"] = int(issued.timestamp())
    claims["exp"] = int((issued + timedelta(days=ttl_days)).timestamp())
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_session_token(
    token: Optional[str],
    secret: str,
    max_age_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Return the token claims, or None when the token is absent, forged or expired.

    With `max_age_days`, a token issued longer ago than that is also rejected,
    whatever its own `exp` says.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if max_age_days:
        issued_at = claims.get("iat")
        current = (now or datetime.now(timezone.utc)).timestamp()
        if not isinstance(issued_at, (int, float)) or current - issued_at > max_age_days * 86400:
            return None
    return claims


__all__ = ["ALGORITHM", "issue_session_token", "verify_session_token"]
