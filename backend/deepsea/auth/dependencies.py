from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Request

from backend.deepsea.config.settings import Settings, get_settings
from backend.deepsea.errors import UnauthorizedError

from .tokens import verify_session_token


def _extract_token(request: Request, cookie_name: str) -> Optional[str]:
    token = request.cookies.get(cookie_name)
    if token:
        return token
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


async def require_session(request: Request, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    claims = verify_session_token(
        _extract_token(request, settings.session_cookie_name),
        settings.jwt_secret_key,
        max_age_days=settings.session_ttl_days,
    )
    if claims is None:
        raise UnauthorizedError()
    return claims


__all__ = ["require_session"]
