from __future__ import annotations

import functools
import logging
import time
from logging.config import dictConfig
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from backend.deepsea.auth.dependencies import require_session
from backend.deepsea.chat_contract import (
    ChatMessage,
    ChatRequest,
    ConversationExportRequest,
    ConversationImportRequest,
    ConversationImportResponse,
)
from backend.deepsea.config import get_settings, safe_error_detail, validate_for_env
from backend.deepsea.config.redaction import redact_secrets
from backend.deepsea.config.settings import Settings
from backend.deepsea.errors import GatewayError, user_message
from backend.deepsea.middleware.request_id import RequestIdMiddleware
from backend.deepsea.observability.request_id import get_request_id
from backend.deepsea.providers.errors import ProviderError, ProviderUpstreamError
from backend.deepsea.service import ChatGateway, get_gateway
from backend.deepsea.storage.conversation import deserialize_conversation, serialize_conversation
from backend.deepsea.providers.base import FALLBACK_PROVIDER, PRIMARY_PROVIDER
from backend.deepsea.providers.client import UpstreamClient
from backend.deepsea.streaming import event_stream_response, wait_for_disconnect


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        }
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"],
    },
}


dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

APP_VERSION = "0.3.0"
_start_time = time.monotonic()

_settings = get_settings()
logging.getLogger().setLevel(_settings.log_level.upper())
_settings_summary = validate_for_env(_settings)
logger.info(
    "[CFG] loaded",
    extra={
        "env": _settings_summary.get("env"),
        "primary_model": _settings_summary.get("primary_model"),
        "fallback_model": _settings_summary.get("fallback_model"),
        "pipeline_policy": _settings_summary.get("pipeline_policy"),
        "auto_allow_hardcore": _settings_summary.get("auto_allow_hardcore"),
        "budgets": {
            "deadline_ms": _settings_summary.get("pipeline_deadline_ms"),
            "request_ms": _settings_summary.get("request_budget_ms"),
        },
        "issues": _settings_summary.get("issues"),
    },
)

app = FastAPI(title="DeepSea Gateway", version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-DeepSea-Mode", "X-DeepSea-Error"],
)
app.add_middleware(RequestIdMiddleware)


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "version": APP_VERSION,
        "uptime_seconds": int(time.monotonic() - _start_time),
    }


@app.get("/ready")
async def ready(settings: Settings = Depends(get_settings)) -> JSONResponse:
    summary = validate_for_env(settings)
    client = UpstreamClient(settings)
    keys = {
        "primary": client.is_configured(PRIMARY_PROVIDER),
        "fallback": client.is_configured(FALLBACK_PROVIDER),
    }
    if settings.is_production():
        missing = [var for var in settings.required_env_vars() if not getattr(settings, var.lower(), None)]
        if missing or not keys["primary"]:
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "missing_env": missing, "provider_keys": keys},
            )
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "env": settings.app_env, "provider_keys": keys, "issues": summary["issues"]},
    )


@app.post("/api/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    _session: Dict[str, Any] = Depends(require_session),
    gateway: ChatGateway = Depends(get_gateway),
) -> Response:
    rid = get_request_id(request)
    logger.info(
        "[CHAT] request",
        extra={"request_id": rid, "requested_mode": body.mode.value, "message_count": len(body.messages)},
    )
    outcome = await gateway.handle(
        body,
        request_id=rid,
        disconnected=functools.partial(wait_for_disconnect, request.receive),
    )
    return event_stream_response(outcome.body, request_id=rid, headers=outcome.headers)


@app.post("/api/conversations/export")
async def export_conversation(
    body: ConversationExportRequest,
    _session: Dict[str, Any] = Depends(require_session),
) -> Response:
    text = serialize_conversation(body.messages, body.mode, body.date)
    return Response(
        content=text,
        media_type="text/markdown",
        headers={"Content-Disposition": 'attachment; filename="deepsea-conversation.md"'},
    )


@app.post("/api/conversations/import", response_model=ConversationImportResponse)
async def import_conversation(
    body: ConversationImportRequest,
    _session: Dict[str, Any] = Depends(require_session),
) -> ConversationImportResponse:
    data = deserialize_conversation(body.text)
    return ConversationImportResponse(
        messages=[ChatMessage(**m) for m in data.messages],
        mode=data.mode,
        date=data.date,
    )


_PROVIDER_ERROR_STATUS = {
    "configuration_error": 500,
    "upstream_timeout": 504,
    "upstream_error": 500,
}


@app.exception_handler(GatewayError)
async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid request")
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error_code": "invalid_request", "message": f"{location}: {message}" if location else message},
    )


@app.exception_handler(ProviderError)
async def handle_provider_error(request: Request, exc: ProviderError) -> JSONResponse:
    status = _PROVIDER_ERROR_STATUS.get(exc.kind, 500)
    logger.warning(
        "[CHAT] provider error",
        extra={"error_kind": exc.kind, "provider": exc.provider, "request_id": get_request_id(request)},
    )
    content: Dict[str, Any] = {"ok": False, "error_code": exc.kind, "message": user_message(exc.kind)}
    if exc.kind == "configuration_error":
        content["message"] = redact_secrets(str(exc))
    if isinstance(exc, ProviderUpstreamError) and exc.detail:
        content["detail"] = redact_secrets(exc.detail)[:500]
    return JSONResponse(status_code=status, content=content)


@app.exception_handler(Exception)
async def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:  # noqa: BLE001
    logger.exception("Unhandled error in request")
    content = {"ok": False, "error_code": "internal_error", "message": "Internal server error"}
    if str(_settings.debug_errors) == "1":
        content["detail"] = safe_error_detail(exc)
    return JSONResponse(status_code=500, content=content)
