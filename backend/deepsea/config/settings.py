from __future__ import annotations

import functools
import json
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SYSTEM_MESSAGE_POLICIES = ("replace", "preserve", "prepend")
PIPELINE_POLICIES = ("review_fallback", "rewrite")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # App / env
    app_env: str = Field("dev", alias="APP_ENV")
    debug_errors: int = Field(0, alias="DEBUG_ERRORS")
    debug_pipeline: bool = Field(False, alias="DEBUG_HARDCORE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: List[str] = Field(default_factory=list, alias="CORS_ORIGINS")

    # Session verification
    jwt_secret_key: str = Field("default-secret-key-change-me", alias="JWT_SECRET_KEY")
    session_cookie_name: str = Field("token", alias="SESSION_COOKIE_NAME")
    session_ttl_days: int = Field(30, alias="SESSION_TTL_DAYS")

    # Primary provider
    deepseek_api_key: Optional[str] = Field(None, alias="DEEPSEEK_API_KEY")
    deepseek_base_url: str = Field("https://api.deepseek.com/chat/completions", alias="DEEPSEEK_BASE_URL")
    deepseek_model: str = Field("deepseek-chat", alias="DEEPSEEK_MODEL")

    # Fallback provider
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: str = Field("https://api.openai.com/v1/chat/completions", alias="OPENAI_BASE_URL")
    openai_model: str = Field("gpt-4o", alias="OPENAI_MODEL")

    model_connect_timeout_seconds: int = Field(5, alias="MODEL_CONNECT_TIMEOUT_SECONDS")

    # Routing / prompt policy
    auto_allow_hardcore: bool = Field(True, alias="AUTO_ALLOW_HARDCORE")
    system_message_policy: str = Field("replace", alias="SYSTEM_MESSAGE_POLICY")
    pipeline_policy: str = Field("review_fallback", alias="PIPELINE_POLICY")

    # Budgets
    pipeline_deadline_ms: int = Field(8000, alias="PIPELINE_DEADLINE_MS")
    request_budget_ms: int = Field(9500, alias="REQUEST_BUDGET_MS")
    history_max_messages: int = Field(20, alias="HISTORY_MAX_MESSAGES")
    history_max_chars: int = Field(4000, alias="HISTORY_MAX_CHARS")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, list):
            return [str(item).strip() for item in v if str(item).strip()]
        if isinstance(v, str):
            text = v.strip()
            if not text:
                return []
            if text == "*":
                return ["*"]
            try:
                parsed = json.loads(text)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except ValueError:
                pass
            return [item.strip() for item in text.split(",") if item.strip()]
        return []

    @field_validator(
        "debug_errors",
        "session_ttl_days",
        "model_connect_timeout_seconds",
        "pipeline_deadline_ms",
        "request_budget_ms",
        "history_max_messages",
        "history_max_chars",
    )
    @classmethod
    def clamp_non_negative(cls, v: int) -> int:
        return max(0, v)

    @field_validator("app_env")
    @classmethod
    def normalize_env(cls, v: str) -> str:
        return (v or "dev").lower()

    @field_validator("system_message_policy")
    @classmethod
    def check_system_message_policy(cls, v: str) -> str:
        val = (v or "replace").strip().lower()
        if val not in SYSTEM_MESSAGE_POLICIES:
            raise ValueError(f"SYSTEM_MESSAGE_POLICY must be one of {', '.join(SYSTEM_MESSAGE_POLICIES)}")
        return val

    @field_validator("pipeline_policy")
    @classmethod
    def check_pipeline_policy(cls, v: str) -> str:
        val = (v or "review_fallback").strip().lower()
        if val not in PIPELINE_POLICIES:
            raise ValueError(f"PIPELINE_POLICY must be one of {', '.join(PIPELINE_POLICIES)}")
        return val

    def is_production(self) -> bool:
        return self.app_env in ("prod", "production")

    def required_env_vars(self) -> list[str]:
        required = ["DEEPSEEK_API_KEY", "JWT_SECRET_KEY"]
        if self.pipeline_policy == "review_fallback":
            required.append("OPENAI_API_KEY")
        return required


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def validate_for_env(settings: Settings) -> Dict[str, Any]:
    issues: list[str] = []
    if settings.is_production():
        if settings.debug_errors != 0:
            issues.append("DEBUG_ERRORS must be 0 in prod")
        if not settings.deepseek_api_key:
            issues.append("DEEPSEEK_API_KEY required in prod")
        if settings.pipeline_policy == "review_fallback" and not settings.openai_api_key:
            issues.append("OPENAI_API_KEY required in prod for the review_fallback pipeline")
        if settings.jwt_secret_key == "default-secret-key-change-me":
            issues.append("JWT_SECRET_KEY must be changed in prod")
    if settings.pipeline_deadline_ms > settings.request_budget_ms:
        issues.append("PIPELINE_DEADLINE_MS exceeds REQUEST_BUDGET_MS")
    summary = settings_public_summary(settings)
    summary["issues"] = issues
    return summary


def settings_public_summary(settings: Optional[Settings] = None) -> Dict[str, Any]:
    s = settings or get_settings()
    return {
        "env": s.app_env,
        "primary_model": s.deepseek_model,
        "fallback_model": s.openai_model,
        "primary_key_present": bool(s.deepseek_api_key),
        "fallback_key_present": bool(s.openai_api_key),
        "auto_allow_hardcore": s.auto_allow_hardcore,
        "system_message_policy": s.system_message_policy,
        "pipeline_policy": s.pipeline_policy,
        "pipeline_deadline_ms": s.pipeline_deadline_ms,
        "request_budget_ms": s.request_budget_ms,
    }


__all__ = ["Settings", "get_settings", "settings_public_summary", "validate_for_env"]
