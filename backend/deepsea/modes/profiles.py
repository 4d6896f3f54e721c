from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from backend.deepsea.chat_contract import EFFECTIVE_MODES, Mode
from backend.deepsea.config.settings import Settings

from . import prompts


@dataclass(frozen=True)
class ModeProfile:
    """System prompt plus direct-call parameters.

    Hardcore answers come from the pipeline, whose calls use the per-step
    parameters in `pipeline.steps`; its profile carries only the system prompt.
    """

    system_template: str
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    timeout_ms: Optional[int] = None


@dataclass(frozen=True)
class ModeTable:
    """Per-mode prompt and call parameters plus the history policy, built once at startup."""

    profiles: Mapping[Mode, ModeProfile]
    system_message_policy: str = "replace"
    history_max_messages: int = 20
    history_max_chars: int = 4000
    allow_hardcore: bool = True

    def profile(self, mode: Mode) -> ModeProfile:
        if mode not in EFFECTIVE_MODES:
            raise ValueError("auto must be resolved before a profile is selected")
        return self.profiles[mode]


LITE_MAX_TOKENS = 400
STANDARD_MAX_TOKENS = 1500
DIRECT_TIMEOUT_MS = 30_000


def build_mode_table(settings: Settings) -> ModeTable:
    profiles = {
        Mode.LITE: ModeProfile(prompts.LITE_SYSTEM, LITE_MAX_TOKENS, 0.3, DIRECT_TIMEOUT_MS),
        Mode.STANDARD: ModeProfile(prompts.STANDARD_SYSTEM, STANDARD_MAX_TOKENS, 0.7, DIRECT_TIMEOUT_MS),
        Mode.HARDCORE: ModeProfile(prompts.HARDCORE_SYSTEM),
    }
    return ModeTable(
        profiles=MappingProxyType(profiles),
        system_message_policy=settings.system_message_policy,
        history_max_messages=settings.history_max_messages,
        history_max_chars=settings.history_max_chars,
        allow_hardcore=settings.auto_allow_hardcore,
    )


__all__ = ["ModeProfile", "ModeTable", "build_mode_table"]
