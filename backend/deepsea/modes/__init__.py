from .assembler import build_messages, compact_history, latest_user_text, render_template, task_hint
from .classifier import ModeDecision, classify_mode, resolve_mode
from .profiles import ModeProfile, ModeTable, build_mode_table

__all__ = [
    "ModeDecision",
    "ModeProfile",
    "ModeTable",
    "build_messages",
    "build_mode_table",
    "classify_mode",
    "compact_history",
    "latest_user_text",
    "render_template",
    "resolve_mode",
    "task_hint",
]
