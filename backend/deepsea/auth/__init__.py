from .dependencies import require_session
from .tokens import issue_session_token, verify_session_token

__all__ = ["issue_session_token", "require_session", "verify_session_token"]
