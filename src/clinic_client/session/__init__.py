"""Session subpackage: the token pair and its single owner."""
from __future__ import annotations

from clinic_client.session.manager import SessionManager, session_from_body
from clinic_client.session.state import Session, SessionStatus

__all__ = ["Session", "SessionManager", "SessionStatus", "session_from_body"]
