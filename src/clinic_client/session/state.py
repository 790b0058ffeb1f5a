"""Session domain models.

Classes
-------
- SessionStatus  — position in the Anonymous/Authenticated/Refreshing machine
- Session        — the current access/refresh token pair
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, field_validator


class SessionStatus(str, Enum):
    """Lifecycle states of the client-side session.

    ``REFRESHING`` only exists while a coalesced refresh call is in flight;
    it is never persisted.
    """

    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class Session(BaseModel):
    """An access/refresh token pair issued by the backend.

    Parameters
    ----------
    access_token:
        Short-lived bearer credential attached to authenticated requests.
    refresh_token:
        Longer-lived credential exchanged for a new pair.
    """

    access_token: str
    refresh_token: str

    model_config = {"frozen": True}

    @field_validator("access_token", "refresh_token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("token must not be blank")
        return value

    def __repr__(self) -> str:
        return "Session(access_token=***, refresh_token=***)"

    __str__ = __repr__
