"""
Модель состояния сессии клиента
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator

from medauth.schemas.auth import UserProfile


class SessionStatus(str, Enum):
    """Статус сессии"""
    UNINITIALIZED = "uninitialized"
    RESTORING = "restoring"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class Session(BaseModel):
    """
    Состояние аутентификации клиента.

    token и user заданы тогда и только тогда, когда status == AUTHENTICATED.
    """
    status: SessionStatus = SessionStatus.UNINITIALIZED
    user: Optional[UserProfile] = None
    token: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_invariant(self) -> "Session":
        authenticated = self.status == SessionStatus.AUTHENTICATED
        if authenticated != (self.user is not None) or authenticated != bool(self.token):
            raise ValueError(
                f"Session in status '{self.status.value}' must "
                f"{'have' if authenticated else 'not have'} user and token"
            )
        return self

    @classmethod
    def authenticated(cls, user: UserProfile, token: str) -> "Session":
        return cls(status=SessionStatus.AUTHENTICATED, user=user, token=token)

    @classmethod
    def unauthenticated(cls) -> "Session":
        return cls(status=SessionStatus.UNAUTHENTICATED)

    @classmethod
    def restoring(cls) -> "Session":
        return cls(status=SessionStatus.RESTORING)
