"""
Pydantic схемы клиента
"""

from .auth import (
    AuthResponse,
    IdentityAssertion,
    OAuthExchangeRequest,
    OAuthProvider,
    PasswordResetRequested,
    ProfileUpdate,
    RegistrationForm,
    UserProfile,
)
from .results import OAuthOutcome, OAuthResult, OperationResult
from .session import Session, SessionStatus

__all__ = [
    "AuthResponse",
    "IdentityAssertion",
    "OAuthExchangeRequest",
    "OAuthOutcome",
    "OAuthProvider",
    "OAuthResult",
    "OperationResult",
    "PasswordResetRequested",
    "ProfileUpdate",
    "RegistrationForm",
    "Session",
    "SessionStatus",
    "UserProfile",
]
