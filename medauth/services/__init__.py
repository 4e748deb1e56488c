"""
Сервисы аутентификации: сессия, учетные данные, OAuth, сброс пароля
"""

from .credentials import CredentialAuthenticator
from .oauth import (
    AppleAuthenticator,
    AppleCredential,
    AppleSignInError,
    ConsentPresenter,
    ConsentResult,
    LoopbackConsentPresenter,
    OAuthBroker,
)
from .password_reset import PasswordResetFlow, PasswordResetState, ResetStep
from .pkce import PKCEPair
from .session_manager import SessionManager, build_session_manager

__all__ = [
    "AppleAuthenticator",
    "AppleCredential",
    "AppleSignInError",
    "ConsentPresenter",
    "ConsentResult",
    "CredentialAuthenticator",
    "LoopbackConsentPresenter",
    "OAuthBroker",
    "PKCEPair",
    "PasswordResetFlow",
    "PasswordResetState",
    "ResetStep",
    "SessionManager",
    "build_session_manager",
]
