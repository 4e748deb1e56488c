"""
Структурированные результаты операций
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from medauth.core.exceptions import AuthClientError, FailureKind
from medauth.schemas.auth import IdentityAssertion


class OperationResult(BaseModel):
    """
    Результат публичной операции.

    Все ожидаемые ошибки возвращаются этим объектом, а не исключением.

    Attributes:
        success: Успех операции
        kind: Классификация ошибки (только при success=False)
        error: Сообщение об ошибке
        requires_role: Серверу нужна роль для новой OAuth учетной записи
        requires_email: Apple не передал email, нужен повторный запрос с email
        no_changes: update_profile не нашел изменений, запрос не отправлялся
        reset_code: Код сброса, который сервер вернул вне production (только информация)
    """

    success: bool
    kind: Optional[FailureKind] = None
    error: Optional[str] = None
    requires_role: bool = False
    requires_email: bool = False
    no_changes: bool = False
    reset_code: Optional[str] = None

    @classmethod
    def ok(cls, **flags: Any) -> "OperationResult":
        return cls(success=True, **flags)

    @classmethod
    def failure(cls, exc: AuthClientError) -> "OperationResult":
        return cls(
            success=False,
            kind=exc.kind,
            error=exc.message,
            requires_role=exc.kind == FailureKind.ROLE_REQUIRED,
            requires_email=exc.kind == FailureKind.EMAIL_REQUIRED,
        )

    @classmethod
    def from_oauth(cls, result: "OAuthResult") -> "OperationResult":
        """Неуспешный OAuthResult (отмена или ошибка) в OperationResult"""
        return cls(success=False, kind=result.failure_kind, error=result.message)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_defaults=True, mode="json") | {"success": self.success}


class OAuthOutcome(str, Enum):
    """Варианты результата OAuth потока"""

    OK = "ok"
    CANCELLED = "cancelled"
    ERROR = "error"


class OAuthResult(BaseModel):
    """Результат интерактивного OAuth потока: Ok(assertion) | Cancelled | Error(kind)"""

    outcome: OAuthOutcome
    assertion: Optional[IdentityAssertion] = None
    failure_kind: Optional[FailureKind] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, assertion: IdentityAssertion) -> "OAuthResult":
        return cls(outcome=OAuthOutcome.OK, assertion=assertion)

    @classmethod
    def cancelled(cls, message: Optional[str] = None) -> "OAuthResult":
        return cls(outcome=OAuthOutcome.CANCELLED, failure_kind=FailureKind.CANCELLED, message=message)

    @classmethod
    def error(cls, kind: FailureKind, message: str) -> "OAuthResult":
        return cls(outcome=OAuthOutcome.ERROR, failure_kind=kind, message=message)

    @classmethod
    def from_exception(cls, exc: AuthClientError) -> "OAuthResult":
        if exc.kind == FailureKind.CANCELLED:
            return cls.cancelled(exc.message)
        return cls.error(exc.kind, exc.message)

    @property
    def is_ok(self) -> bool:
        return self.outcome == OAuthOutcome.OK
