"""
Исключения клиента аутентификации
"""

from enum import Enum
from typing import Any, Dict, Optional

from medauth.constants import MSG_BUSY


class FailureKind(str, Enum):
    """Классификация ожидаемых ошибок"""

    VALIDATION_ERROR = "validation_error"
    NETWORK_ERROR = "network_error"
    AUTH_ERROR = "auth_error"
    PROVIDER_ERROR = "provider_error"
    CANCELLED = "cancelled"
    CONFIGURATION_ERROR = "configuration_error"
    UNAVAILABLE = "unavailable"
    NO_TOKEN_RETURNED = "no_token_returned"
    ROLE_REQUIRED = "role_required"
    EMAIL_REQUIRED = "email_required"
    BUSY = "busy"


class AuthClientError(Exception):
    """Базовое исключение клиента с классификацией ошибки"""

    kind: FailureKind = FailureKind.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация исключения в словарь"""
        return {
            "error": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AuthClientError):
    """Локальная ошибка валидации (до сетевого запроса)"""

    kind = FailureKind.VALIDATION_ERROR


class NetworkError(AuthClientError):
    """Ошибки транспорта, недоступность сервера, некорректный ответ"""

    kind = FailureKind.NETWORK_ERROR


class AuthError(AuthClientError):
    """Сервер отклонил учетные данные или токен"""

    kind = FailureKind.AUTH_ERROR


class RoleRequiredError(AuthError):
    """Новая OAuth учетная запись: серверу нужна роль"""

    kind = FailureKind.ROLE_REQUIRED


class EmailRequiredError(AuthError):
    """Apple не передал email при повторном входе"""

    kind = FailureKind.EMAIL_REQUIRED


class BusyError(AuthClientError):
    """Операция того же класса уже выполняется"""

    kind = FailureKind.BUSY

    def __init__(self, operation: str):
        super().__init__(
            message=MSG_BUSY.format(operation=operation),
            details={"operation": operation},
        )


# OAuth
class ProviderError(AuthClientError):
    """Ошибка на стороне OAuth провайдера"""

    kind = FailureKind.PROVIDER_ERROR

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message=message, details={"provider": provider} if provider else None)


class ConfigurationError(ProviderError):
    """Не настроен OAuth клиент"""

    kind = FailureKind.CONFIGURATION_ERROR


class ProviderUnavailableError(ProviderError):
    """Нативный вход недоступен на устройстве"""

    kind = FailureKind.UNAVAILABLE


class NoTokenReturnedError(ProviderError):
    """Провайдер завершил вход без identity token"""

    kind = FailureKind.NO_TOKEN_RETURNED


class FlowCancelledError(ProviderError):
    """Пользователь отменил интерактивный вход"""

    kind = FailureKind.CANCELLED
