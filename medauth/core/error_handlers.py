"""
Централизованная обработка ошибок на границе публичных операций
"""

import functools
import logging
from typing import Awaitable, Callable, TypeVar

from medauth.constants import MSG_UNEXPECTED_ERROR
from medauth.core.exceptions import AuthClientError, FailureKind, NetworkError
from medauth.schemas.results import OperationResult

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[OperationResult]])

# Ожидаемые исходы, которые логируются как info
_EXPECTED_KINDS = {
    FailureKind.VALIDATION_ERROR,
    FailureKind.CANCELLED,
    FailureKind.BUSY,
    FailureKind.ROLE_REQUIRED,
    FailureKind.EMAIL_REQUIRED,
}


def to_failure(operation: str, exc: Exception) -> OperationResult:
    """
    Преобразует исключение в OperationResult.

    Args:
        operation: Имя операции для логов
        exc: Пойманное исключение

    Returns:
        Результат с success=False
    """
    if isinstance(exc, AuthClientError):
        if exc.kind in _EXPECTED_KINDS:
            logger.info(f"[{operation}] {exc.kind.value}: {exc.message}")
        else:
            logger.warning(f"[{operation}] {exc.kind.value}: {exc.message}", extra={"details": exc.details})
        return OperationResult.failure(exc)

    logger.error(f"[{operation}] Unexpected error: {exc}", exc_info=exc)
    return OperationResult.failure(NetworkError(str(exc) or MSG_UNEXPECTED_ERROR))


def result_boundary(operation: str) -> Callable[[F], F]:
    """
    Декоратор для async операций: любые исключения превращаются в OperationResult.

    Example:
        >>> @result_boundary("login")
        ... async def login(self, email, password) -> OperationResult: ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> OperationResult:
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                return to_failure(operation, exc)

        return wrapper  # type: ignore[return-value]

    return decorator
