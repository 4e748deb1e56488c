"""
Двухшаговый сброс пароля: запрос кода по email, затем код + новый пароль.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from medauth.api_client import AuthAPIClient
from medauth.constants import (
    MIN_PASSWORD_LENGTH,
    MSG_EMPTY_EMAIL,
    MSG_EMPTY_NEW_PASSWORD,
    MSG_INVALID_RESET_CODE,
    MSG_PASSWORD_TOO_SHORT,
    MSG_PASSWORDS_MISMATCH,
    MSG_RESET_COMPLETED,
    MSG_RESET_WRONG_STEP,
    RESET_CODE_LENGTH,
)
from medauth.core.error_handlers import result_boundary
from medauth.core.exceptions import AuthError, ValidationError
from medauth.core.locks import OperationLock
from medauth.schemas.results import OperationResult

logger = logging.getLogger(__name__)


class ResetStep(str, Enum):
    """Шаг сброса пароля"""

    AWAITING_EMAIL = "awaiting_email"
    AWAITING_CODE = "awaiting_code"
    COMPLETED = "completed"


class PasswordResetState(BaseModel):
    """
    Состояние сброса пароля.

    code и new_password имеют смысл только на шаге AWAITING_CODE.
    """

    step: ResetStep = ResetStep.AWAITING_EMAIL
    email: str = ""
    code: Optional[str] = None
    new_password: Optional[str] = None


class PasswordResetFlow:
    """
    Машина состояний сброса пароля.

    AWAITING_EMAIL --request_code--> AWAITING_CODE --confirm--> COMPLETED.
    Ошибка confirm оставляет AWAITING_CODE, чтобы повторить без ввода email.
    """

    def __init__(self, api: AuthAPIClient) -> None:
        self._api = api
        self._lock = OperationLock("password_reset")
        self.state = PasswordResetState()

    @property
    def step(self) -> ResetStep:
        return self.state.step

    @property
    def completed(self) -> bool:
        return self.state.step == ResetStep.COMPLETED

    @result_boundary("request_password_reset")
    async def request_code(self, email: str) -> OperationResult:
        """
        Запрашивает код сброса.

        Сервер всегда отвечает success, чтобы не раскрывать наличие аккаунта.
        Код, который сервер возвращает вне production, передается вызывающему
        только как информация.
        """
        if self.completed:
            raise ValidationError(MSG_RESET_COMPLETED)
        if not email or not email.strip():
            raise ValidationError(MSG_EMPTY_EMAIL)

        normalized = email.strip().lower()
        with self._lock.hold():
            logger.info(f"Requesting password reset code for: {normalized}")
            response = await asyncio.to_thread(self._api.request_password_reset, normalized)
            if not response.success:
                raise AuthError("Failed to send reset code. Please try again.")

            self.state = PasswordResetState(step=ResetStep.AWAITING_CODE, email=normalized)
            if response.reset_code:
                logger.info("Server echoed the reset code (non-production)")
            return OperationResult.ok(reset_code=response.reset_code)

    @result_boundary("confirm_password_reset")
    async def confirm(
        self,
        code: str,
        new_password: str,
        confirm_password: str,
    ) -> OperationResult:
        """
        Подтверждает сброс: локальные проверки, затем запрос на сервер.

        Args:
            code: Код из письма (ровно 6 символов)
            new_password: Новый пароль (минимум 8 символов)
            confirm_password: Повтор нового пароля
        """
        if self.completed:
            raise ValidationError(MSG_RESET_COMPLETED)
        if self.state.step != ResetStep.AWAITING_CODE:
            raise ValidationError(MSG_RESET_WRONG_STEP)

        code = (code or "").strip()
        if len(code) != RESET_CODE_LENGTH:
            raise ValidationError(MSG_INVALID_RESET_CODE)
        if not new_password or not new_password.strip():
            raise ValidationError(MSG_EMPTY_NEW_PASSWORD)
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(MSG_PASSWORD_TOO_SHORT, details={"min_length": MIN_PASSWORD_LENGTH})
        if new_password != confirm_password:
            raise ValidationError(MSG_PASSWORDS_MISMATCH)

        with self._lock.hold():
            self.state = self.state.model_copy(update={"code": code, "new_password": new_password})
            logger.info(f"Confirming password reset for: {self.state.email}")
            confirmed = await asyncio.to_thread(
                self._api.confirm_password_reset, self.state.email, code, new_password
            )
            if not confirmed:
                raise AuthError("Failed to reset password. Please try again.")

        self.state = PasswordResetState(step=ResetStep.COMPLETED, email=self.state.email)
        logger.info(f"Password reset completed for: {self.state.email}")
        return OperationResult.ok()

    def resend(self) -> None:
        """Возврат к шагу ввода email: код и новый пароль сбрасываются, email сохраняется."""
        if self.state.step != ResetStep.AWAITING_CODE:
            logger.debug(f"Resend ignored in step {self.state.step.value}")
            return
        self.state = PasswordResetState(step=ResetStep.AWAITING_EMAIL, email=self.state.email)
        logger.info("Password reset restarted: awaiting email")
