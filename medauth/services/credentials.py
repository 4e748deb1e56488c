"""Валидация и отправка email/пароль входа и регистрации."""

import asyncio
import logging

from medauth.api_client import AuthAPIClient
from medauth.constants import (
    MIN_PASSWORD_LENGTH,
    MSG_EMPTY_LOGIN_FIELDS,
    MSG_EMPTY_REQUIRED_FIELDS,
    MSG_PASSWORD_TOO_SHORT,
    MSG_PASSWORDS_MISMATCH,
)
from medauth.core.exceptions import ValidationError
from medauth.schemas.auth import AuthResponse, RegistrationForm

logger = logging.getLogger(__name__)


def _blank(value: str) -> bool:
    return not value or not value.strip()


class CredentialAuthenticator:
    """Локальные проверки перед сетевым запросом и сам запрос"""

    def __init__(self, api: AuthAPIClient) -> None:
        self._api = api

    @staticmethod
    def validate_login(email: str, password: str) -> None:
        """
        Raises:
            ValidationError: Если email или пароль пустые
        """
        if _blank(email) or _blank(password):
            raise ValidationError(MSG_EMPTY_LOGIN_FIELDS)

    @staticmethod
    def validate_registration(form: RegistrationForm) -> None:
        """
        Проверки формы регистрации в порядке: обязательные поля,
        совпадение паролей, длина пароля.

        Raises:
            ValidationError: При первой найденной ошибке
        """
        required = (form.first_name, form.last_name, form.email, form.password)
        if any(_blank(value) for value in required):
            raise ValidationError(MSG_EMPTY_REQUIRED_FIELDS)

        if form.password != form.confirm_password:
            raise ValidationError(MSG_PASSWORDS_MISMATCH)

        if len(form.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                MSG_PASSWORD_TOO_SHORT, details={"min_length": MIN_PASSWORD_LENGTH}
            )

    async def login(self, email: str, password: str) -> AuthResponse:
        self.validate_login(email, password)
        normalized = email.strip()
        logger.info(f"Starting login for: {normalized}")
        return await asyncio.to_thread(self._api.login, normalized, password)

    async def register(self, form: RegistrationForm) -> AuthResponse:
        self.validate_registration(form)
        payload = form.to_payload()
        logger.info(f"Starting registration for: {payload['email']} (role={payload['role']})")
        return await asyncio.to_thread(self._api.register, payload)
