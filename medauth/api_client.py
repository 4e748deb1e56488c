"""HTTP клиент для auth эндпоинтов backend."""

import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from medauth.config import get_settings
from medauth.constants import (
    ENDPOINT_AUTH_APPLE,
    ENDPOINT_AUTH_FORGOT_PASSWORD,
    ENDPOINT_AUTH_GOOGLE,
    ENDPOINT_AUTH_LOGIN,
    ENDPOINT_AUTH_REGISTER,
    ENDPOINT_AUTH_RESET_PASSWORD,
    ENDPOINT_USER_PROFILE,
    HTTP_INTERNAL_SERVER_ERROR,
    MSG_INVALID_RESPONSE,
    SERVER_EMAIL_REQUIRED_MARKER,
    SERVER_ROLE_REQUIRED_MARKER,
)
from medauth.core.exceptions import (
    AuthError,
    EmailRequiredError,
    NetworkError,
    RoleRequiredError,
)
from medauth.core.logging_config import mask_token
from medauth.schemas.auth import (
    AuthResponse,
    OAuthExchangeRequest,
    OAuthProvider,
    PasswordResetRequested,
    ProfileUpdate,
    UserProfile,
)

logger = logging.getLogger(__name__)

_EXCHANGE_ENDPOINTS = {
    OAuthProvider.GOOGLE: ENDPOINT_AUTH_GOOGLE,
    OAuthProvider.APPLE: ENDPOINT_AUTH_APPLE,
}


class AuthAPIClient:
    """
    Синхронный клиент auth API.

    Методы блокирующие (requests); из async кода вызываются через
    asyncio.to_thread. Ошибки не возвращаются как None, а классифицируются
    исключениями NetworkError / AuthError / RoleRequiredError / EmailRequiredError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        """
        Инициализация API клиента.

        Args:
            base_url: Базовый URL API (по умолчанию из конфигурации)
            timeout: Таймаут запросов в секундах
        """
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = timeout or settings.api_timeout

    def _get_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        """Получить заголовки для запроса"""
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _error_message(body: Dict[str, Any], response: requests.Response) -> str:
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        return f"HTTP {response.status_code}: {response.reason or 'request failed'}"

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        """
        Обработка ответа от сервера.

        Args:
            response: Ответ от сервера

        Returns:
            JSON тело успешного ответа

        Raises:
            NetworkError: 5xx или невалидный JSON
            RoleRequiredError: Серверу нужна роль для новой учетной записи
            EmailRequiredError: Серверу нужен email (Apple)
            AuthError: Прочие 4xx
        """
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.ok:
            if not isinstance(body, dict):
                logger.error(f"Failed to parse JSON response: {response.text[:200]}")
                raise NetworkError(MSG_INVALID_RESPONSE, status_code=response.status_code)
            return body

        body = body if isinstance(body, dict) else {}
        message = self._error_message(body, response)
        logger.error(
            f"API request failed with status {response.status_code}: {message[:200]}"
        )

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise NetworkError(message, status_code=response.status_code)
        if body.get("requiresRole") or SERVER_ROLE_REQUIRED_MARKER in message:
            raise RoleRequiredError(message, status_code=response.status_code)
        if body.get("requiresEmail") or SERVER_EMAIL_REQUIRED_MARKER in message:
            raise EmailRequiredError(message, status_code=response.status_code)
        raise AuthError(message, status_code=response.status_code)

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        logger.info(f"API request: {method.upper()} {url} (token: {mask_token(token)})")
        sender = getattr(requests, method)
        kwargs: Dict[str, Any] = {"headers": self._get_headers(token), "timeout": self.timeout}
        if payload is not None:
            kwargs["json"] = payload
        try:
            response = sender(url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"API request {method.upper()} {endpoint} failed: {e}")
            raise NetworkError(f"Could not connect to server: {e}") from e
        return self._handle_response(response)

    @staticmethod
    def _parse_auth(body: Dict[str, Any]) -> AuthResponse:
        try:
            return AuthResponse.model_validate(body)
        except PydanticValidationError as e:
            logger.error(f"Auth response missing user or token: {e}")
            raise NetworkError(MSG_INVALID_RESPONSE) from e

    @staticmethod
    def _parse_user(body: Dict[str, Any]) -> UserProfile:
        try:
            return UserProfile.model_validate(body.get("user"))
        except PydanticValidationError as e:
            logger.error(f"User payload is invalid: {e}")
            raise NetworkError(MSG_INVALID_RESPONSE) from e

    def login(self, email: str, password: str) -> AuthResponse:
        """
        Вход пользователя.

        Args:
            email: Email пользователя
            password: Пароль

        Returns:
            Профиль пользователя и токен
        """
        body = self._request("post", ENDPOINT_AUTH_LOGIN, {"email": email, "password": password})
        return self._parse_auth(body)

    def register(self, payload: Dict[str, Any]) -> AuthResponse:
        """
        Регистрация нового пользователя.

        Args:
            payload: {name, email, password, role, licenseNumber?, specialization?}

        Returns:
            Профиль пользователя и токен
        """
        body = self._request("post", ENDPOINT_AUTH_REGISTER, payload)
        return self._parse_auth(body)

    def get_current_user(self, token: str) -> UserProfile:
        """Профиль пользователя по токену"""
        body = self._request("get", ENDPOINT_USER_PROFILE, token=token)
        return self._parse_user(body)

    def update_profile(self, token: str, update: ProfileUpdate) -> UserProfile:
        """Обновление имени, фамилии и email"""
        body = self._request("put", ENDPOINT_USER_PROFILE, update.to_payload(), token=token)
        return self._parse_user(body)

    def oauth_exchange(self, request: OAuthExchangeRequest) -> AuthResponse:
        """
        Обмен assertion OAuth провайдера на токен сессии.

        Raises:
            RoleRequiredError: Новая учетная запись без роли
            EmailRequiredError: Apple скрыл email при повторном входе
        """
        endpoint = _EXCHANGE_ENDPOINTS[request.assertion.provider]
        body = self._request("post", endpoint, request.to_payload())
        return self._parse_auth(body)

    def request_password_reset(self, email: str) -> PasswordResetRequested:
        """Запрос кода сброса пароля. Сервер всегда отвечает success."""
        body = self._request("post", ENDPOINT_AUTH_FORGOT_PASSWORD, {"email": email})
        try:
            return PasswordResetRequested.model_validate(body)
        except PydanticValidationError as e:
            raise NetworkError(MSG_INVALID_RESPONSE) from e

    def confirm_password_reset(self, email: str, code: str, new_password: str) -> bool:
        """Подтверждение сброса пароля кодом"""
        body = self._request(
            "post",
            ENDPOINT_AUTH_RESET_PASSWORD,
            {"email": email, "code": code, "newPassword": new_password},
        )
        return body.get("success") is True
