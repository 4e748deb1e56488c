"""
OAuth брокер для входа через Google и Apple.

Google: authorization code flow с PKCE через браузер (ConsentPresenter).
Apple: нативный запрос учетных данных (AppleAuthenticator).
Оба потока одноразовые, без повторов: результат возвращается вызывающему
как OAuthResult.
"""

import asyncio
import logging
import time
import webbrowser
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, Optional, Protocol, Sequence
from urllib.parse import parse_qsl, urlencode, urlparse

import jwt
import requests

from medauth.config import Settings, get_settings
from medauth.constants import (
    APPLE_CANCEL_CODES,
    APPLE_MISCONFIGURED_MARKERS,
    APPLE_SCOPE_EMAIL,
    APPLE_SCOPE_FULL_NAME,
    CONSENT_TIMEOUT,
    DISCOVERY_TIMEOUT,
    GOOGLE_SCOPES,
    MSG_APPLE_FAILED,
    MSG_APPLE_MISCONFIGURED,
    MSG_APPLE_NO_TOKEN,
    MSG_APPLE_UNAVAILABLE,
    MSG_GOOGLE_FAILED,
    MSG_GOOGLE_NO_TOKEN,
    MSG_GOOGLE_NOT_CONFIGURED,
    MSG_USER_CANCELLED,
)
from medauth.core.exceptions import (
    AuthClientError,
    ConfigurationError,
    FailureKind,
    FlowCancelledError,
    NoTokenReturnedError,
    ProviderError,
    ProviderUnavailableError,
)
from medauth.schemas.auth import IdentityAssertion, OAuthProvider
from medauth.schemas.results import OAuthResult
from medauth.services.pkce import PKCEPair, new_state

logger = logging.getLogger(__name__)

CONSENT_SUCCESS = "success"
CONSENT_CANCEL = "cancel"
CONSENT_DISMISS = "dismiss"
CONSENT_ERROR = "error"


@dataclass
class ConsentResult:
    """Результат экрана согласия: success | cancel | dismiss | error"""

    type: str
    params: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


class ConsentPresenter(Protocol):
    """Показывает экран согласия провайдера и возвращает параметры redirect"""

    async def present(self, authorization_url: str, redirect_uri: str) -> ConsentResult:
        ...


@dataclass
class AppleCredential:
    """Учетные данные от нативного Sign in with Apple"""

    identity_token: Optional[str]
    user: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None


class AppleSignInError(Exception):
    """Ошибка нативного Sign in with Apple (code в стиле ERR_CANCELED)"""

    def __init__(self, message: str = "", code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message or code or MSG_APPLE_FAILED)


class AppleAuthenticator(Protocol):
    """Нативный API Sign in with Apple"""

    async def is_available(self) -> bool:
        ...

    async def sign_in(self, scopes: Sequence[str]) -> AppleCredential:
        ...


def consent_result_from_params(params: Dict[str, str]) -> ConsentResult:
    """
    Классифицирует параметры redirect от провайдера.

    access_denied означает, что пользователь отказался на экране согласия.
    """
    error = params.get("error")
    if not error:
        return ConsentResult(type=CONSENT_SUCCESS, params=params)
    if error == "access_denied":
        return ConsentResult(type=CONSENT_CANCEL, params=params)
    return ConsentResult(
        type=CONSENT_ERROR,
        params=params,
        error=params.get("error_description") or error,
    )


class LoopbackConsentPresenter:
    """
    Открывает системный браузер и ловит redirect на локальном HTTP сервере.

    redirect_uri должен указывать на loopback адрес, например
    http://127.0.0.1:8765/callback.
    """

    def __init__(
        self,
        timeout: int = CONSENT_TIMEOUT,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self.timeout = timeout
        self._open_browser = open_browser

    async def present(self, authorization_url: str, redirect_uri: str) -> ConsentResult:
        return await asyncio.to_thread(self._run, authorization_url, redirect_uri)

    def _run(self, authorization_url: str, redirect_uri: str) -> ConsentResult:
        target = urlparse(redirect_uri)
        captured: Dict[str, str] = {}

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                request = urlparse(self.path)
                if request.path != (target.path or "/"):
                    self.send_response(404)
                    self.end_headers()
                    return
                captured.update(dict(parse_qsl(request.query)))
                self.send_response(200)
                self.send_header("Content-Type", "text/plain; charset=utf-8")
                self.end_headers()
                self.wfile.write(b"Sign-in complete. You can close this window.")

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug(f"Callback server: {format % args}")

        with HTTPServer((target.hostname or "127.0.0.1", target.port or 80), CallbackHandler) as server:
            server.timeout = 1
            if not self._open_browser(authorization_url):
                logger.warning("Could not open browser for OAuth consent")
                return ConsentResult(type=CONSENT_ERROR, error="Could not open a browser for sign-in")
            logger.info(f"Waiting for OAuth callback on {redirect_uri}")
            deadline = time.monotonic() + self.timeout
            while not captured and time.monotonic() < deadline:
                server.handle_request()

        if not captured:
            logger.warning(f"OAuth consent timed out after {self.timeout}s")
            return ConsentResult(type=CONSENT_DISMISS)
        return consent_result_from_params(captured)


def _unverified_claims(id_token: str) -> Dict[str, Any]:
    """Claims id_token без проверки подписи (проверяет backend)"""
    try:
        return jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.debug(f"Could not decode id_token claims: {e}")
        return {}


class OAuthBroker:
    """
    Проводит вход у OAuth провайдеров и приводит результаты к IdentityAssertion.

    Args:
        settings: Настройки (client id, redirect uri, discovery url)
        presenter: Экран согласия Google
        apple: Нативный Sign in with Apple (None, если платформа его не поддерживает)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        presenter: Optional[ConsentPresenter] = None,
        apple: Optional[AppleAuthenticator] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._presenter = presenter or LoopbackConsentPresenter()
        self._apple = apple
        self._apple_available: Optional[bool] = None
        self._discovery: Optional[Dict[str, Any]] = None

    # ==================== Capabilities ====================

    def is_google_configured(self) -> bool:
        return self._settings.google_client_id() is not None

    async def supports_native_apple_sign_in(self) -> bool:
        """Проверяет доступность нативного Apple входа (один раз, затем кэш)"""
        if self._apple_available is None:
            if self._apple is None:
                self._apple_available = False
            else:
                try:
                    self._apple_available = bool(await self._apple.is_available())
                except Exception as e:
                    logger.error(f"Apple availability check failed: {e}", exc_info=True)
                    self._apple_available = False
            logger.info(f"Native Apple Sign-In available: {self._apple_available}")
        return self._apple_available

    async def is_apple_available(self) -> bool:
        return await self.supports_native_apple_sign_in()

    # ==================== Google ====================

    async def initiate_google(
        self,
        role: Optional[str] = None,
        specialization: Optional[str] = None,
    ) -> OAuthResult:
        """
        Вход через Google (authorization code + PKCE).

        Args:
            role: Роль для регистрации (используется при обмене assertion)
            specialization: Специализация врача

        Returns:
            OAuthResult с assertion, отменой или классифицированной ошибкой
        """
        client_id = self._settings.google_client_id()
        if not client_id:
            message = MSG_GOOGLE_NOT_CONFIGURED.format(platform=self._settings.client_platform)
            logger.warning(message)
            return OAuthResult.from_exception(ConfigurationError(message, provider="google"))

        logger.info(f"Starting Google sign-in (role={role}, specialization={specialization})")
        try:
            assertion = await self._google_assertion(client_id)
        except AuthClientError as exc:
            logger.info(f"Google sign-in ended: {exc.kind.value}: {exc.message}")
            return OAuthResult.from_exception(exc)
        except Exception as exc:
            logger.error(f"Google OAuth error: {exc}", exc_info=True)
            return OAuthResult.error(FailureKind.PROVIDER_ERROR, str(exc) or MSG_GOOGLE_FAILED)

        logger.info("Google sign-in produced an identity assertion")
        return OAuthResult.ok(assertion)

    async def _google_assertion(self, client_id: str) -> IdentityAssertion:
        pkce = PKCEPair()
        state = new_state()
        redirect_uri = self._settings.google_redirect_uri
        discovery = await self._get_discovery()

        query = urlencode(
            {
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
                "scope": " ".join(GOOGLE_SCOPES),
                "state": state,
                "code_challenge": pkce.challenge,
                "code_challenge_method": pkce.method,
            }
        )
        authorization_url = f"{discovery['authorization_endpoint']}?{query}"

        result = await self._presenter.present(authorization_url, redirect_uri)

        if result.type == CONSENT_ERROR:
            raise ProviderError(result.error or MSG_GOOGLE_FAILED, provider="google")
        if result.type != CONSENT_SUCCESS:
            raise FlowCancelledError(MSG_USER_CANCELLED.format(provider="Google"), provider="google")

        if result.params.get("state") != state:
            raise ProviderError("OAuth state mismatch", provider="google")

        id_token = result.params.get("id_token")
        code = result.params.get("code")
        if not id_token and code:
            id_token = await asyncio.to_thread(
                self._exchange_code,
                discovery["token_endpoint"],
                client_id,
                code,
                pkce.verifier,
                redirect_uri,
            )
        if not id_token:
            raise NoTokenReturnedError(MSG_GOOGLE_NO_TOKEN, provider="google")

        claims = _unverified_claims(id_token)
        return IdentityAssertion(
            provider=OAuthProvider.GOOGLE,
            provider_token=id_token,
            subject_id=claims.get("sub"),
            email=claims.get("email"),
            full_name=claims.get("name"),
        )

    async def _get_discovery(self) -> Dict[str, Any]:
        if self._discovery is None:
            self._discovery = await asyncio.to_thread(self._fetch_discovery)
        return self._discovery

    def _fetch_discovery(self) -> Dict[str, Any]:
        """Загружает OpenID discovery документ Google"""
        url = self._settings.google_discovery_url
        try:
            response = requests.get(url, timeout=DISCOVERY_TIMEOUT)
            response.raise_for_status()
            document = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Discovery document request failed: {e}")
            raise ProviderError(f"Could not load Google discovery document: {e}", provider="google") from e

        if not document.get("authorization_endpoint") or not document.get("token_endpoint"):
            raise ProviderError("Google discovery document is incomplete", provider="google")
        return document

    def _exchange_code(
        self,
        token_endpoint: str,
        client_id: str,
        code: str,
        verifier: str,
        redirect_uri: str,
    ) -> Optional[str]:
        """Обменивает authorization code на id_token с PKCE verifier"""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "code_verifier": verifier,
        }
        try:
            response = requests.post(token_endpoint, data=payload, timeout=DISCOVERY_TIMEOUT)
        except requests.exceptions.RequestException as e:
            logger.error(f"Google token exchange failed: {e}")
            raise ProviderError(f"Google token exchange failed: {e}", provider="google") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = body.get("error_description") or body.get("error") or response.text[:200]
            logger.error(f"Google token exchange failed ({response.status_code}): {message}")
            raise ProviderError(message or MSG_GOOGLE_FAILED, provider="google")

        return body.get("id_token")

    # ==================== Apple ====================

    async def initiate_apple(
        self,
        role: Optional[str] = None,
        specialization: Optional[str] = None,
    ) -> OAuthResult:
        """
        Вход через нативный Sign in with Apple.

        Email и имя приходят только при первом согласии; их отсутствие не ошибка.
        """
        if not await self.supports_native_apple_sign_in():
            logger.warning("Apple Sign-In requested on unsupported device")
            return OAuthResult.from_exception(
                ProviderUnavailableError(MSG_APPLE_UNAVAILABLE, provider="apple")
            )

        logger.info(f"Starting Apple sign-in (role={role}, specialization={specialization})")
        try:
            credential = await self._apple.sign_in([APPLE_SCOPE_FULL_NAME, APPLE_SCOPE_EMAIL])
        except AppleSignInError as exc:
            return OAuthResult.from_exception(self._classify_apple_error(exc))
        except Exception as exc:
            logger.error(f"Apple OAuth error: {exc}", exc_info=True)
            return OAuthResult.error(FailureKind.PROVIDER_ERROR, str(exc) or MSG_APPLE_FAILED)

        if not credential.identity_token:
            logger.warning("Apple sign-in returned no identity token")
            return OAuthResult.error(FailureKind.NO_TOKEN_RETURNED, MSG_APPLE_NO_TOKEN)

        full_name = " ".join(
            part.strip() for part in (credential.given_name, credential.family_name) if part and part.strip()
        )
        assertion = IdentityAssertion(
            provider=OAuthProvider.APPLE,
            provider_token=credential.identity_token,
            subject_id=credential.user or None,
            email=credential.email or None,
            full_name=full_name or None,
        )
        logger.info(
            f"Apple sign-in produced an identity assertion "
            f"(email={'present' if assertion.email else 'withheld'})"
        )
        return OAuthResult.ok(assertion)

    @staticmethod
    def _classify_apple_error(exc: AppleSignInError) -> AuthClientError:
        if exc.code in APPLE_CANCEL_CODES:
            logger.info("User cancelled Apple sign-in")
            return FlowCancelledError(MSG_USER_CANCELLED.format(provider="Apple"), provider="apple")

        if exc.message:
            message = exc.message
        elif exc.code:
            message = f"Apple Sign-In error: {exc.code}"
        else:
            message = MSG_APPLE_FAILED

        lowered = message.lower()
        if any(marker in lowered for marker in APPLE_MISCONFIGURED_MARKERS):
            logger.error(f"Apple Sign-In misconfigured: {message}")
            return ConfigurationError(MSG_APPLE_MISCONFIGURED, provider="apple")

        logger.error(f"Apple OAuth error: {message}")
        return ProviderError(message, provider="apple")

    # ==================== Dispatch ====================

    async def initiate(
        self,
        provider: OAuthProvider,
        role: Optional[str] = None,
        specialization: Optional[str] = None,
    ) -> OAuthResult:
        if provider == OAuthProvider.GOOGLE:
            return await self.initiate_google(role, specialization)
        if provider == OAuthProvider.APPLE:
            return await self.initiate_apple(role, specialization)
        return OAuthResult.error(FailureKind.CONFIGURATION_ERROR, f"Unsupported provider: {provider}")
