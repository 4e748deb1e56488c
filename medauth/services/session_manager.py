"""
Менеджер сессии: единственный владелец состояния аутентификации.

Все изменения Session проходят через _commit (полная замена user + token).
Операции одного класса не выполняются параллельно: вторая сразу получает busy.
"""

import asyncio
import logging
from typing import Any, Callable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from medauth.api_client import AuthAPIClient
from medauth.config import Settings, get_settings
from medauth.constants import (
    MSG_EMPTY_PROFILE_FIELDS,
    MSG_INVALID_FORM,
    MSG_NOT_AUTHENTICATED,
    MSG_OAUTH_DISABLED,
    MSG_SESSION_CLOSED,
    MSG_UNSUPPORTED_PROVIDER,
)
from medauth.core.error_handlers import result_boundary
from medauth.core.exceptions import (
    AuthError,
    BusyError,
    ConfigurationError,
    EmailRequiredError,
    RoleRequiredError,
    ValidationError,
)
from medauth.core.locks import OperationLock
from medauth.core.logging_config import mask_token, setup_logging
from medauth.core.storage import FileTokenStore, TokenStore
from medauth.schemas.auth import (
    AuthResponse,
    IdentityAssertion,
    OAuthExchangeRequest,
    OAuthProvider,
    ProfileUpdate,
    RegistrationForm,
    UserProfile,
)
from medauth.schemas.results import OperationResult
from medauth.schemas.session import Session, SessionStatus
from medauth.services.credentials import CredentialAuthenticator
from medauth.services.oauth import AppleAuthenticator, ConsentPresenter, OAuthBroker
from medauth.services.password_reset import PasswordResetFlow

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session], Any]

FormT = TypeVar("FormT", bound=BaseModel)


def _parse_form(model: Type[FormT], data: Mapping[str, Any]) -> FormT:
    """
    Собирает форму из словаря.

    Raises:
        ValidationError: Если поля имеют неверный тип (значения в ошибку не попадают)
    """
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in e.errors()})
        raise ValidationError(
            MSG_INVALID_FORM.format(fields=", ".join(fields)), details={"fields": fields}
        ) from e


class SessionManager:
    """
    Оркестратор аутентификации.

    Создается один раз при старте процесса (build_session_manager) и
    передается явно всем, кому нужна сессия. Перед использованием
    вызывается init(), который восстанавливает сессию из TokenStore.

    Классы операций:
        session: login, restore, register
        profile: update_profile
        oauth: login_with_oauth
    """

    def __init__(
        self,
        api: AuthAPIClient,
        token_store: TokenStore,
        broker: OAuthBroker,
        settings: Optional[Settings] = None,
    ) -> None:
        self._api = api
        self._store = token_store
        self._broker = broker
        self._settings = settings or get_settings()
        self._credentials = CredentialAuthenticator(api)

        self._session = Session()
        # Увеличивается при logout: результаты операций, начатых раньше, отбрасываются
        self._epoch = 0
        self._session_lock = OperationLock("session")
        self._profile_lock = OperationLock("profile")
        self._oauth_lock = OperationLock("oauth")
        self._pending_assertion: Optional[IdentityAssertion] = None
        self._listeners: List[SessionListener] = []

    # ==================== State ====================

    @property
    def session(self) -> Session:
        return self._session

    @property
    def user(self) -> Optional[UserProfile]:
        return self._session.user

    @property
    def is_authenticated(self) -> bool:
        return self._session.status == SessionStatus.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        """True, пока выполняется хотя бы одна операция или идет восстановление"""
        return (
            self._session.status in (SessionStatus.UNINITIALIZED, SessionStatus.RESTORING)
            or self._session_lock.locked()
            or self._profile_lock.locked()
            or self._oauth_lock.locked()
        )

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Подписка на изменения сессии.

        Returns:
            Функция отписки
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, session: Session) -> None:
        """Единственная точка записи Session"""
        previous = self._session
        self._session = session
        logger.info(
            f"Session {previous.status.value} -> {session.status.value}"
            + (f" ({session.user.email})" if session.user else "")
        )
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    async def _clear_store(self) -> None:
        try:
            await asyncio.to_thread(self._store.clear)
        except Exception as e:
            logger.error(f"Failed to clear token store: {e}", exc_info=True)

    async def _establish(self, auth: AuthResponse, epoch: int) -> None:
        """
        Сохраняет токен и переводит сессию в AUTHENTICATED.

        Запись в TokenStore выполняется до перехода в памяти.
        """
        if epoch != self._epoch:
            logger.info("Sign-in result discarded: session was closed meanwhile")
            raise AuthError(MSG_SESSION_CLOSED)

        await asyncio.to_thread(self._store.set, auth.token)
        logger.info(f"Token persisted {mask_token(auth.token)}")

        if epoch != self._epoch:
            logger.info("Sign-in result discarded after persisting: session was closed meanwhile")
            await self._clear_store()
            raise AuthError(MSG_SESSION_CLOSED)

        self._pending_assertion = None
        self._commit(Session.authenticated(auth.user, auth.token))

    # ==================== Startup ====================

    async def init(self) -> Session:
        """Восстанавливает сессию при старте. Повторные вызовы ничего не делают."""
        if self._session.status != SessionStatus.UNINITIALIZED:
            logger.debug(f"init() skipped: session already {self._session.status.value}")
            return self._session
        return await self.restore()

    async def restore(self) -> Session:
        """
        Сверяет сессию с сохраненным токеном.

        Невалидный или устаревший токен не является ошибкой: он удаляется,
        сессия становится UNAUTHENTICATED.

        Returns:
            Итоговая Session
        """
        try:
            with self._session_lock.hold():
                await self._restore()
        except BusyError:
            logger.warning("Restore skipped: another session operation is in flight")
        return self._session

    async def _restore(self) -> None:
        epoch = self._epoch
        logger.info("Initializing auth from token store")

        try:
            token = await asyncio.to_thread(self._store.get)
        except Exception as e:
            logger.error(f"Failed to read token store: {e}", exc_info=True)
            token = None

        if not token:
            logger.info("No token found, user not authenticated")
            if epoch == self._epoch:
                self._commit(Session.unauthenticated())
            return

        if epoch != self._epoch:
            logger.info("Restore abandoned: session was closed while reading the token store")
            return
        self._commit(Session.restoring())
        try:
            user = await asyncio.to_thread(self._api.get_current_user, token)
        except Exception as e:
            logger.warning(f"Failed to restore user session, clearing token: {e}")
            await self._clear_store()
            if epoch == self._epoch:
                self._commit(Session.unauthenticated())
            return

        if epoch != self._epoch:
            logger.info("Restored user discarded: session was closed meanwhile")
            return
        self._commit(Session.authenticated(user, token))

    # ==================== Credentials ====================

    @result_boundary("login")
    async def login(self, email: str, password: str) -> OperationResult:
        """
        Вход по email и паролю.

        Неудачный вход не трогает текущую сессию.
        """
        self._credentials.validate_login(email, password)
        with self._session_lock.hold():
            epoch = self._epoch
            auth = await self._credentials.login(email, password)
            await self._establish(auth, epoch)
        logger.info(f"Login successful for: {auth.user.email}")
        return OperationResult.ok()

    @result_boundary("register")
    async def register(self, form: Union[RegistrationForm, Mapping[str, Any]]) -> OperationResult:
        """Регистрация; успешный ответ применяется так же, как вход"""
        if not isinstance(form, RegistrationForm):
            form = _parse_form(RegistrationForm, form)
        self._credentials.validate_registration(form)
        with self._session_lock.hold():
            epoch = self._epoch
            auth = await self._credentials.register(form)
            await self._establish(auth, epoch)
        logger.info(f"Registration successful for: {auth.user.email}")
        return OperationResult.ok()

    async def logout(self) -> None:
        """Выход: сессия сбрасывается, токен удаляется. Идемпотентно."""
        self._epoch += 1
        self._pending_assertion = None
        if self._session.status != SessionStatus.UNAUTHENTICATED:
            self._commit(Session.unauthenticated())
        else:
            logger.debug("Logout while already unauthenticated")
        await self._clear_store()
        logger.info("User logged out")

    # ==================== Profile ====================

    @result_boundary("update_profile")
    async def update_profile(self, patch: Union[ProfileUpdate, Mapping[str, Any]]) -> OperationResult:
        """
        Обновление имени, фамилии и email.

        Если значения совпадают с текущим профилем, запрос не отправляется.
        """
        if not isinstance(patch, ProfileUpdate):
            patch = _parse_form(ProfileUpdate, patch)
        update = patch.normalized()
        if not update.first_name or not update.last_name or not update.email:
            raise ValidationError(MSG_EMPTY_PROFILE_FIELDS)

        current = self._session
        if current.status != SessionStatus.AUTHENTICATED:
            raise AuthError(MSG_NOT_AUTHENTICATED)

        if update.matches(current.user):
            logger.info("Profile update skipped: no changes")
            return OperationResult.ok(no_changes=True)

        with self._profile_lock.hold():
            epoch = self._epoch
            user = await asyncio.to_thread(self._api.update_profile, current.token, update)
            if epoch != self._epoch or self._session.token != current.token:
                raise AuthError(MSG_SESSION_CLOSED)
            self._commit(Session.authenticated(user, current.token))

        logger.info(f"Profile updated for user {user.id}")
        return OperationResult.ok()

    # ==================== OAuth ====================

    @result_boundary("login_with_oauth")
    async def login_with_oauth(
        self,
        provider: Union[OAuthProvider, str],
        role: Optional[str] = None,
        specialization: Optional[str] = None,
        email: Optional[str] = None,
    ) -> OperationResult:
        """
        Вход через Google или Apple.

        Если сервер ответил role_required / email_required, assertion
        сохраняется, и следующий вызов для того же провайдера отправляет
        его повторно с переданными role / email, без нового экрана согласия.

        Args:
            provider: google или apple
            role: Роль для новой учетной записи
            specialization: Специализация врача
            email: Email, собранный у пользователя, если Apple его скрыл
        """
        try:
            provider = OAuthProvider(provider)
        except ValueError:
            raise ConfigurationError(MSG_UNSUPPORTED_PROVIDER.format(provider=provider))

        if not self._settings.oauth_enabled:
            raise ConfigurationError(MSG_OAUTH_DISABLED)

        with self._oauth_lock.hold():
            epoch = self._epoch
            assertion = self._take_pending_assertion(provider)
            if assertion is None:
                result = await self._broker.initiate(provider, role, specialization)
                if not result.is_ok:
                    logger.info(f"{provider.value} sign-in not completed: {result.outcome.value}")
                    return OperationResult.from_oauth(result)
                assertion = result.assertion
            else:
                logger.info(f"Resubmitting pending {provider.value} assertion")

            if email and email.strip():
                assertion = assertion.model_copy(update={"email": email.strip().lower()})

            request = OAuthExchangeRequest(
                assertion=assertion, role=role, specialization=specialization
            )
            try:
                auth = await asyncio.to_thread(self._api.oauth_exchange, request)
            except (RoleRequiredError, EmailRequiredError):
                if epoch == self._epoch:
                    self._pending_assertion = assertion
                raise
            await self._establish(auth, epoch)

        logger.info(f"{provider.value} sign-in successful for: {auth.user.email}")
        return OperationResult.ok()

    def _take_pending_assertion(self, provider: OAuthProvider) -> Optional[IdentityAssertion]:
        assertion, self._pending_assertion = self._pending_assertion, None
        if assertion is not None and assertion.provider != provider:
            logger.info(f"Discarding pending {assertion.provider.value} assertion")
            return None
        return assertion

    # ==================== Password reset ====================

    def start_password_reset(self) -> PasswordResetFlow:
        """Новый экземпляр сброса пароля в шаге AWAITING_EMAIL"""
        return PasswordResetFlow(self._api)


def build_session_manager(
    settings: Optional[Settings] = None,
    token_store: Optional[TokenStore] = None,
    api: Optional[AuthAPIClient] = None,
    presenter: Optional[ConsentPresenter] = None,
    apple: Optional[AppleAuthenticator] = None,
    configure_logging: bool = False,
) -> SessionManager:
    """
    Собирает SessionManager с зависимостями по умолчанию.

    configure_logging=True настраивает корневой логгер из Settings
    (log_level, json_logs, log_file); библиотечный код по умолчанию этого не делает.

    Example:
        >>> manager = build_session_manager()
        >>> await manager.init()
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(level=settings.log_level, json_logs=settings.json_logs, log_file=settings.log_file)
    api = api or AuthAPIClient(base_url=settings.api_url, timeout=settings.api_timeout)
    token_store = token_store or FileTokenStore(settings.token_file)
    broker = OAuthBroker(settings=settings, presenter=presenter, apple=apple)
    return SessionManager(api=api, token_store=token_store, broker=broker, settings=settings)
