"""
Тесты OAuthBroker: Google PKCE и нативный Apple вход
"""

from typing import Optional
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import jwt
import pytest
import requests

from medauth.core.exceptions import FailureKind
from medauth.schemas.auth import OAuthProvider
from medauth.schemas.results import OAuthOutcome
from medauth.services.oauth import (
    CONSENT_CANCEL,
    CONSENT_DISMISS,
    CONSENT_ERROR,
    CONSENT_SUCCESS,
    AppleCredential,
    AppleSignInError,
    ConsentResult,
    OAuthBroker,
    consent_result_from_params,
)
from medauth.services.pkce import code_challenge_for

DISCOVERY = {
    "authorization_endpoint": "https://accounts.example.com/o/oauth2/v2/auth",
    "token_endpoint": "https://oauth2.example.com/token",
}

ID_TOKEN = jwt.encode(
    {"sub": "g-123", "email": "doc@x.com", "name": "Anna Petrova"},
    "test-secret-key-with-at-least-32-bytes",
    algorithm="HS256",
)


class FakePresenter:
    """Экран согласия, который отвечает заранее заданным результатом"""

    def __init__(self, result_type: str = CONSENT_SUCCESS, params: Optional[dict] = None,
                 error: Optional[str] = None, echo_state: bool = True):
        self.result_type = result_type
        self.params = params or {}
        self.error = error
        self.echo_state = echo_state
        self.calls = []

    async def present(self, authorization_url: str, redirect_uri: str) -> ConsentResult:
        self.calls.append((authorization_url, redirect_uri))
        params = dict(self.params)
        if self.echo_state:
            query = parse_qs(urlparse(authorization_url).query)
            params.setdefault("state", query["state"][0])
        return ConsentResult(type=self.result_type, params=params, error=self.error)


class FakeApple:
    def __init__(self, available: bool = True, credential: Optional[AppleCredential] = None,
                 error: Optional[Exception] = None):
        self.available = available
        self.credential = credential
        self.error = error
        self.availability_checks = 0
        self.scopes = None

    async def is_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    async def sign_in(self, scopes):
        self.scopes = list(scopes)
        if self.error:
            raise self.error
        return self.credential


def json_response(body: dict, status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.json.return_value = body
    response.text = str(body)
    return response


@pytest.fixture
def mock_discovery():
    with patch("medauth.services.oauth.requests.get") as mock_get:
        mock_get.return_value = json_response(DISCOVERY)
        yield mock_get


@pytest.fixture
def mock_token_endpoint():
    with patch("medauth.services.oauth.requests.post") as mock_post:
        mock_post.return_value = json_response({"id_token": ID_TOKEN, "access_token": "at"})
        yield mock_post


# ==================== Google ====================

@pytest.mark.asyncio
async def test_google_not_configured(settings):
    settings.google_web_client_id = None
    presenter = FakePresenter()
    broker = OAuthBroker(settings=settings, presenter=presenter)

    result = await broker.initiate_google()

    assert result.outcome == OAuthOutcome.ERROR
    assert result.failure_kind == FailureKind.CONFIGURATION_ERROR
    assert "web" in result.message
    assert presenter.calls == []
    assert not broker.is_google_configured()


@pytest.mark.asyncio
async def test_google_uses_platform_client_id(settings, mock_discovery, mock_token_endpoint):
    settings.client_platform = "ios"
    settings.google_ios_client_id = "ios-client-id"
    presenter = FakePresenter(params={"code": "auth-code"})
    broker = OAuthBroker(settings=settings, presenter=presenter)

    await broker.initiate_google()

    url, _ = presenter.calls[0]
    assert parse_qs(urlparse(url).query)["client_id"] == ["ios-client-id"]


@pytest.mark.asyncio
async def test_google_code_exchange_with_pkce(settings, mock_discovery, mock_token_endpoint):
    presenter = FakePresenter(params={"code": "auth-code"})
    broker = OAuthBroker(settings=settings, presenter=presenter)

    result = await broker.initiate_google(role="doctor")

    assert result.is_ok
    assertion = result.assertion
    assert assertion.provider == OAuthProvider.GOOGLE
    assert assertion.provider_token == ID_TOKEN
    assert assertion.subject_id == "g-123"
    assert assertion.email == "doc@x.com"
    assert assertion.full_name == "Anna Petrova"

    url, redirect_uri = presenter.calls[0]
    assert url.startswith(DISCOVERY["authorization_endpoint"])
    assert redirect_uri == settings.google_redirect_uri
    query = parse_qs(urlparse(url).query)
    assert query["code_challenge_method"] == ["S256"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["openid profile email"]

    token_request = mock_token_endpoint.call_args
    assert token_request.args[0] == DISCOVERY["token_endpoint"]
    data = token_request.kwargs["data"]
    assert data["code"] == "auth-code"
    assert data["grant_type"] == "authorization_code"
    assert code_challenge_for(data["code_verifier"]) == query["code_challenge"][0]


@pytest.mark.asyncio
async def test_google_direct_id_token_skips_exchange(settings, mock_discovery, mock_token_endpoint):
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(params={"id_token": ID_TOKEN}))

    result = await broker.initiate_google()

    assert result.is_ok
    mock_token_endpoint.assert_not_called()


@pytest.mark.asyncio
async def test_discovery_document_is_cached(settings, mock_discovery, mock_token_endpoint):
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(params={"id_token": ID_TOKEN}))

    await broker.initiate_google()
    await broker.initiate_google()

    assert mock_discovery.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("result_type", [CONSENT_CANCEL, CONSENT_DISMISS])
async def test_google_cancel(settings, mock_discovery, mock_token_endpoint, result_type):
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(result_type=result_type))

    result = await broker.initiate_google()

    assert result.outcome == OAuthOutcome.CANCELLED
    assert result.failure_kind == FailureKind.CANCELLED
    assert result.message == "User cancelled Google authentication"
    mock_token_endpoint.assert_not_called()


@pytest.mark.asyncio
async def test_google_consent_error(settings, mock_discovery):
    broker = OAuthBroker(
        settings=settings,
        presenter=FakePresenter(result_type=CONSENT_ERROR, error="invalid_client"),
    )

    result = await broker.initiate_google()

    assert result.failure_kind == FailureKind.PROVIDER_ERROR
    assert result.message == "invalid_client"


@pytest.mark.asyncio
async def test_google_no_token(settings, mock_discovery):
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(params={}))

    result = await broker.initiate_google()

    assert result.failure_kind == FailureKind.NO_TOKEN_RETURNED
    assert result.message == "No ID token received from Google"


@pytest.mark.asyncio
async def test_google_state_mismatch(settings, mock_discovery, mock_token_endpoint):
    presenter = FakePresenter(params={"code": "auth-code", "state": "forged"}, echo_state=False)
    broker = OAuthBroker(settings=settings, presenter=presenter)

    result = await broker.initiate_google()

    assert result.failure_kind == FailureKind.PROVIDER_ERROR
    mock_token_endpoint.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"id_token": "injected.jwt.token"}, {"code": "injected-code"}])
async def test_google_redirect_without_state_rejected(settings, mock_discovery, mock_token_endpoint, params):
    """Redirect без state не принимается"""
    presenter = FakePresenter(params=params, echo_state=False)
    broker = OAuthBroker(settings=settings, presenter=presenter)

    result = await broker.initiate_google()

    assert not result.is_ok
    assert result.failure_kind == FailureKind.PROVIDER_ERROR
    assert result.message == "OAuth state mismatch"
    mock_token_endpoint.assert_not_called()


@pytest.mark.asyncio
async def test_google_token_endpoint_rejects(settings, mock_discovery, mock_token_endpoint):
    mock_token_endpoint.return_value = json_response(
        {"error": "invalid_grant", "error_description": "Bad Request"}, status=400
    )
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(params={"code": "used"}))

    result = await broker.initiate_google()

    assert result.failure_kind == FailureKind.PROVIDER_ERROR
    assert result.message == "Bad Request"


@pytest.mark.asyncio
async def test_google_discovery_unreachable(settings):
    with patch("medauth.services.oauth.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
        broker = OAuthBroker(settings=settings, presenter=FakePresenter())
        result = await broker.initiate_google()

    assert result.failure_kind == FailureKind.PROVIDER_ERROR


def test_consent_result_from_params():
    assert consent_result_from_params({"code": "c"}).type == CONSENT_SUCCESS
    assert consent_result_from_params({"error": "access_denied"}).type == CONSENT_CANCEL
    failed = consent_result_from_params({"error": "server_error", "error_description": "Oops"})
    assert failed.type == CONSENT_ERROR
    assert failed.error == "Oops"


# ==================== Apple ====================

@pytest.mark.asyncio
async def test_apple_unavailable(settings):
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=FakeApple(available=False))

    result = await broker.initiate_apple()

    assert result.failure_kind == FailureKind.UNAVAILABLE
    assert "not available" in result.message


@pytest.mark.asyncio
async def test_apple_missing_authenticator_is_unavailable(settings):
    broker = OAuthBroker(settings=settings, presenter=FakePresenter())

    assert not await broker.is_apple_available()
    result = await broker.initiate(OAuthProvider.APPLE)
    assert result.failure_kind == FailureKind.UNAVAILABLE


@pytest.mark.asyncio
async def test_apple_success_without_email(settings):
    """Повторный вход: Apple не передает email и имя, это не ошибка"""
    apple = FakeApple(credential=AppleCredential(identity_token="apple-jwt", user="001234.abcd"))
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    result = await broker.initiate_apple(role="doctor")

    assert result.is_ok
    assert result.assertion.provider == OAuthProvider.APPLE
    assert result.assertion.provider_token == "apple-jwt"
    assert result.assertion.subject_id == "001234.abcd"
    assert result.assertion.email is None
    assert result.assertion.full_name is None
    assert apple.scopes == ["FULL_NAME", "EMAIL"]


@pytest.mark.asyncio
async def test_apple_first_consent_builds_full_name(settings):
    apple = FakeApple(
        credential=AppleCredential(
            identity_token="apple-jwt",
            user="001234.abcd",
            email="anna@privaterelay.appleid.com",
            given_name=" Anna ",
            family_name="Petrova",
        )
    )
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    result = await broker.initiate_apple()

    assert result.assertion.full_name == "Anna Petrova"
    assert result.assertion.email == "anna@privaterelay.appleid.com"


@pytest.mark.asyncio
async def test_apple_no_identity_token(settings):
    apple = FakeApple(credential=AppleCredential(identity_token=None))
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    result = await broker.initiate_apple()

    assert result.failure_kind == FailureKind.NO_TOKEN_RETURNED


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["ERR_CANCELED", "ERR_REQUEST_CANCELED"])
async def test_apple_cancel_codes(settings, code):
    apple = FakeApple(error=AppleSignInError("The operation couldn't be completed", code=code))
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    result = await broker.initiate_apple()

    assert result.outcome == OAuthOutcome.CANCELLED
    assert result.message == "User cancelled Apple authentication"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message",
    ["The authorization attempt failed for an unknown reason", "Authorization Attempt Failed"],
)
async def test_apple_misconfigured(settings, message):
    apple = FakeApple(error=AppleSignInError(message, code="ERR_REQUEST_UNKNOWN"))
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    result = await broker.initiate_apple()

    assert result.failure_kind == FailureKind.CONFIGURATION_ERROR
    assert "not properly configured" in result.message


@pytest.mark.asyncio
async def test_apple_other_error(settings):
    apple = FakeApple(error=AppleSignInError("Network connection lost", code="ERR_REQUEST_FAILED"))
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    result = await broker.initiate_apple()

    assert result.failure_kind == FailureKind.PROVIDER_ERROR
    assert result.message == "Network connection lost"


@pytest.mark.asyncio
async def test_apple_capability_checked_once(settings):
    apple = FakeApple(credential=AppleCredential(identity_token="apple-jwt"))
    broker = OAuthBroker(settings=settings, presenter=FakePresenter(), apple=apple)

    assert await broker.supports_native_apple_sign_in()
    await broker.initiate_apple()
    await broker.initiate_apple()

    assert apple.availability_checks == 1
