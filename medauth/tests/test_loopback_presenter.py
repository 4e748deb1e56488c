"""
Тесты LoopbackConsentPresenter: локальный HTTP сервер для OAuth redirect

Браузер заменен функцией, которая сама обращается к callback URL.
"""

import socket
import threading
from typing import List, Optional

import pytest
import requests

from medauth.services.oauth import (
    CONSENT_CANCEL,
    CONSENT_DISMISS,
    CONSENT_ERROR,
    CONSENT_SUCCESS,
    LoopbackConsentPresenter,
)

AUTH_URL = "https://accounts.example.com/o/oauth2/v2/auth?client_id=web-client-id"


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeBrowser:
    """Открывает указанные URL в фоновом потоке, записывает статусы ответов"""

    def __init__(self, urls: List[str]):
        self.urls = urls
        self.opened: Optional[str] = None
        self.statuses: List[int] = []
        self._thread: Optional[threading.Thread] = None

    def __call__(self, url: str) -> bool:
        self.opened = url
        self._thread = threading.Thread(target=self._visit, daemon=True)
        self._thread.start()
        return True

    def _visit(self) -> None:
        with requests.Session() as session:
            session.trust_env = False
            for url in self.urls:
                response = session.get(url, timeout=5)
                self.statuses.append(response.status_code)

    def join(self) -> None:
        if self._thread is not None:
            self._thread.join(timeout=5)


@pytest.fixture
def redirect_uri() -> str:
    return f"http://127.0.0.1:{free_port()}/callback"


@pytest.mark.asyncio
async def test_captures_redirect_params(redirect_uri):
    browser = FakeBrowser([f"{redirect_uri}?code=auth-code&state=xyz"])
    presenter = LoopbackConsentPresenter(timeout=10, open_browser=browser)

    result = await presenter.present(AUTH_URL, redirect_uri)
    browser.join()

    assert browser.opened == AUTH_URL
    assert result.type == CONSENT_SUCCESS
    assert result.params == {"code": "auth-code", "state": "xyz"}
    assert browser.statuses == [200]


@pytest.mark.asyncio
async def test_wrong_path_gets_404_and_keeps_waiting(redirect_uri):
    base = redirect_uri.rsplit("/", 1)[0]
    browser = FakeBrowser([f"{base}/favicon.ico", f"{redirect_uri}?code=auth-code&state=xyz"])
    presenter = LoopbackConsentPresenter(timeout=10, open_browser=browser)

    result = await presenter.present(AUTH_URL, redirect_uri)
    browser.join()

    assert browser.statuses == [404, 200]
    assert result.type == CONSENT_SUCCESS
    assert result.params["code"] == "auth-code"


@pytest.mark.asyncio
async def test_access_denied_is_cancel(redirect_uri):
    browser = FakeBrowser([f"{redirect_uri}?error=access_denied&state=xyz"])
    presenter = LoopbackConsentPresenter(timeout=10, open_browser=browser)

    result = await presenter.present(AUTH_URL, redirect_uri)
    browser.join()

    assert result.type == CONSENT_CANCEL


@pytest.mark.asyncio
async def test_provider_error_in_redirect(redirect_uri):
    browser = FakeBrowser([f"{redirect_uri}?error=invalid_request&error_description=Missing+scope"])
    presenter = LoopbackConsentPresenter(timeout=10, open_browser=browser)

    result = await presenter.present(AUTH_URL, redirect_uri)
    browser.join()

    assert result.type == CONSENT_ERROR
    assert result.error == "Missing scope"


@pytest.mark.asyncio
async def test_no_redirect_before_timeout_is_dismiss(redirect_uri):
    browser = FakeBrowser([])
    presenter = LoopbackConsentPresenter(timeout=1, open_browser=browser)

    result = await presenter.present(AUTH_URL, redirect_uri)

    assert result.type == CONSENT_DISMISS
    assert result.params == {}


@pytest.mark.asyncio
async def test_browser_not_opened(redirect_uri):
    presenter = LoopbackConsentPresenter(timeout=10, open_browser=lambda url: False)

    result = await presenter.present(AUTH_URL, redirect_uri)

    assert result.type == CONSENT_ERROR
    assert result.error == "Could not open a browser for sign-in"
