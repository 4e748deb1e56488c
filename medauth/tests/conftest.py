"""
Общие фикстуры для тестов клиента аутентификации
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from medauth.api_client import AuthAPIClient
from medauth.config import Settings, get_settings
from medauth.core.storage import MemoryTokenStore
from medauth.services.oauth import OAuthBroker
from medauth.services.session_manager import SessionManager
from medauth.tests.factories import make_auth


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        api_url="http://api.test/api",
        client_platform="web",
        google_web_client_id="web-client-id",
        google_redirect_uri="http://127.0.0.1:8765/callback",
        token_file=tmp_path / "token.json",
    )


@pytest.fixture
def api() -> MagicMock:
    return MagicMock(spec=AuthAPIClient)


@pytest.fixture
def store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def broker() -> MagicMock:
    mock = MagicMock(spec=OAuthBroker)
    mock.initiate = AsyncMock()
    return mock


@pytest.fixture
def manager(api, store, broker, settings) -> SessionManager:
    return SessionManager(api=api, token_store=store, broker=broker, settings=settings)


@pytest_asyncio.fixture
async def signed_in_manager(manager, api, store) -> SessionManager:
    """Менеджер с активной сессией doc@x.com / tok123"""
    api.login.return_value = make_auth()
    result = await manager.login("doc@x.com", "secret123")
    assert result.success
    api.reset_mock()
    return manager
