"""
Централизованная конфигурация клиента
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

from medauth.constants import DEFAULT_API_TIMEOUT


class Settings(BaseSettings):
    """Настройки клиента с валидацией через Pydantic"""

    # API
    api_url: str = "http://localhost:8000/api"
    api_timeout: int = DEFAULT_API_TIMEOUT

    # Платформа клиента (определяет Google client id)
    client_platform: str = "web"

    # Google OAuth
    google_ios_client_id: Optional[str] = None
    google_android_client_id: Optional[str] = None
    google_web_client_id: Optional[str] = None
    google_redirect_uri: str = "http://127.0.0.1:8765/callback"
    google_discovery_url: str = "https://accounts.google.com/.well-known/openid-configuration"

    # Включение OAuth входа (Google/Apple)
    oauth_enabled: bool = True

    # Хранилище токена
    token_file: Path = Path.home() / ".medauth" / "token.json"

    # Логирование
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    def google_client_id(self) -> Optional[str]:
        """Возвращает Google client id для текущей платформы"""
        platform = self.client_platform.lower().strip()
        if platform == "ios":
            client_id = self.google_ios_client_id
        elif platform == "android":
            client_id = self.google_android_client_id
        else:
            client_id = self.google_web_client_id
        return (client_id or "").strip() or None


@lru_cache()
def get_settings() -> Settings:
    """Возвращает синглтон настроек"""
    return Settings()
