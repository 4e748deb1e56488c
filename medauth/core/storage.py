"""Хранилища bearer токена между перезапусками клиента."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from medauth.constants import TOKEN_FILE_MODE
from medauth.core.logging_config import mask_token

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenStore(Protocol):
    """Контракт хранилища токена: get/set (None очищает)/clear."""

    def get(self) -> Optional[str]:
        ...

    def set(self, token: Optional[str]) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryTokenStore:
    """Токен в памяти процесса (тесты, короткоживущие клиенты)."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token or None
        self._lock = threading.Lock()

    def get(self) -> Optional[str]:
        with self._lock:
            return self._token

    def set(self, token: Optional[str]) -> None:
        with self._lock:
            self._token = token or None

    def clear(self) -> None:
        self.set(None)


class FileTokenStore:
    """
    Токен в JSON файле с правами 0600.

    Запись атомарная: сначала временный файл, затем замена.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def get(self) -> Optional[str]:
        """
        Прочитать токен из файла.

        Returns:
            Токен или None если файла нет или он поврежден
        """
        with self._lock:
            if not self.path.exists():
                logger.info("[GET_TOKEN] Token file not found")
                return None
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"[GET_TOKEN] Failed to read token file {self.path}: {e}")
                return None

        token = payload.get("token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            logger.warning("[GET_TOKEN] Token file has no token")
            return None
        logger.info(f"[GET_TOKEN] Loaded token {mask_token(token)}")
        return token

    def set(self, token: Optional[str]) -> None:
        """
        Сохранить токен. None удаляет файл.

        Raises:
            OSError: Если запись не удалась
        """
        if not token:
            self.clear()
            return

        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, TOKEN_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump({"token": token}, fh)
            os.replace(tmp_path, self.path)
        logger.info(f"[SAVE_TOKEN] Token saved {mask_token(token)}")

    def clear(self) -> None:
        """Удалить файл токена."""
        with self._lock:
            try:
                self.path.unlink()
                logger.info("[REMOVE_TOKEN] Token file removed")
            except FileNotFoundError:
                logger.debug("[REMOVE_TOKEN] Token file already absent")
