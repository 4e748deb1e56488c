"""
Конфигурация структурированного логирования
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Стандартные атрибуты LogRecord, которые не попадают в JSON как extra
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)

_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_SECRET_EXTRA_KEYS = {"token", "password", "new_password", "provider_token", "code_verifier"}


def mask_token(token: Optional[str]) -> str:
    """
    Маскирует токен для логов: выводится только длина.

    Args:
        token: Токен или None

    Returns:
        Строка вида "PRESENT (len=32)" или "MISSING"
    """
    if not token:
        return "MISSING"
    return f"PRESENT (len={len(token)})"


class TokenRedactingFilter(logging.Filter):
    """Убирает bearer токены и секреты из сообщений и extra полей"""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str) and "bearer" in record.msg.lower():
            record.msg = _BEARER_PATTERN.sub(r"\1[REDACTED]", record.msg)
        for key in _SECRET_EXTRA_KEYS:
            if key in record.__dict__ and record.__dict__[key]:
                record.__dict__[key] = "[REDACTED]"
        return True


class JSONFormatter(logging.Formatter):
    """
    Форматтер для структурированных JSON логов.

    Дополнительные поля передаются через extra и попадают в JSON как есть.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Форматтер с цветным выводом для консоли (для разработки).
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Копия записи, чтобы цвет не попал в другие handlers
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(colored.levelname, self.RESET)
        colored.levelname = f"{color}{colored.levelname}{self.RESET}"
        return super().format(colored)


def setup_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Настройка логирования клиента.

    Args:
        level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Использовать JSON формат
        log_file: Путь к файлу логов (опционально, всегда JSON)

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logging.getLogger(__name__).info("Login started", extra={"email": "doc@x.com"})
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    redacting_filter = TokenRedactingFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.addFilter(redacting_filter)

    if json_logs:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ColoredFormatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(redacting_filter)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Внешние библиотеки
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": level,
            "json_logs": json_logs,
            "log_file": log_file,
        },
    )
