"""Single-flight блокировки классов операций."""

import logging
from contextlib import contextmanager
from typing import Iterator

from medauth.core.exceptions import BusyError

logger = logging.getLogger(__name__)


class OperationLock:
    """
    Single-flight guard для класса операций.

    Вторая операция того же класса не ставится в очередь, а сразу
    отклоняется с BusyError. Захват не содержит await, поэтому в рамках
    одного event loop проверка и установка флага атомарны.
    """

    def __init__(self, name: str):
        self.name = name
        self._held = False

    def locked(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False

    @contextmanager
    def hold(self) -> Iterator[None]:
        """
        Захватывает lock на время блока.

        Raises:
            BusyError: Если операция этого класса уже выполняется
        """
        if not self.try_acquire():
            logger.warning(f"Operation '{self.name}' rejected: already in flight")
            raise BusyError(self.name)
        try:
            yield
        finally:
            self.release()
