"""Интерфейсы браузера и экстрактора, с которыми работает TaskManager."""
from typing import Any, Protocol

from src.models.snapshot import Snapshot


class BrowserSession(Protocol):
    """Headless-браузер: по одной изолированной вкладке на задачу."""

    async def open_page(self, url: str) -> Any:
        """Открыть вкладку и начать навигацию. Возвращает хэндл страницы."""
        ...

    async def wait_for_load(self, page: Any, timeout: float) -> None:
        """Дождаться загрузки. При превышении timeout — PageLoadTimeoutError."""
        ...

    async def close_page(self, page: Any) -> None:
        ...

    async def close(self) -> None:
        ...


class PageExtractor(Protocol):
    """Извлечение снапшота из уже загруженной страницы."""

    async def extract(self, page: Any, options: dict[str, Any]) -> Snapshot:
        ...
