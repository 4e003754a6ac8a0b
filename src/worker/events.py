"""Best-effort шина событий для обновления UI.

Доставка не гарантируется: событие кладётся в очередь каждого подписчика
через put_nowait, переполненные очереди событие теряют. Логика задач
не должна зависеть от того, дошло ли уведомление.
"""
import asyncio
from typing import Any

from loguru import logger

SUBSCRIBER_QUEUE_SIZE = 100


class EventBus:
    """Fan-out событий всем подписчикам."""

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    def publish(self, event: dict[str, Any]) -> None:
        """Разослать событие. Никогда не бросает исключений."""
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug(f"[events] Subscriber queue full, dropping {event.get('type')}")
