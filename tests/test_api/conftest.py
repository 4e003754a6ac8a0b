"""Общие фикстуры и хелперы для тестов API."""
from unittest.mock import MagicMock

from src.models.task import QueueState, TaskStats
from src.worker.events import EventBus


def make_settings(api_key: str = "sk-test-key"):
    """Создать мок Settings с API-ключом."""
    settings = MagicMock()
    settings.control_api_key.get_secret_value.return_value = api_key
    return settings


def make_manager(paused: bool = False, queue_length: int = 0, total: int = 0):
    """Мок TaskManager — для тестов транспорта, без очереди."""
    manager = MagicMock()
    manager.queue_state.return_value = QueueState(
        paused=paused, running=False, queue_length=queue_length,
    )
    manager.tasks.stats.return_value = TaskStats(total=total, pending=queue_length)
    manager.events = EventBus()
    return manager


def make_app(manager=None, settings=None):
    """Создать FastAPI app с моками."""
    from src.api.app import create_app

    return create_app(
        manager=manager or make_manager(),
        settings=settings or make_settings(),
    )


# Общий заголовок авторизации
AUTH_HEADERS = {"Authorization": "Bearer sk-test-key"}
