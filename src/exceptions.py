"""Исключения очереди задач, экстрактора и анализатора."""

RESTART_INTERRUPTED_ERROR = "Task interrupted by service restart"
CANCELLED_ERROR = "Cancelled by user"


class TaskError(Exception):
    """Общая ошибка очереди задач."""


class InvalidUrlError(TaskError):
    """URL не парсится или не http(s) — задача не создаётся."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Invalid URL: {url}")


class InvalidStateError(TaskError):
    """Операция недопустима для текущего статуса задачи."""


class TaskNotFoundError(TaskError):
    """Задачи с таким id нет."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class PageLoadTimeoutError(TaskError):
    """Страница не загрузилась за отведённое время."""


class CommunicationError(TaskError):
    """Скрипт извлечения на странице недоступен или не ответил."""


class ExtractionError(TaskError):
    """Скрипт извлечения отработал, но вернул ошибку."""


class TaskAbortedError(TaskError):
    """Задача удалена или отменена во время выполнения."""


class AnalysisError(Exception):
    """Ошибка AI-анализа — мягкая, задача всё равно завершается."""


class AnalysisUnavailableError(AnalysisError):
    """Не настроен ключ/модель AI-провайдера."""
