"""Pydantic-модели задачи извлечения стиля и состояния очереди."""
import random
import string
import time
from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from src.exceptions import InvalidUrlError

TaskStatus = Literal["pending", "running", "extracted", "analyzing", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
# Статусы, при которых участник батча больше не держит групповой анализ
SETTLED_STATUSES: frozenset[str] = frozenset({"extracted", "completed", "failed"})
IN_FLIGHT_STATUSES: frozenset[str] = frozenset({"running", "analyzing"})


def _random_suffix(length: int) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def generate_task_id() -> str:
    """task_<ms>_<9 символов> — уникален в пределах процесса."""
    return f"task_{int(time.time() * 1000)}_{_random_suffix(9)}"


def generate_batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{_random_suffix(6)}"


def generate_snapshot_id() -> str:
    return f"snapshot_{int(time.time() * 1000)}_{_random_suffix(9)}"


def parse_page_url(url: str) -> tuple[str, str]:
    """
    Провалидировать URL страницы.
    Возвращает (domain, title), где title — path страницы.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        raise InvalidUrlError(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise InvalidUrlError(url)
    return parts.hostname, parts.path or "/"


class TaskResult(BaseModel):
    """Сводка результата — ссылка на снапшот, без самого снапшота."""

    snapshot_id: str
    size: int
    has_analysis: bool = False
    analysis_format: str | None = None
    analysis_error: str | None = None
    report_path: str | None = None
    html_path: str | None = None
    export_error: str | None = None


class DesignTask(BaseModel):
    """Задача: извлечь одну страницу и (опционально) проанализировать её стиль."""

    id: str
    url: str
    domain: str
    title: str
    options: dict[str, Any] = {}
    status: TaskStatus = "pending"
    progress: int = Field(default=0, ge=0, le=100)
    stage: str = "waiting in queue"
    error: str | None = None
    result: TaskResult | None = None
    batch_id: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class TaskStats(BaseModel):
    """Счётчики задач по статусам. running включает analyzing."""

    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0


class QueueState(BaseModel):
    """Снимок состояния очереди для control surface."""

    paused: bool
    running: bool
    queue_length: int
    current_task_id: str | None = None
