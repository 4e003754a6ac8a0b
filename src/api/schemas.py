"""Pydantic-схемы сообщений control surface."""
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from src.models.snapshot import Snapshot


class _Message(BaseModel):
    # Клиенты шлют camelCase (taskId, newUrl) — принимаем оба варианта
    model_config = ConfigDict(populate_by_name=True)


class AddTaskMessage(_Message):
    type: Literal["ADD_TASK"]
    url: str
    options: dict[str, Any] = {}


class AddBatchTasksMessage(_Message):
    """URL передаются как есть: каждый валидирует TaskStore, дубликаты — отдельные задачи."""

    type: Literal["ADD_BATCH_TASKS"]
    urls: list[str] = Field(min_length=1, max_length=100)
    options: dict[str, Any] = {}


class TaskIdMessage(_Message):
    type: Literal["CANCEL_TASK", "RETRY_TASK", "DELETE_TASK"]
    task_id: str = Field(alias="taskId")


class EditTaskUrlMessage(_Message):
    type: Literal["EDIT_TASK_URL"]
    task_id: str = Field(alias="taskId")
    new_url: str = Field(alias="newUrl")


class SimpleMessage(_Message):
    type: Literal[
        "GET_TASKS",
        "GET_STATS",
        "CLEAR_COMPLETED",
        "PAUSE_QUEUE",
        "RESUME_QUEUE",
        "GET_QUEUE_STATE",
    ]


class AnalyzeSnapshotMessage(_Message):
    """Снапшот целиком или id уже сохранённого."""

    type: Literal["ANALYZE_SNAPSHOT"]
    snapshot: Snapshot | None = None
    snapshot_id: str | None = Field(default=None, alias="snapshotId")


ControlMessage = Annotated[
    AddTaskMessage
    | AddBatchTasksMessage
    | TaskIdMessage
    | EditTaskUrlMessage
    | SimpleMessage
    | AnalyzeSnapshotMessage,
    Field(discriminator="type"),
]

control_message_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)


class HealthResponse(BaseModel):
    """Ответ healthcheck."""

    status: str
    paused: bool
    running: bool
    queue_length: int
    tasks_total: int
    subscribers: int
