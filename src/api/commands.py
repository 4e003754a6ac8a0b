"""Диспетчер сообщений control surface: dict на входе, dict на выходе, без исключений."""
from typing import Any

from loguru import logger
from pydantic import ValidationError

from src.api.schemas import (
    AddBatchTasksMessage,
    AddTaskMessage,
    AnalyzeSnapshotMessage,
    EditTaskUrlMessage,
    TaskIdMessage,
    control_message_adapter,
)
from src.exceptions import AnalysisError, TaskError
from src.worker.loop import TaskManager

MESSAGE_TYPES = frozenset({
    "ADD_TASK",
    "ADD_BATCH_TASKS",
    "GET_TASKS",
    "GET_STATS",
    "CLEAR_COMPLETED",
    "CANCEL_TASK",
    "RETRY_TASK",
    "DELETE_TASK",
    "EDIT_TASK_URL",
    "PAUSE_QUEUE",
    "RESUME_QUEUE",
    "GET_QUEUE_STATE",
    "ANALYZE_SNAPSHOT",
})


def _fail(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    # Первый элемент loc у discriminated union — сам type сообщения
    location = ".".join(str(p) for p in first["loc"] if p not in MESSAGE_TYPES)
    return f"Invalid message: {location}: {first['msg']}"


async def handle_command(manager: TaskManager, message: dict[str, Any]) -> dict[str, Any]:
    """
    Выполнить одну команду.
    Ошибки домена, валидации и хранилища превращаются в {"success": False, "error": ...}.
    """
    msg_type = message.get("type") if isinstance(message, dict) else None
    if msg_type not in MESSAGE_TYPES:
        return _fail(f"Unknown message type: {msg_type}")

    try:
        parsed = control_message_adapter.validate_python(message)
    except ValidationError as e:
        return _fail(_validation_message(e))

    try:
        return await _dispatch(manager, parsed)
    except (TaskError, AnalysisError, ValueError, TimeoutError) as e:
        logger.info(f"[commands] {msg_type} rejected: {e}")
        return _fail(str(e))
    except Exception as e:
        logger.exception(f"[commands] {msg_type} crashed: {e}")
        return _fail(str(e) or type(e).__name__)


async def _dispatch(manager: TaskManager, msg: Any) -> dict[str, Any]:
    tasks = manager.tasks

    if isinstance(msg, AddTaskMessage):
        task_id = await manager.add_task(msg.url, msg.options)
        return {"success": True, "task_id": task_id}

    if isinstance(msg, AddBatchTasksMessage):
        task_ids = await manager.add_batch(msg.urls, msg.options)
        return {"success": True, "task_ids": task_ids}

    if isinstance(msg, TaskIdMessage):
        if msg.type == "CANCEL_TASK":
            cancelled = await manager.cancel_task(msg.task_id)
            return {"success": True, "cancelled": cancelled}
        if msg.type == "RETRY_TASK":
            await manager.retry_task(msg.task_id)
            return {"success": True}
        deleted = await manager.delete_task(msg.task_id)
        return {"success": True, "deleted": deleted}

    if isinstance(msg, EditTaskUrlMessage):
        task = await manager.edit_task_url(msg.task_id, msg.new_url)
        return {"success": True, "task": task.model_dump(mode="json")}

    if isinstance(msg, AnalyzeSnapshotMessage):
        snapshot = msg.snapshot
        if snapshot is None:
            if not msg.snapshot_id:
                return _fail("ANALYZE_SNAPSHOT requires snapshot or snapshotId")
            snapshot = await manager.store.load_snapshot(msg.snapshot_id)
            if snapshot is None:
                return _fail(f"Snapshot not found: {msg.snapshot_id}")
        analysis = await manager.analyze_snapshot(snapshot)
        return {"success": True, "markdown": analysis.markdown, "format": analysis.format}

    # Остались команды без аргументов (SimpleMessage)
    if msg.type == "GET_TASKS":
        return {"success": True, "tasks": [t.model_dump(mode="json") for t in tasks.list_tasks()]}
    if msg.type == "GET_STATS":
        return {"success": True, "stats": tasks.stats().model_dump()}
    if msg.type == "CLEAR_COMPLETED":
        removed = await manager.clear_completed()
        return {"success": True, "removed": removed}
    if msg.type == "PAUSE_QUEUE":
        await manager.pause()
        return {"success": True}
    if msg.type == "RESUME_QUEUE":
        await manager.resume()
        return {"success": True}
    return {"success": True, "state": manager.queue_state().model_dump()}
