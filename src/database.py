"""Операции с Supabase для состояния очереди (key-value таблица queue_state)."""
import asyncio
import re
from typing import Any

from loguru import logger
from supabase import Client

STATE_TABLE = "queue_state"
TASKS_KEY = "tasks"
PAUSED_KEY = "queue_paused"


async def run_in_thread(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Выполнить синхронный вызов Supabase в отдельном потоке."""
    return await asyncio.to_thread(func, *args, **kwargs)


def sanitize_error(error: str) -> str:
    """Убрать потенциальные креденшалы из сообщения об ошибке."""
    return re.sub(r"://[^@\s/]+@", "://***:***@", error)


async def load_state_value(db: Client, key: str) -> Any:
    """Прочитать значение по ключу. Нет строки → None."""
    result = await run_in_thread(
        db.table(STATE_TABLE).select("value").eq("key", key).limit(1).execute
    )
    if not result.data:
        return None
    return result.data[0].get("value")


async def save_state_value(db: Client, key: str, value: Any) -> None:
    """
    Upsert значения по ключу.
    Ошибка пробрасывается вызывающему — состояние в памяти остаётся,
    следующая запись повторит зеркалирование целиком.
    """
    await run_in_thread(
        db.table(STATE_TABLE).upsert(
            {"key": key, "value": value}, on_conflict="key"
        ).execute
    )


async def load_task_map(db: Client) -> dict[str, dict[str, Any]]:
    """Загрузить карту задач task_id → запись."""
    value = await load_state_value(db, TASKS_KEY)
    if not isinstance(value, dict):
        if value is not None:
            logger.warning(f"[database] Unexpected {TASKS_KEY} payload: {type(value).__name__}")
        return {}
    return value


async def save_task_map(db: Client, tasks: dict[str, dict[str, Any]]) -> None:
    """Записать всю карту задач одной строкой."""
    await save_state_value(db, TASKS_KEY, tasks)


async def load_queue_paused(db: Client) -> bool:
    return bool(await load_state_value(db, PAUSED_KEY))


async def save_queue_paused(db: Client, paused: bool) -> None:
    await save_state_value(db, PAUSED_KEY, paused)
