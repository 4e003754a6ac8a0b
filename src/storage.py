"""Supabase Storage для снапшотов страниц (html/css/ассеты)."""
import json

from loguru import logger
from pydantic import ValidationError
from supabase import Client

from src.database import run_in_thread
from src.models.snapshot import Snapshot

BUCKET_NAME = "snapshots"


def snapshot_path(snapshot_id: str) -> str:
    return f"{snapshot_id}.json"


async def save_snapshot(db: Client, snapshot: Snapshot) -> None:
    """Сохранить снапшот (upsert по id — повторная запись дописывает отчёт)."""
    data = snapshot.model_dump_json().encode()
    await run_in_thread(
        db.storage.from_(BUCKET_NAME).upload,
        snapshot_path(snapshot.id),
        data,
        {"content-type": "application/json", "upsert": "true"},
    )
    logger.debug(f"[storage] Snapshot saved: {snapshot.id} ({len(data)} bytes)")


async def load_snapshot(db: Client, snapshot_id: str) -> Snapshot | None:
    """
    Загрузить снапшот из Storage.
    Нет файла или битый JSON → None.
    """
    try:
        data = await run_in_thread(
            db.storage.from_(BUCKET_NAME).download, snapshot_path(snapshot_id)
        )
    except Exception as e:
        logger.debug(f"[storage] No snapshot {snapshot_id}: {e}")
        return None

    try:
        return Snapshot.model_validate(json.loads(data))
    except (ValueError, ValidationError) as e:
        logger.warning(f"[storage] Corrupted snapshot {snapshot_id}: {e}")
        return None


async def delete_snapshot(db: Client, snapshot_id: str) -> None:
    """Удалить снапшот. Отсутствующий файл — не ошибка."""
    try:
        await run_in_thread(
            db.storage.from_(BUCKET_NAME).remove, [snapshot_path(snapshot_id)]
        )
    except Exception as e:
        logger.error(f"[storage] Failed to delete snapshot {snapshot_id}: {e}")
