"""Персистентное хранилище очереди: состояние задач + снапшоты."""
import copy
from typing import Any, Protocol

from supabase import Client

from src.database import load_queue_paused, load_task_map, save_queue_paused, save_task_map
from src.models.snapshot import Snapshot
from src.storage import delete_snapshot, load_snapshot, save_snapshot


class StateStore(Protocol):
    """Контракт персистентности, от которого зависит TaskManager."""

    async def load_tasks(self) -> dict[str, dict[str, Any]]:
        ...

    async def save_tasks(self, tasks: dict[str, dict[str, Any]]) -> None:
        ...

    async def load_paused(self) -> bool:
        ...

    async def save_paused(self, paused: bool) -> None:
        ...

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        ...

    async def load_snapshot(self, snapshot_id: str) -> Snapshot | None:
        ...

    async def delete_snapshot(self, snapshot_id: str) -> None:
        ...


class SupabaseStateStore:
    """Состояние в таблице queue_state, снапшоты в бакете snapshots."""

    def __init__(self, db: Client) -> None:
        self.db = db

    async def load_tasks(self) -> dict[str, dict[str, Any]]:
        return await load_task_map(self.db)

    async def save_tasks(self, tasks: dict[str, dict[str, Any]]) -> None:
        await save_task_map(self.db, tasks)

    async def load_paused(self) -> bool:
        return await load_queue_paused(self.db)

    async def save_paused(self, paused: bool) -> None:
        await save_queue_paused(self.db, paused)

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        await save_snapshot(self.db, snapshot)

    async def load_snapshot(self, snapshot_id: str) -> Snapshot | None:
        return await load_snapshot(self.db, snapshot_id)

    async def delete_snapshot(self, snapshot_id: str) -> None:
        await delete_snapshot(self.db, snapshot_id)


class MemoryStateStore:
    """
    Хранилище в памяти процесса — для разовых запусков CLI без Supabase.
    Данные копируются на записи и чтении, как при настоящей сериализации.
    """

    def __init__(
        self,
        tasks: dict[str, dict[str, Any]] | None = None,
        paused: bool = False,
    ) -> None:
        self.tasks: dict[str, dict[str, Any]] = copy.deepcopy(tasks or {})
        self.paused = paused
        self.snapshots: dict[str, str] = {}

    async def load_tasks(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self.tasks)

    async def save_tasks(self, tasks: dict[str, dict[str, Any]]) -> None:
        self.tasks = copy.deepcopy(tasks)

    async def load_paused(self) -> bool:
        return self.paused

    async def save_paused(self, paused: bool) -> None:
        self.paused = paused

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        self.snapshots[snapshot.id] = snapshot.model_dump_json()

    async def load_snapshot(self, snapshot_id: str) -> Snapshot | None:
        raw = self.snapshots.get(snapshot_id)
        if raw is None:
            return None
        return Snapshot.model_validate_json(raw)

    async def delete_snapshot(self, snapshot_id: str) -> None:
        self.snapshots.pop(snapshot_id, None)


def create_state_store(db: Client | None) -> StateStore:
    """Supabase, если клиент есть, иначе хранилище в памяти."""
    if db is None:
        return MemoryStateStore()
    return SupabaseStateStore(db)
