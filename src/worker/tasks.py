"""In-memory карта задач с write-through зеркалированием в StateStore."""
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError

from src.exceptions import (
    CANCELLED_ERROR,
    RESTART_INTERRUPTED_ERROR,
    InvalidStateError,
    TaskNotFoundError,
)
from src.models.task import (
    IN_FLIGHT_STATUSES,
    TERMINAL_STATUSES,
    DesignTask,
    TaskStats,
    generate_batch_id,
    generate_task_id,
    parse_page_url,
)
from src.worker.events import EventBus
from src.worker.store import StateStore

TASKS_UPDATED = "TASKS_UPDATED"


class TaskStore:
    """
    Авторитетная карта task_id → DesignTask.

    Каждая мутация сначала применяется в памяти, затем вся карта пишется
    в StateStore, и только после этого уходит уведомление. Если запись
    упала, исключение пробрасывается, а карта в памяти остаётся —
    следующая мутация повторит зеркалирование целиком.
    """

    def __init__(self, store: StateStore, events: EventBus) -> None:
        self.store = store
        self.events = events
        self.tasks: dict[str, DesignTask] = {}
        self.queue: list[str] = []
        # batch_id → id участников в порядке добавления
        self.batches: dict[str, list[str]] = {}

    # ------------------------------------------------------------------
    # Загрузка и персистентность
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Загрузить задачи из хранилища. Битые записи пропускаются."""
        raw = await self.store.load_tasks()
        self.tasks = {}
        for task_id, record in raw.items():
            try:
                self.tasks[task_id] = DesignTask.model_validate(record)
            except ValidationError as e:
                logger.warning(f"[tasks] Skipping corrupted task record {task_id}: {e}")
        self.queue = []
        self.batches = {}
        logger.info(f"[tasks] Loaded {len(self.tasks)} tasks from store")

    async def recover(self) -> set[str]:
        """
        Восстановить очередь после рестарта процесса.

        running/analyzing задачи не перезапускаются — их вкладка браузера
        потеряна, а повторный прогон дал бы дублирующиеся отчёты. Они
        помечаются failed. pending возвращаются в очередь в порядке создания,
        членство батчей восстанавливается по batch_id.

        Возвращает batch_id, которые нужно перепроверить на готовность.
        """
        now = datetime.now(UTC)
        interrupted: list[str] = []
        for task_id, task in self.tasks.items():
            if task.status in IN_FLIGHT_STATUSES:
                self.tasks[task_id] = task.model_copy(update={
                    "status": "failed",
                    "error": RESTART_INTERRUPTED_ERROR,
                    "stage": "interrupted",
                    "completed_at": now,
                })
                interrupted.append(task_id)

        pending = [t for t in self.tasks.values() if t.status == "pending"]
        pending.sort(key=lambda t: t.created_at)
        self.queue = [t.id for t in pending]

        members_by_batch: dict[str, list[DesignTask]] = {}
        for task in sorted(self.tasks.values(), key=lambda t: t.created_at):
            if task.batch_id:
                members_by_batch.setdefault(task.batch_id, []).append(task)

        affected: set[str] = set()
        for batch_id, members in members_by_batch.items():
            is_open = any(m.status not in TERMINAL_STATUSES for m in members)
            was_interrupted = any(m.id in interrupted for m in members)
            if not is_open and not was_interrupted:
                continue
            self.batches[batch_id] = [m.id for m in members]
            if was_interrupted or any(m.status == "extracted" for m in members):
                affected.add(batch_id)

        if interrupted:
            logger.warning(f"[tasks] Marked {len(interrupted)} interrupted tasks as failed")
        logger.info(
            f"[tasks] Recovered queue: {len(self.queue)} pending, "
            f"{len(self.batches)} open batches"
        )
        await self.persist()
        return affected

    async def persist(self) -> None:
        """Зеркалировать всю карту в хранилище, затем уведомить подписчиков."""
        await self.store.save_tasks(
            {task_id: task.model_dump(mode="json") for task_id, task in self.tasks.items()}
        )
        self.notify()

    def notify(self) -> None:
        self.events.publish({"type": TASKS_UPDATED, "stats": self.stats().model_dump()})

    # ------------------------------------------------------------------
    # Создание
    # ------------------------------------------------------------------

    def _insert(
        self,
        url: str,
        domain: str,
        title: str,
        options: dict[str, Any],
        batch_id: str | None,
    ) -> str:
        task_id = generate_task_id()
        while task_id in self.tasks:
            task_id = generate_task_id()
        self.tasks[task_id] = DesignTask(
            id=task_id,
            url=url,
            domain=domain,
            title=title,
            options=dict(options),
            batch_id=batch_id,
            created_at=datetime.now(UTC),
        )
        self.queue.append(task_id)
        return task_id

    async def create_task(self, url: str, options: dict[str, Any] | None = None) -> str:
        """Создать pending-задачу и поставить в конец очереди."""
        domain, title = parse_page_url(url)
        task_id = self._insert(url, domain, title, options or {}, batch_id=None)
        await self.persist()
        logger.info(f"[tasks] Created task {task_id} for {url}")
        return task_id

    async def create_batch(
        self, urls: list[str], options: dict[str, Any] | None = None
    ) -> list[str]:
        """
        Создать задачи батча одной мутацией.
        Все URL валидируются до вставки — при ошибке не создаётся ни одной задачи.
        """
        if not urls:
            raise ValueError("Batch must contain at least one URL")
        parsed = [(url, *parse_page_url(url)) for url in urls]
        batch_id = generate_batch_id()
        task_ids = [
            self._insert(url, domain, title, options or {}, batch_id=batch_id)
            for url, domain, title in parsed
        ]
        # Членство регистрируется до первого await — воркер не увидит участника без батча
        self.batches[batch_id] = list(task_ids)
        await self.persist()
        logger.info(f"[tasks] Created batch {batch_id} with {len(task_ids)} tasks")
        return task_ids

    # ------------------------------------------------------------------
    # Чтение
    # ------------------------------------------------------------------

    def get(self, task_id: str) -> DesignTask:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def find(self, task_id: str) -> DesignTask | None:
        return self.tasks.get(task_id)

    def list_tasks(self) -> list[DesignTask]:
        """Задачи от новых к старым; при равном created_at — позже добавленная выше."""
        newest_inserted_first = list(reversed(self.tasks.values()))
        return sorted(newest_inserted_first, key=lambda t: t.created_at, reverse=True)

    def stats(self) -> TaskStats:
        stats = TaskStats(total=len(self.tasks))
        for task in self.tasks.values():
            if task.status == "pending":
                stats.pending += 1
            elif task.status in ("running", "analyzing"):
                stats.running += 1
            elif task.status == "completed":
                stats.completed += 1
            elif task.status == "failed":
                stats.failed += 1
        return stats

    def batch_members(self, batch_id: str) -> list[str] | None:
        members = self.batches.get(batch_id)
        return list(members) if members is not None else None

    def discard_batch(self, batch_id: str) -> None:
        self.batches.pop(batch_id, None)

    # ------------------------------------------------------------------
    # Мутации
    # ------------------------------------------------------------------

    async def mutate(self, task_id: str, **patch: Any) -> DesignTask:
        """Частичное обновление задачи + запись всей карты."""
        task = self.get(task_id)
        updated = task.model_copy(update=patch)
        self.tasks[task_id] = updated
        await self.persist()
        return updated

    async def mutate_many(self, task_ids: list[str], **patch: Any) -> None:
        """Одинаковый патч для нескольких задач одной записью."""
        for task_id in task_ids:
            task = self.tasks.get(task_id)
            if task is not None:
                self.tasks[task_id] = task.model_copy(update=patch)
        await self.persist()

    async def mutate_each(self, patches: dict[str, dict[str, Any]]) -> None:
        """Разные патчи для нескольких задач одной записью. Удалённые id пропускаются."""
        for task_id, patch in patches.items():
            task = self.tasks.get(task_id)
            if task is not None:
                self.tasks[task_id] = task.model_copy(update=patch)
        await self.persist()

    def _dequeue(self, task_id: str) -> bool:
        if task_id in self.queue:
            self.queue.remove(task_id)
            return True
        return False

    def _remove_from_batch(self, task: DesignTask) -> None:
        members = self.batches.get(task.batch_id) if task.batch_id else None
        if members is not None and task.id in members:
            members.remove(task.id)

    async def delete(self, task_id: str) -> DesignTask | None:
        """Удалить задачу. Неизвестный id — no-op. Возвращает удалённую задачу."""
        task = self.tasks.pop(task_id, None)
        if task is None:
            return None
        self._dequeue(task_id)
        self._remove_from_batch(task)
        await self.persist()
        logger.info(f"[tasks] Deleted task {task_id}")
        return task

    async def retry(self, task_id: str) -> DesignTask:
        """Вернуть завершённую задачу в pending и поставить в конец очереди."""
        task = self.get(task_id)
        if task.status not in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"Only failed or completed tasks can be retried (status: {task.status})"
            )
        self.tasks[task_id] = task.model_copy(update={
            "status": "pending",
            "progress": 0,
            "stage": "waiting for retry",
            "error": None,
            "result": None,
            "started_at": None,
            "completed_at": None,
        })
        self._dequeue(task_id)
        self.queue.append(task_id)
        await self.persist()
        logger.info(f"[tasks] Task {task_id} queued for retry")
        return self.tasks[task_id]

    async def edit_url(self, task_id: str, new_url: str) -> DesignTask:
        task = self.get(task_id)
        if task.status != "pending":
            raise InvalidStateError(
                f"Only pending tasks can be edited (status: {task.status})"
            )
        domain, title = parse_page_url(new_url)
        return await self.mutate(task_id, url=new_url, domain=domain, title=title)

    async def cancel(self, task_id: str) -> bool:
        """
        Отменить pending/running задачу. Для остальных статусов и
        неизвестных id — no-op. Возвращает True, если статус изменён.
        """
        task = self.tasks.get(task_id)
        if task is None or task.status not in ("pending", "running"):
            return False
        self._dequeue(task_id)
        self.tasks[task_id] = task.model_copy(update={
            "status": "failed",
            "error": CANCELLED_ERROR,
            "stage": "cancelled",
            "completed_at": datetime.now(UTC),
        })
        await self.persist()
        logger.info(f"[tasks] Task {task_id} cancelled")
        return True

    async def clear_completed(self) -> list[DesignTask]:
        """Удалить все completed задачи. Возвращает удалённые."""
        removed = [t for t in self.tasks.values() if t.status == "completed"]
        for task in removed:
            del self.tasks[task.id]
            self._remove_from_batch(task)
        await self.persist()
        logger.info(f"[tasks] Cleared {len(removed)} completed tasks")
        return removed
