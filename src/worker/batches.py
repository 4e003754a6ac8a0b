"""Групповой анализ батчей: один AI-вызов, когда все участники извлечены."""
import asyncio
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from src.ai.analyzer import StyleAnalyzer
from src.config import Settings
from src.database import sanitize_error
from src.exceptions import AnalysisError
from src.models.snapshot import Snapshot
from src.models.task import SETTLED_STATUSES
from src.reports import ReportWriter
from src.worker.store import StateStore
from src.worker.tasks import TaskStore


class BatchGrouper:
    """
    Следит, какие участники батча уже «осели» (extracted/completed/failed),
    и запускает групповой анализ ровно один раз на батч.

    Учёт ведётся инкрементально: TaskManager сообщает о каждом переходе
    участника через mark_settled/unsettle/forget, без пересканирования карты.
    """

    def __init__(
        self,
        tasks: TaskStore,
        store: StateStore,
        analyzer: StyleAnalyzer,
        reports: ReportWriter,
        settings: Settings,
    ) -> None:
        self.tasks = tasks
        self.store = store
        self.analyzer = analyzer
        self.reports = reports
        self.settings = settings
        self._settled: dict[str, set[str]] = {}
        self._fired: set[str] = set()

    def rebuild(self) -> None:
        """Восстановить settled-множества по статусам после загрузки задач."""
        self._settled = {}
        self._fired = set()
        for batch_id, members in self.tasks.batches.items():
            self._settled[batch_id] = {
                m for m in members
                if (task := self.tasks.find(m)) is not None and task.status in SETTLED_STATUSES
            }

    def mark_settled(self, task_id: str) -> str | None:
        """Отметить участника осевшим. Возвращает batch_id или None для одиночной задачи."""
        task = self.tasks.find(task_id)
        if task is None or not task.batch_id or task.batch_id not in self.tasks.batches:
            return None
        # Участник, ушедший на retry во время выполнения, снова pending и держит батч
        if task.status not in SETTLED_STATUSES:
            return None
        self._settled.setdefault(task.batch_id, set()).add(task_id)
        return task.batch_id

    def unsettle(self, task_id: str) -> None:
        """Участник ушёл на retry — снова держит батч."""
        task = self.tasks.find(task_id)
        if task is not None and task.batch_id in self._settled:
            self._settled[task.batch_id].discard(task_id)

    def forget(self, task_id: str, batch_id: str) -> None:
        settled = self._settled.get(batch_id)
        if settled is not None:
            settled.discard(task_id)

    def is_ready(self, batch_id: str) -> bool:
        members = self.tasks.batch_members(batch_id)
        if members is None:
            return False
        return set(members) <= self._settled.get(batch_id, set())

    async def on_extraction_settled(self, task_id: str) -> None:
        batch_id = self.mark_settled(task_id)
        if batch_id is not None:
            await self.check_batch(batch_id)

    async def check_batch(self, batch_id: str) -> None:
        """Запустить групповой анализ, если батч готов и ещё не запускался."""
        if batch_id in self._fired or not self.is_ready(batch_id):
            return
        self._fired.add(batch_id)
        try:
            await self.run_group_analysis(batch_id)
        finally:
            self.tasks.discard_batch(batch_id)
            self._settled.pop(batch_id, None)
            self._fired.discard(batch_id)

    async def _load_snapshots(self, task_ids: list[str]) -> list[Snapshot]:
        snapshots: list[Snapshot] = []
        for task_id in task_ids:
            task = self.tasks.find(task_id)
            if task is None or task.result is None:
                continue
            snapshot = await self.store.load_snapshot(task.result.snapshot_id)
            if snapshot is None:
                logger.warning(f"[batches] Snapshot {task.result.snapshot_id} of {task_id} is missing")
                continue
            snapshots.append(snapshot)
        return snapshots

    async def run_group_analysis(self, batch_id: str) -> None:
        """
        Проанализировать extracted-участников одним вызовом.
        failed-участники во вход не попадают. Ошибка анализа мягкая:
        все участники всё равно становятся completed, с analysis_error.
        """
        members = self.tasks.batch_members(batch_id) or []
        extracted = [
            m for m in members
            if (task := self.tasks.find(m)) is not None and task.status == "extracted"
        ]
        if not extracted:
            logger.info(f"[batches] Batch {batch_id}: no extracted members, skipping analysis")
            return

        logger.info(f"[batches] Batch {batch_id}: analyzing {len(extracted)}/{len(members)} pages")
        await self.tasks.mutate_many(
            extracted, status="analyzing", stage="batch AI analysis", progress=92,
        )

        try:
            snapshots = await self._load_snapshots(extracted)
            if not snapshots:
                raise AnalysisError("No snapshots available for batch analysis")
            analysis = await asyncio.wait_for(
                self.analyzer.analyze_batch(snapshots),
                timeout=self.settings.analysis_timeout,
            )
            report_path = str(self.reports.write_batch_report(analysis.markdown, batch_id))
        except Exception as e:
            if isinstance(e, TimeoutError):
                message = f"Analysis timed out after {self.settings.analysis_timeout:g}s"
            else:
                message = sanitize_error(str(e)) or type(e).__name__
            logger.error(f"[batches] Batch {batch_id} analysis failed: {message}")
            await self.tasks.mutate_each({
                task_id: self._completed_patch(
                    task_id,
                    stage=f"batch analysis failed: {message}",
                    analysis_error=message,
                )
                for task_id in extracted
            })
            return

        await self.tasks.mutate_each({
            task_id: self._completed_patch(
                task_id,
                stage="completed",
                has_analysis=True,
                analysis_format=analysis.format,
                report_path=report_path,
            )
            for task_id in extracted
        })
        logger.info(f"[batches] Batch {batch_id} completed, report: {report_path}")

    def _completed_patch(self, task_id: str, stage: str, **result_fields: Any) -> dict[str, Any]:
        task = self.tasks.find(task_id)
        result = task.result.model_copy(update=result_fields) if task and task.result else None
        return {
            "status": "completed",
            "progress": 100,
            "stage": stage,
            "result": result,
            "completed_at": datetime.now(UTC),
        }
