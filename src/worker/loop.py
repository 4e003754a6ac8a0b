"""TaskManager — однопоточный самоосушающийся цикл очереди извлечения."""
import asyncio
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from src.ai.analyzer import AnalysisResult, StyleAnalyzer
from src.config import Settings
from src.database import sanitize_error
from src.exceptions import TaskAbortedError, TaskNotFoundError
from src.extraction.base import BrowserSession, PageExtractor
from src.models.snapshot import Snapshot
from src.models.task import DesignTask, QueueState, TaskResult
from src.reports import ReportWriter
from src.worker.batches import BatchGrouper
from src.worker.events import EventBus
from src.worker.store import StateStore
from src.worker.tasks import TaskStore


def _error_message(error: BaseException) -> str:
    return sanitize_error(str(error)) or type(error).__name__


class TaskManager:
    """
    Очередь задач с одним исполнителем.

    Цикл запускается как один asyncio.Task и сам себя останавливает, когда
    очередь пуста или поставлена на паузу. Команды управления и воркер
    работают в одном event loop, так что мутации TaskStore не перемежаются.
    """

    def __init__(
        self,
        store: StateStore,
        browser: BrowserSession,
        extractor: PageExtractor,
        analyzer: StyleAnalyzer,
        reports: ReportWriter,
        events: EventBus,
        settings: Settings,
    ) -> None:
        self.store = store
        self.browser = browser
        self.extractor = extractor
        self.analyzer = analyzer
        self.reports = reports
        self.events = events
        self.settings = settings
        self.tasks = TaskStore(store, events)
        self.grouper = BatchGrouper(self.tasks, store, analyzer, reports, settings)

        self.paused = False
        self.current_task_id: str | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._drain_lock = asyncio.Lock()
        self._aborted: set[str] = set()
        # Батчи, которые надо перепроверить после cancel/delete — проверяет сам воркер
        self._pending_batch_checks: list[str] = []

    # ------------------------------------------------------------------
    # Жизненный цикл
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    async def start(self) -> None:
        """Загрузить состояние, восстановиться после рестарта и запустить цикл."""
        self.paused = await self.store.load_paused()
        await self.tasks.load()
        affected = await self.tasks.recover()
        self.grouper.rebuild()
        for batch_id in sorted(affected):
            self._schedule_batch_check(batch_id)
        logger.info(
            f"[manager] Started: {len(self.tasks.queue)} queued, "
            f"{len(affected)} batches to re-check, paused={self.paused}"
        )
        self._kick()

    async def stop(self) -> None:
        """Дождаться текущего цикла в пределах shutdown_grace, затем отменить."""
        drain = self._drain_task
        if drain is not None and not drain.done():
            logger.info(f"[manager] Waiting up to {self.settings.shutdown_grace:g}s for current task")
            done, _ = await asyncio.wait({drain}, timeout=self.settings.shutdown_grace)
            if not done:
                logger.warning("[manager] Drain did not finish in time, cancelling")
                drain.cancel()
                await asyncio.gather(drain, return_exceptions=True)
        await self.browser.close()
        logger.info("[manager] Stopped")

    async def wait_idle(self) -> None:
        """Вернуться, когда цикл отработал всё, что мог (пусто или пауза)."""
        while (drain := self._drain_task) is not None and not drain.done():
            await asyncio.wait({drain})

    def _kick(self) -> None:
        """Запустить цикл, если он не идёт и есть работа."""
        if self.running:
            return
        has_work = (self.tasks.queue and not self.paused) or self._pending_batch_checks
        if not has_work:
            return
        self._drain_task = asyncio.create_task(self._drain(), name="task-queue-drain")
        self._drain_task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        # Работа могла появиться, пока цикл выходил
        self._kick()

    def _schedule_batch_check(self, batch_id: str) -> None:
        if batch_id not in self._pending_batch_checks:
            self._pending_batch_checks.append(batch_id)

    # ------------------------------------------------------------------
    # Цикл
    # ------------------------------------------------------------------

    async def _drain(self) -> None:
        async with self._drain_lock:
            while True:
                while self._pending_batch_checks:
                    batch_id = self._pending_batch_checks.pop(0)
                    try:
                        await self.grouper.check_batch(batch_id)
                    except Exception as e:
                        logger.exception(f"[manager] Batch check {batch_id} crashed: {e}")

                if self.paused or not self.tasks.queue:
                    break

                task_id = self.tasks.queue.pop(0)
                task = self.tasks.find(task_id)
                if task is None or task.status != "pending":
                    continue

                try:
                    await self.execute_task(task_id)
                    await self.grouper.on_extraction_settled(task_id)
                except Exception as e:
                    logger.exception(f"[manager] Unhandled error in task {task_id}: {e}")

        if self.paused and self.tasks.queue:
            logger.info(f"[manager] Queue paused with {len(self.tasks.queue)} tasks waiting")

    def _check_aborted(self, task_id: str) -> None:
        if task_id in self._aborted:
            raise TaskAbortedError(f"Task {task_id} aborted")

    async def _update(self, task_id: str, **patch: Any) -> DesignTask:
        """mutate с проверкой отмены: отменённую задачу воркер больше не трогает."""
        self._check_aborted(task_id)
        return await self.tasks.mutate(task_id, **patch)

    async def execute_task(self, task_id: str) -> None:
        """
        Прогнать одну задачу: страница → снапшот → (анализ | ожидание батча).
        Любая ошибка извлечения переводит задачу в failed; ошибка анализа — нет.
        """
        task = self.tasks.get(task_id)
        self.current_task_id = task_id
        page: Any = None
        saved_snapshot_id: str | None = None
        logger.info(f"[manager] Executing {task_id}: {task.url}")

        try:
            await self._update(
                task_id, status="running", stage="initializing", progress=10,
                started_at=datetime.now(UTC),
            )
            await self._update(task_id, stage="opening page", progress=30)
            page = await self.browser.open_page(task.url)
            await self.browser.wait_for_load(page, self.settings.page_load_timeout)

            await self._update(task_id, stage="extracting", progress=50)
            snapshot = await self.extractor.extract(page, task.options)
            await self._update(task_id, stage="saving snapshot", progress=80)

            self._check_aborted(task_id)
            await self.store.save_snapshot(snapshot)
            saved_snapshot_id = snapshot.id
            result = TaskResult(snapshot_id=snapshot.id, size=snapshot.size)
            if task.options.get("export_html"):
                result = self._export_html(task_id, snapshot, result)
            await self._update(task_id, progress=85, result=result)

            if task.batch_id and self.tasks.batch_members(task.batch_id) is not None:
                await self._update(
                    task_id, status="extracted", progress=90,
                    stage="awaiting batch analysis",
                )
                logger.info(f"[manager] {task_id} extracted, waiting for batch {task.batch_id}")
            else:
                await self._analyze_solo(task_id, snapshot, result)

        except Exception as e:
            await self._handle_failure(task_id, e, saved_snapshot_id)

        finally:
            self._aborted.discard(task_id)
            self.current_task_id = None
            if page is not None:
                try:
                    await self.browser.close_page(page)
                except Exception as e:
                    logger.warning(f"[manager] Failed to close page of {task_id}: {e}")
            current = self.tasks.find(task_id)
            # pending = задачу перезапустили через retry, пока этот прогон сворачивался
            if current is not None and current.status != "pending":
                await self.tasks.mutate(task_id, completed_at=datetime.now(UTC))

    def _export_html(self, task_id: str, snapshot: Snapshot, result: TaskResult) -> TaskResult:
        """Экспорт HTML — побочный артефакт: ошибка записи не роняет задачу."""
        try:
            path = self.reports.export_html(snapshot)
        except OSError as e:
            message = _error_message(e)
            logger.bind(task_id=task_id).warning(f"[manager] HTML export of {task_id} failed: {message}")
            return result.model_copy(update={"export_error": message})
        return result.model_copy(update={"html_path": str(path)})

    async def _handle_failure(
        self, task_id: str, error: Exception, saved_snapshot_id: str | None
    ) -> None:
        current = self.tasks.find(task_id)
        if current is None:
            # Удалена во время выполнения — снапшот больше никому не нужен
            logger.info(f"[manager] {task_id} was deleted while running")
            if saved_snapshot_id is not None:
                await self.store.delete_snapshot(saved_snapshot_id)
            return
        if isinstance(error, (TaskAbortedError, TaskNotFoundError)) or current.status == "failed":
            logger.info(f"[manager] {task_id} cancelled while running")
            if saved_snapshot_id is not None and current.result is None:
                await self.store.delete_snapshot(saved_snapshot_id)
            return
        message = _error_message(error)
        logger.bind(task_id=task_id).error(f"[manager] Task {task_id} failed: {message}")
        await self.tasks.mutate(task_id, status="failed", error=message, stage="failed")

    async def _run_analysis(self, snapshot: Snapshot) -> AnalysisResult:
        try:
            return await asyncio.wait_for(
                self.analyzer.analyze(snapshot), timeout=self.settings.analysis_timeout,
            )
        except TimeoutError as e:
            raise TimeoutError(
                f"Analysis timed out after {self.settings.analysis_timeout:g}s"
            ) from e

    async def _analyze_solo(self, task_id: str, snapshot: Snapshot, result: TaskResult) -> None:
        """Анализ одиночной задачи. Ошибка анализа мягкая: задача всё равно completed."""
        task = self.tasks.get(task_id)
        if task.options.get("skip_ai"):
            await self._update(
                task_id, status="completed", progress=100,
                stage="completed (analysis skipped)", result=result,
            )
            return

        await self._update(task_id, status="analyzing", stage="AI style analysis", progress=85)
        try:
            analysis = await self._run_analysis(snapshot)
            await self._update(task_id, stage="writing report", progress=95)
            report_path = str(self.reports.write_report(snapshot, analysis.markdown))
        except TaskAbortedError:
            raise
        except Exception as e:
            message = _error_message(e)
            logger.bind(task_id=task_id).warning(f"[manager] Analysis of {task_id} failed: {message}")
            await self._update(
                task_id, status="completed", progress=100,
                stage=f"analysis failed: {message}",
                result=result.model_copy(update={"analysis_error": message}),
            )
            return

        await self._update(
            task_id, status="completed", progress=100, stage="completed",
            result=result.model_copy(update={
                "has_analysis": True,
                "analysis_format": analysis.format,
                "report_path": report_path,
            }),
        )
        logger.info(f"[manager] {task_id} completed, report: {report_path}")

    # ------------------------------------------------------------------
    # Команды управления
    # ------------------------------------------------------------------

    async def add_task(self, url: str, options: dict[str, Any] | None = None) -> str:
        task_id = await self.tasks.create_task(url, options)
        self._kick()
        return task_id

    async def add_batch(self, urls: list[str], options: dict[str, Any] | None = None) -> list[str]:
        task_ids = await self.tasks.create_batch(urls, options)
        self._kick()
        return task_ids

    async def cancel_task(self, task_id: str) -> bool:
        task = self.tasks.find(task_id)
        if task is None:
            return False
        was_running = task.status == "running"
        if not await self.tasks.cancel(task_id):
            return False
        if was_running:
            self._aborted.add(task_id)
        batch_id = self.grouper.mark_settled(task_id)
        if batch_id is not None:
            self._schedule_batch_check(batch_id)
            self._kick()
        return True

    async def retry_task(self, task_id: str) -> DesignTask:
        task = await self.tasks.retry(task_id)
        self.grouper.unsettle(task_id)
        self._kick()
        return task

    async def delete_task(self, task_id: str) -> bool:
        """Удалить задачу. Выполняющаяся прерывается на ближайшей контрольной точке."""
        if task_id == self.current_task_id:
            self._aborted.add(task_id)
        task = await self.tasks.delete(task_id)
        if task is None:
            return False
        if task.batch_id:
            self.grouper.forget(task_id, task.batch_id)
            if self.tasks.batch_members(task.batch_id) is not None:
                self._schedule_batch_check(task.batch_id)
                self._kick()
        return True

    async def edit_task_url(self, task_id: str, url: str) -> DesignTask:
        return await self.tasks.edit_url(task_id, url)

    async def clear_completed(self) -> int:
        removed = await self.tasks.clear_completed()
        for task in removed:
            if task.batch_id:
                self.grouper.forget(task.id, task.batch_id)
        return len(removed)

    async def pause(self) -> None:
        """Идемпотентно. Текущая задача не прерывается."""
        if self.paused:
            return
        self.paused = True
        await self.store.save_paused(True)
        self.tasks.notify()
        logger.info("[manager] Queue paused")

    async def resume(self) -> None:
        if not self.paused:
            return
        self.paused = False
        await self.store.save_paused(False)
        self.tasks.notify()
        logger.info("[manager] Queue resumed")
        self._kick()

    def queue_state(self) -> QueueState:
        return QueueState(
            paused=self.paused,
            running=self.running,
            queue_length=len(self.tasks.queue),
            current_task_id=self.current_task_id,
        )

    async def analyze_snapshot(self, snapshot: Snapshot) -> AnalysisResult:
        """Разовый анализ уже сохранённого снапшота вне очереди; отчёт дописывается в снапшот."""
        analysis = await self._run_analysis(snapshot)
        await self.store.save_snapshot(snapshot.model_copy(update={"markdown": analysis.markdown}))
        self.reports.write_report(snapshot, analysis.markdown)
        return analysis
