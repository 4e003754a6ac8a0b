"""Тесты BatchGrouper: готовность батча и однократный групповой анализ."""
import asyncio

from src.models.task import TaskResult
from src.reports import ReportWriter
from src.worker.batches import BatchGrouper
from src.worker.events import EventBus
from src.worker.store import MemoryStateStore
from src.worker.tasks import TaskStore
from tests.test_worker.conftest import FakeAnalyzer, make_settings, make_snapshot


async def _setup(tmp_path, analyzer: FakeAnalyzer | None = None, **overrides):
    state = MemoryStateStore()
    tasks = TaskStore(state, EventBus())
    settings = make_settings(tmp_path, **overrides)
    analyzer = analyzer or FakeAnalyzer()
    grouper = BatchGrouper(tasks, state, analyzer, ReportWriter(settings.output_dir), settings)
    ids = await tasks.create_batch(["https://a.com/1", "https://a.com/2"])
    return tasks, state, grouper, analyzer, ids


async def _extract(tasks: TaskStore, state: MemoryStateStore, task_id: str, n: int) -> None:
    snapshot = make_snapshot(f"snapshot_{n}", url=tasks.get(task_id).url, title=f"Page {n}")
    await state.save_snapshot(snapshot)
    await tasks.mutate(
        task_id, status="extracted", progress=90,
        result=TaskResult(snapshot_id=snapshot.id, size=snapshot.size),
    )


class TestReadiness:
    """Учёт осевших участников."""

    async def test_not_ready_until_all_settled(self, tmp_path) -> None:
        tasks, state, grouper, analyzer, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id

        await _extract(tasks, state, ids[0], 1)
        await grouper.on_extraction_settled(ids[0])

        assert grouper.is_ready(batch_id) is False
        assert analyzer.batch_calls == []

    async def test_solo_task_has_no_batch(self, tmp_path) -> None:
        tasks, _, grouper, _, _ = await _setup(tmp_path)
        solo = await tasks.create_task("https://b.com/")

        assert grouper.mark_settled(solo) is None

    async def test_unsettle_blocks_batch_again(self, tmp_path) -> None:
        tasks, state, grouper, _, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await tasks.mutate(ids[1], status="failed", error="boom")
        grouper.mark_settled(ids[0])
        grouper.mark_settled(ids[1])
        assert grouper.is_ready(batch_id) is True

        grouper.unsettle(ids[1])

        assert grouper.is_ready(batch_id) is False

    async def test_pending_member_is_not_settled(self, tmp_path) -> None:
        tasks, state, grouper, _, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        grouper.mark_settled(ids[0])

        assert grouper.mark_settled(ids[1]) is None
        assert grouper.is_ready(batch_id) is False

    async def test_rebuild_from_statuses(self, tmp_path) -> None:
        tasks, state, grouper, _, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await tasks.mutate(ids[1], status="failed", error="boom")

        grouper.rebuild()

        assert grouper.is_ready(batch_id) is True


class TestGroupAnalysis:
    """Запуск группового анализа."""

    async def test_analysis_runs_once(self, tmp_path) -> None:
        tasks, state, grouper, analyzer, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await _extract(tasks, state, ids[1], 2)
        grouper.mark_settled(ids[0])
        grouper.mark_settled(ids[1])

        await grouper.check_batch(batch_id)
        await grouper.check_batch(batch_id)

        assert analyzer.batch_calls == [["snapshot_1", "snapshot_2"]]
        assert tasks.batch_members(batch_id) is None
        report = tasks.get(ids[0]).result.report_path
        assert report == tasks.get(ids[1]).result.report_path
        assert (tmp_path / "reports").joinpath(report.rsplit("/", 1)[-1]).exists()

    async def test_concurrent_checks_fire_once(self, tmp_path) -> None:
        analyzer = FakeAnalyzer()
        analyzer.gate = asyncio.Event()
        tasks, state, grouper, _, ids = await _setup(tmp_path, analyzer=analyzer)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await _extract(tasks, state, ids[1], 2)
        grouper.mark_settled(ids[0])
        grouper.mark_settled(ids[1])

        first = asyncio.create_task(grouper.check_batch(batch_id))
        await asyncio.sleep(0.01)
        await grouper.check_batch(batch_id)
        analyzer.gate.set()
        await first

        assert len(analyzer.batch_calls) == 1

    async def test_missing_snapshot_is_skipped(self, tmp_path) -> None:
        tasks, state, grouper, analyzer, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await _extract(tasks, state, ids[1], 2)
        await state.delete_snapshot("snapshot_2")

        await grouper.run_group_analysis(batch_id)

        assert analyzer.batch_calls == [["snapshot_1"]]
        assert tasks.get(ids[1]).status == "completed"

    async def test_no_snapshots_is_soft_failure(self, tmp_path) -> None:
        tasks, state, grouper, analyzer, ids = await _setup(tmp_path)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await state.delete_snapshot("snapshot_1")

        await grouper.run_group_analysis(batch_id)

        assert analyzer.batch_calls == []
        task = tasks.get(ids[0])
        assert task.status == "completed"
        assert task.result.analysis_error == "No snapshots available for batch analysis"

    async def test_timeout_is_soft_failure(self, tmp_path) -> None:
        analyzer = FakeAnalyzer(delay=1.0)
        tasks, state, grouper, _, ids = await _setup(
            tmp_path, analyzer=analyzer, analysis_timeout=0.01,
        )
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)

        await grouper.run_group_analysis(batch_id)

        task = tasks.get(ids[0])
        assert task.status == "completed"
        assert task.result.analysis_error == "Analysis timed out after 0.01s"
        assert task.stage == "batch analysis failed: Analysis timed out after 0.01s"

    async def test_member_deleted_during_analysis(self, tmp_path) -> None:
        analyzer = FakeAnalyzer()
        analyzer.gate = asyncio.Event()
        tasks, state, grouper, _, ids = await _setup(tmp_path, analyzer=analyzer)
        batch_id = tasks.get(ids[0]).batch_id
        await _extract(tasks, state, ids[0], 1)
        await _extract(tasks, state, ids[1], 2)

        running = asyncio.create_task(grouper.run_group_analysis(batch_id))
        await asyncio.sleep(0.01)
        await tasks.delete(ids[1])
        analyzer.gate.set()
        await running

        assert tasks.get(ids[0]).status == "completed"
        assert tasks.find(ids[1]) is None
