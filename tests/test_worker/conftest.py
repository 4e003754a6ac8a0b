"""Фейковые браузер/экстрактор/анализатор и фабрика TaskManager для тестов очереди."""
import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.ai.analyzer import AnalysisResult
from src.config import Settings
from src.exceptions import AnalysisError, PageLoadTimeoutError
from src.models.snapshot import Snapshot, SnapshotMetadata, Viewport
from src.reports import ReportWriter
from src.worker.events import EventBus
from src.worker.loop import TaskManager
from src.worker.store import MemoryStateStore


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Settings без env: отчёты во временную папку, без пауз."""
    values: dict[str, Any] = {
        "output_dir": tmp_path / "reports",
        "settle_delay": 0,
        "analysis_timeout": 5.0,
        "page_load_timeout": 5.0,
        "shutdown_grace": 1.0,
        "ai_api_key": "sk-test",
    }
    values.update(overrides)
    return Settings(**values)


def make_snapshot(
    snapshot_id: str = "snapshot_1",
    url: str = "https://example.com/",
    title: str = "Example",
    html: str = "<html><body><h1>Hi</h1></body></html>",
    css: str = "h1 { color: red; }",
) -> Snapshot:
    return Snapshot(
        id=snapshot_id,
        url=url,
        title=title,
        html=html,
        css=css,
        metadata=SnapshotMetadata(viewport=Viewport(width=1920, height=1080)),
        extracted_at=datetime(2025, 1, 1, tzinfo=UTC),
        extraction_time=42,
    )


class FakeBrowser:
    """Страница = её URL. Считает одновременно открытые вкладки."""

    def __init__(self, fail_urls: tuple[str, ...] = ()) -> None:
        self.fail_urls = set(fail_urls)
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.open_now = 0
        self.max_open = 0
        self.stopped = False
        # Если задан — wait_for_load ждёт, пока тест его не выставит
        self.gate: asyncio.Event | None = None

    async def open_page(self, url: str) -> str:
        self.opened.append(url)
        self.open_now += 1
        self.max_open = max(self.max_open, self.open_now)
        return url

    async def wait_for_load(self, page: str, timeout: float) -> None:
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if page in self.fail_urls:
            raise PageLoadTimeoutError(f"Page load timed out after {timeout:g}s")

    async def close_page(self, page: str) -> None:
        self.closed.append(page)
        self.open_now -= 1

    async def close(self) -> None:
        self.stopped = True


class FakeExtractor:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def extract(self, page: str, options: dict[str, Any]) -> Snapshot:
        self.calls.append(page)
        n = len(self.calls)
        return make_snapshot(f"snapshot_{n}", url=page, title=f"Page {n}")


class FakeAnalyzer:
    """Записывает вызовы; error — бросать AnalysisError, delay — «долгий» анализ."""

    def __init__(self, error: str | None = None, delay: float = 0) -> None:
        self.error = error
        self.delay = delay
        self.single_calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.gate: asyncio.Event | None = None

    async def _work(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise AnalysisError(self.error)

    async def analyze(self, snapshot: Snapshot) -> AnalysisResult:
        self.single_calls.append(snapshot.id)
        await self._work()
        return AnalysisResult(markdown=f"# {snapshot.title}\n\nstyle", content="style")

    async def analyze_batch(self, snapshots: list[Snapshot]) -> AnalysisResult:
        self.batch_calls.append([s.id for s in snapshots])
        await self._work()
        return AnalysisResult(
            markdown="# batch\n\nstyle",
            content="style",
            original_count=len(snapshots),
            analyzed_count=len(snapshots),
        )


def make_manager(
    tmp_path: Path,
    store: MemoryStateStore | None = None,
    browser: FakeBrowser | None = None,
    extractor: FakeExtractor | None = None,
    analyzer: FakeAnalyzer | None = None,
    events: EventBus | None = None,
    **settings_overrides: Any,
) -> TaskManager:
    settings = make_settings(tmp_path, **settings_overrides)
    return TaskManager(
        store=store or MemoryStateStore(),
        browser=browser or FakeBrowser(),
        extractor=extractor or FakeExtractor(),
        analyzer=analyzer or FakeAnalyzer(),  # type: ignore[arg-type]
        reports=ReportWriter(settings.output_dir),
        events=events or EventBus(),
        settings=settings,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Крутить event loop, пока условие не выполнится."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)
