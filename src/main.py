"""Точка входа сервиса — инициализация и запуск API + очереди задач."""
import asyncio
import signal
import sys

import uvicorn
from loguru import logger
from supabase import create_client

from src.ai.analyzer import StyleAnalyzer
from src.api.app import create_app
from src.config import Settings, load_settings
from src.exceptions import AnalysisUnavailableError
from src.extraction.browser import PlaywrightBrowser
from src.extraction.extractor import PlaywrightExtractor
from src.log_sink import create_supabase_sink
from src.reports import ReportWriter
from src.worker.events import EventBus
from src.worker.loop import TaskManager
from src.worker.store import create_state_store


def setup_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_level == "DEBUG":
        logger.add("logs/extractor.log", rotation="100 MB", retention="7 days")


def build_manager(
    settings: Settings,
    headless: bool | None = None,
    durable: bool = True,
) -> TaskManager:
    """
    Собрать TaskManager со всеми зависимостями из настроек.
    durable=False — состояние только в памяти (разовые запуски CLI).
    """
    db = None
    if durable and settings.supabase_enabled:
        db = create_client(settings.supabase_url, settings.supabase_service_key.get_secret_value())
        # Персистить WARNING+ логи в Supabase
        logger.add(create_supabase_sink(db), level="WARNING", enqueue=True, serialize=False)
    elif durable:
        logger.warning("Supabase is not configured — queue state will not survive restart")

    analyzer = StyleAnalyzer(settings)
    try:
        analyzer.validate_config()
    except AnalysisUnavailableError as e:
        logger.warning(f"{e} — tasks will complete without analysis")

    return TaskManager(
        store=create_state_store(db),
        browser=PlaywrightBrowser(settings, headless=headless),
        extractor=PlaywrightExtractor(),
        analyzer=analyzer,
        reports=ReportWriter(settings.output_dir),
        events=EventBus(),
        settings=settings,
    )


async def main() -> None:
    """Инициализация и запуск API + воркера."""
    settings = load_settings()
    setup_logging(settings)
    logger.info("Starting design extractor")

    manager = build_manager(settings)
    await manager.start()

    app = create_app(manager, settings)
    config = uvicorn.Config(app, host="0.0.0.0", port=settings.control_port, log_level="warning")
    server = uvicorn.Server(config)

    # Graceful shutdown
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    async def stop_on_signal() -> None:
        await shutdown_event.wait()
        logger.info("Shutdown requested")
        server.should_exit = True
        await manager.stop()

    logger.info(f"API server starting on port {settings.control_port}")
    try:
        await asyncio.gather(server.serve(), stop_on_signal())
    finally:
        logger.info("Design extractor stopped gracefully")


if __name__ == "__main__":
    asyncio.run(main())
