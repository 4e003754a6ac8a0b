"""
Пакетное извлечение стиля из командной строки, без API-сервера.

Использование:
    uv run python -m src.cli.batch single https://example.com
    uv run python -m src.cli.batch crawl https://example.com --limit 5
    uv run python -m src.cli.batch urls https://a.com/ https://a.com/blog
    uv run python -m src.cli.batch crawl https://example.com --skip-ai --headed
"""
import argparse
import asyncio
import sys

from loguru import logger

from src.config import load_settings
from src.extraction.routes import build_full_urls, scan_routes
from src.main import build_manager
from src.worker.loop import TaskManager


async def discover_urls(manager: TaskManager, base_url: str, limit: int) -> list[str]:
    """Открыть базовую страницу и собрать URL маршрутов сайта."""
    page = await manager.browser.open_page(base_url)
    try:
        await manager.browser.wait_for_load(page, manager.settings.page_load_timeout)
        scan = await scan_routes(page, limit=limit)
    finally:
        await manager.browser.close_page(page)
    logger.info(f"Найдено {scan.total} маршрутов, выбрано {len(scan.routes)}")
    return build_full_urls(base_url, scan.routes)


def print_summary(manager: TaskManager) -> None:
    stats = manager.tasks.stats()
    logger.info(
        f"Готово: всего {stats.total}, completed {stats.completed}, failed {stats.failed}"
    )
    for task in reversed(manager.tasks.list_tasks()):
        if task.status == "failed":
            logger.warning(f"  ✗ {task.url}: {task.error}")
            continue
        report = task.result.report_path if task.result else None
        note = task.result.analysis_error if task.result and task.result.analysis_error else report
        logger.info(f"  ✓ {task.url} → {note or 'без анализа'}")


async def run(command: str, targets: list[str], limit: int, skip_ai: bool, headed: bool) -> int:
    settings = load_settings()
    manager = build_manager(settings, headless=not headed, durable=False)
    options = {"skip_ai": skip_ai}
    await manager.start()

    try:
        if command == "single":
            await manager.add_task(targets[0], options)
        else:
            urls = targets
            if command == "crawl":
                urls = await discover_urls(manager, targets[0], limit)
            if skip_ai:
                # Без анализа группировать нечего — каждая страница отдельной задачей
                for url in urls:
                    await manager.add_task(url, options)
            else:
                await manager.add_batch(urls, options)

        await manager.wait_idle()
    finally:
        await manager.stop()

    print_summary(manager)
    return 1 if manager.tasks.stats().failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Извлечение дизайн-системы веб-страниц")
    parser.add_argument("command", choices=["single", "crawl", "urls"])
    parser.add_argument("targets", nargs="+", help="URL (для crawl — базовый URL сайта)")
    parser.add_argument("--limit", type=int, default=10, help="Максимум маршрутов для crawl")
    parser.add_argument("--skip-ai", action="store_true", help="Только извлечение, без AI-анализа")
    parser.add_argument("--headed", action="store_true", help="Показывать окно браузера")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="INFO")

    exit_code = asyncio.run(run(args.command, args.targets, args.limit, args.skip_ai, args.headed))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
