"""Тесты извлечения снапшота со страницы."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from src.exceptions import CommunicationError, ExtractionError
from src.extraction.extractor import ExtractOptions, PlaywrightExtractor, extract_page


def _data() -> dict:
    return {
        "url": "https://a.com/",
        "title": "A",
        "html": "<html><body>x</body></html>",
        "css": "body { margin: 0 }",
        "assets": {"images": [], "fonts": []},
        "metadata": {"viewport": {"width": 1920, "height": 1080, "devicePixelRatio": 1}},
        "extractedAt": "2025-01-01T00:00:00Z",
        "extractionTime": 15,
    }


def _page(result=None, error: Exception | None = None) -> MagicMock:
    page = MagicMock()
    page.evaluate = AsyncMock(return_value=result, side_effect=error)
    return page


class TestExtractPage:

    async def test_success_builds_snapshot(self) -> None:
        page = _page({"success": True, "data": _data()})

        snapshot = await extract_page(page)

        assert snapshot.id.startswith("snapshot_")
        assert snapshot.css == "body { margin: 0 }"
        assert snapshot.extraction_time == 15

    async def test_options_passed_to_script(self) -> None:
        page = _page({"success": True, "data": _data()})

        await extract_page(page, ExtractOptions(inline_css=False, collect_fonts=False))

        args = page.evaluate.await_args.args[1]
        assert args == {"inlineCSS": False, "collectImages": True, "collectFonts": False}

    async def test_script_error(self) -> None:
        page = _page({"success": False, "error": "document is not ready"})

        with pytest.raises(ExtractionError, match="document is not ready"):
            await extract_page(page)

    async def test_no_payload(self) -> None:
        with pytest.raises(ExtractionError):
            await extract_page(_page(None))

    async def test_malformed_payload(self) -> None:
        data = _data()
        del data["metadata"]

        with pytest.raises(ExtractionError, match="Malformed"):
            await extract_page(_page({"success": True, "data": data}))

    async def test_evaluate_failure_is_communication_error(self) -> None:
        page = _page(error=PlaywrightError("Execution context was destroyed"))

        with pytest.raises(CommunicationError):
            await extract_page(page)


class TestPlaywrightExtractor:

    async def test_ignores_unrelated_task_options(self) -> None:
        page = _page({"success": True, "data": _data()})

        snapshot = await PlaywrightExtractor().extract(page, {"skip_ai": True, "collect_images": False})

        assert snapshot.title == "A"
        assert page.evaluate.await_args.args[1]["collectImages"] is False
