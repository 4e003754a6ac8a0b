"""Тесты сборки промптов для AI-анализа."""
from src.ai.prompt import (
    SINGLE_CSS_LIMIT,
    SINGLE_HTML_LIMIT,
    build_batch_prompt,
    build_user_prompt,
    get_system_prompt,
)
from tests.test_worker.conftest import make_snapshot


class TestSystemPrompt:

    def test_chinese_for_zh_cn(self) -> None:
        assert "设计系统" in get_system_prompt("zh-CN")

    def test_english_otherwise(self) -> None:
        prompt = get_system_prompt("en")
        assert "STYLEGUIDE.md" in prompt
        assert "设计" not in prompt


class TestBuildUserPrompt:
    """Тесты build_user_prompt."""

    def test_contains_page_info(self) -> None:
        snapshot = make_snapshot(url="https://a.com/x", title="Landing")
        prompt = build_user_prompt(snapshot, "en")

        assert "- Title: Landing" in prompt
        assert "- URL: https://a.com/x" in prompt
        assert "- Viewport: 1920x1080" in prompt
        assert "```css\nh1 { color: red; }\n```" in prompt

    def test_truncates_html_and_css(self) -> None:
        snapshot = make_snapshot(html="h" * (SINGLE_HTML_LIMIT + 100), css="c" * (SINGLE_CSS_LIMIT + 100))
        prompt = build_user_prompt(snapshot, "zh-CN")

        assert "h" * SINGLE_HTML_LIMIT in prompt
        assert "h" * (SINGLE_HTML_LIMIT + 1) not in prompt
        assert "c" * (SINGLE_CSS_LIMIT + 1) not in prompt
        assert "## 页面信息" in prompt


class TestBuildBatchPrompt:
    """Тесты build_batch_prompt."""

    def test_all_pages_numbered(self) -> None:
        snapshots = [
            make_snapshot("snapshot_1", url="https://a.com/", title="Home"),
            make_snapshot("snapshot_2", url="https://a.com/blog", title="Blog"),
        ]
        prompt = build_batch_prompt(snapshots, "en", html_limit=100, css_limit=100)

        assert "Analyze 2 pages" in prompt
        assert "### Page 1: Home" in prompt
        assert "### Page 2: Blog" in prompt
        assert "- URL: https://a.com/blog" in prompt

    def test_uses_given_limits(self) -> None:
        snapshots = [make_snapshot(html="x" * 50, css="y" * 50)]
        prompt = build_batch_prompt(snapshots, "zh-CN", html_limit=10, css_limit=20)

        assert "x" * 10 in prompt
        assert "x" * 11 not in prompt
        assert "y" * 20 in prompt
        assert "y" * 21 not in prompt
        assert "### 页面 1" in prompt
