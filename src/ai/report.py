"""Обёртки Markdown-отчёта вокруг ответа модели."""
from datetime import datetime

from src.models.snapshot import Snapshot

FOOTER = "*本报告由 Frontend Style Generator 自动生成*"


def _format_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def wrap_markdown_report(snapshot: Snapshot, content: str, now: datetime | None = None) -> str:
    """Отчёт по одной странице: шапка с URL/временем/вьюпортом + контент."""
    now = now or datetime.now()
    vp = snapshot.metadata.viewport
    lines = [
        f"# {snapshot.title} - 设计风格分析报告",
        "",
        f"> **分析时间**: {_format_time(now)}",
        f"> **页面 URL**: {snapshot.url}",
        f"> **采集时间**: {_format_time(snapshot.extracted_at)}",
        f"> **视口尺寸**: {vp.width} x {vp.height}",
        "",
        "---",
        "",
        content,
        "",
        "---",
        "",
        FOOTER,
        f"*生成时间: {_format_time(now)}*",
    ]
    return "\n".join(lines)


def wrap_batch_markdown_report(
    snapshots: list[Snapshot],
    content: str,
    original_count: int | None = None,
    now: datetime | None = None,
) -> str:
    """
    Сводный отчёт по нескольким страницам.
    original_count — сколько страниц было до урезания под лимит токенов.
    """
    now = now or datetime.now()
    lines = [
        "# 批量设计风格分析报告",
        "",
        f"> **分析时间**: {_format_time(now)}",
    ]
    if original_count and original_count > len(snapshots):
        lines.append(
            f"> **页面数量**: {len(snapshots)}（原始 {original_count} 个，因 token 限制自动调整）"
        )
    else:
        lines.append(f"> **页面数量**: {len(snapshots)}")
    lines.append("")
    lines.append("## 📸 分析页面预览")
    lines.append("")
    for i, snapshot in enumerate(snapshots, start=1):
        lines.append(f"### {i}. {snapshot.title}")
        lines.append(f"- **URL**: {snapshot.url}")
        lines.append("")
    lines.extend([
        "---",
        "",
        content,
        "",
        "---",
        "",
        FOOTER,
        f"*生成时间: {_format_time(now)}*",
    ])
    return "\n".join(lines)
