"""Запись Markdown-отчётов и standalone-HTML снапшотов на диск."""
import html
import re
from datetime import date
from pathlib import Path

from loguru import logger

from src.models.snapshot import Snapshot

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9一-龥]")
_BODY_RE = re.compile(r"<body[^>]*>([\s\S]*)</body>", re.IGNORECASE)


def sanitize_filename(title: str) -> str:
    """Оставить латиницу, цифры и CJK; остальное заменить на _."""
    cleaned = _UNSAFE_CHARS.sub("_", title.strip())
    return cleaned or "page"


def build_standalone_html(snapshot: Snapshot) -> str:
    """HTML-файл, открывающийся без сети: CSS инлайнится в <head>, берётся только <body>."""
    match = _BODY_RE.search(snapshot.html)
    body = match.group(1) if match else snapshot.html
    lang = snapshot.metadata.language or "zh-CN"
    charset = snapshot.metadata.charset or "UTF-8"
    return (
        "<!DOCTYPE html>\n"
        f'<html lang="{html.escape(lang)}">\n'
        "<head>\n"
        f'    <meta charset="{html.escape(charset)}">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"    <title>{html.escape(snapshot.title)}</title>\n"
        "    <style>\n"
        f"{snapshot.css}\n"
        "    </style>\n"
        "</head>\n"
        "<body>\n"
        f"{body}\n"
        "</body>\n"
        "</html>"
    )


class ReportWriter:
    """Файлы отчётов в output_dir. Директория создаётся при первой записи."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def _free_path(self, filename: str) -> Path:
        """Не перезаписывать чужой отчёт: Home.html, Home_2.html, Home_3.html..."""
        path = self.output_dir / filename
        n = 2
        while path.exists():
            path = path.with_name(f"{Path(filename).stem}_{n}{Path(filename).suffix}")
            n += 1
        return path

    def _write(self, filename: str, content: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self._free_path(filename)
        path.write_text(content, encoding="utf-8")
        logger.info(f"[reports] Saved {path}")
        return path

    def write_report(self, snapshot: Snapshot, markdown: str) -> Path:
        return self._write(f"{sanitize_filename(snapshot.title)}_style.md", markdown)

    def write_batch_report(self, markdown: str, batch_id: str, day: date | None = None) -> Path:
        day = day or date.today()
        suffix = sanitize_filename(batch_id.removeprefix("batch_"))
        return self._write(f"batch_{day.isoformat()}_{suffix}_style.md", markdown)

    def export_html(self, snapshot: Snapshot) -> Path:
        return self._write(f"{sanitize_filename(snapshot.title)}.html", build_standalone_html(snapshot))
