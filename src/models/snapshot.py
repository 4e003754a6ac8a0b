"""Pydantic-модели снапшота страницы."""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ImageAsset(BaseModel):
    """Картинка со страницы — <img> или background-image."""

    type: Literal["img", "background", "srcset"]
    src: str
    alt: str | None = None
    width: int | None = None
    height: int | None = None
    element: str | None = None


class FontAsset(BaseModel):
    """Шрифт из @font-face."""

    family: str | None = None
    url: str | None = None


class SnapshotAssets(BaseModel):
    images: list[ImageAsset] = []
    fonts: list[FontAsset] = []


class Viewport(BaseModel):
    width: int
    height: int
    device_pixel_ratio: float = Field(default=1.0, alias="devicePixelRatio")

    model_config = ConfigDict(populate_by_name=True)


class PageStats(BaseModel):
    total_elements: int = Field(default=0, alias="totalElements")
    total_images: int = Field(default=0, alias="totalImages")
    total_links: int = Field(default=0, alias="totalLinks")
    total_scripts: int = Field(default=0, alias="totalScripts")
    total_styles: int = Field(default=0, alias="totalStyles")

    model_config = ConfigDict(populate_by_name=True)


class SnapshotMetadata(BaseModel):
    """Метаданные страницы: вьюпорт, meta-теги, счётчики элементов."""

    viewport: Viewport
    user_agent: str = Field(default="", alias="userAgent")
    language: str | None = None
    charset: str | None = None
    meta: dict[str, str | None] = {}
    stats: PageStats = PageStats()

    model_config = ConfigDict(populate_by_name=True)


class Snapshot(BaseModel):
    """Неизменяемый снимок страницы. Хранится отдельно от задачи, ссылка — по id."""

    id: str
    url: str
    title: str
    html: str
    css: str
    assets: SnapshotAssets = SnapshotAssets()
    metadata: SnapshotMetadata
    extracted_at: datetime = Field(alias="extractedAt")
    extraction_time: int = Field(default=0, alias="extractionTime")  # мс
    # Сгенерированный отчёт дописывается upsert'ом по id
    markdown: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def size(self) -> int:
        """Размер снапшота в символах html + css."""
        return len(self.html) + len(self.css)
