"""Конфигурация экстрактора из переменных окружения."""
from functools import cached_property
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки сервиса — парсятся из env или .env файла."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Supabase (опционально — без него состояние живёт только в памяти процесса)
    supabase_url: str = ""
    supabase_service_key: SecretStr = SecretStr("")

    # AI-провайдер
    ai_provider: Literal["openai", "azure"] = "openai"
    ai_api_key: SecretStr = SecretStr("")
    ai_base_url: str = "https://api.openai.com/v1"
    ai_model_id: str = "gpt-4o"
    azure_endpoint: str = ""
    azure_deployment: str = ""
    azure_api_version: str = "2024-02-15-preview"
    azure_api_key: SecretStr = SecretStr("")
    ai_max_tokens: int = 8000
    ai_temperature: float = 0.3
    ai_max_input_tokens: int = 128000
    language: str = "zh-CN"
    analysis_timeout: float = 300.0  # секунды, превышение = мягкая ошибка анализа

    # Браузер
    page_load_timeout: float = 60.0
    settle_delay: float = 1.5         # пауза после load, чтобы скрипты страницы успели отработать
    viewport_width: int = 1920
    viewport_height: int = 1080
    headless: bool = True

    # Отчёты
    output_dir: Path = Path("template")

    # Control API
    control_api_key: SecretStr = SecretStr("")
    control_port: int = Field(
        default=8010,
        validation_alias=AliasChoices("CONTROL_PORT", "PORT"),
    )

    # Воркер
    shutdown_grace: float = 30.0
    log_level: str = "INFO"

    @cached_property
    def supabase_enabled(self) -> bool:
        """Supabase используется, только если заданы и URL, и ключ."""
        return bool(self.supabase_url and self.supabase_service_key.get_secret_value())


def load_settings() -> Settings:
    """Создать Settings из переменных окружения (.env файла).

    Фабричная функция — обходит ограничение pyright, который не знает,
    что pydantic-settings заполняет поля из окружения.
    """
    return Settings.model_validate({})
