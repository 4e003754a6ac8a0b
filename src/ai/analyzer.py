"""AI-анализ стиля страниц через OpenAI-совместимый API или Azure OpenAI."""
import math
import re
from dataclasses import dataclass

from loguru import logger
from openai import APIError, AsyncAzureOpenAI, AsyncOpenAI

from src.ai.prompt import build_batch_prompt, build_user_prompt, get_system_prompt
from src.ai.report import wrap_batch_markdown_report, wrap_markdown_report
from src.config import Settings
from src.exceptions import AnalysisError, AnalysisUnavailableError
from src.models.snapshot import Snapshot

OUTPUT_TOKEN_RESERVE = 8000
SYSTEM_PROMPT_RESERVE = 3000

# Лимиты батч-промпта (символы на страницу)
FIXED_OVERHEAD_PER_PAGE = 200
BATCH_FIXED_OVERHEAD = 1000
DEFAULT_HTML_LIMIT = 5000
DEFAULT_CSS_LIMIT = 8000
MIN_HTML_LIMIT = 1500
MIN_CSS_LIMIT = 2000

_CJK_RE = re.compile(r"[一-鿿]")


@dataclass
class BatchLimits:
    """Сколько страниц и сколько символов html/css на страницу влезает в контекст."""

    selected: list[Snapshot]
    html_limit: int
    css_limit: int


@dataclass
class AnalysisResult:
    """Результат анализа: готовый Markdown + сырой ответ модели."""

    markdown: str
    content: str
    format: str = "markdown"
    original_count: int = 1
    analyzed_count: int = 1


def estimate_tokens(text: str) -> int:
    """Грубая оценка токенов: CJK-символ ≈ 1/1.5 токена, остальное ≈ 1/4."""
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    other = len(text) - cjk
    return math.ceil(cjk / 1.5) + math.ceil(other / 4)


def _estimate_batch_tokens(count: int, html_limit: int, css_limit: int) -> int:
    per_page = (
        FIXED_OVERHEAD_PER_PAGE
        + math.ceil(html_limit / 4)
        + math.ceil(css_limit / 4)
    )
    return BATCH_FIXED_OVERHEAD + count * per_page


def calculate_batch_limits(snapshots: list[Snapshot], available_tokens: int) -> BatchLimits:
    """
    Подогнать батч под бюджет токенов.
    Сначала ужимаем лимиты html/css (×0.8 до минимума), потом отбрасываем хвостовые страницы.
    Одна страница остаётся всегда.
    """
    selected = list(snapshots)
    html_limit = DEFAULT_HTML_LIMIT
    css_limit = DEFAULT_CSS_LIMIT

    estimated = _estimate_batch_tokens(len(selected), html_limit, css_limit)
    if estimated <= available_tokens:
        return BatchLimits(selected, html_limit, css_limit)

    while estimated > available_tokens and (html_limit > MIN_HTML_LIMIT or css_limit > MIN_CSS_LIMIT):
        html_limit = max(MIN_HTML_LIMIT, int(html_limit * 0.8))
        css_limit = max(MIN_CSS_LIMIT, int(css_limit * 0.8))
        estimated = _estimate_batch_tokens(len(selected), html_limit, css_limit)

    while estimated > available_tokens and len(selected) > 1:
        selected = selected[:-1]
        estimated = _estimate_batch_tokens(len(selected), html_limit, css_limit)

    return BatchLimits(selected, html_limit, css_limit)


class StyleAnalyzer:
    """Анализатор стиля. Клиент создаётся лениво, чтобы отсутствие ключа не мешало старту."""

    def __init__(
        self,
        settings: Settings,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.settings = settings
        self._client = client

    @property
    def model(self) -> str:
        if self.settings.ai_provider == "azure":
            return self.settings.azure_deployment
        return self.settings.ai_model_id

    def validate_config(self) -> None:
        """Бросает AnalysisUnavailableError, если провайдер не настроен."""
        s = self.settings
        missing: list[str] = []
        if s.ai_provider == "azure":
            if not s.azure_endpoint:
                missing.append("AZURE_ENDPOINT")
            if not s.azure_deployment:
                missing.append("AZURE_DEPLOYMENT")
            if not s.azure_api_key.get_secret_value():
                missing.append("AZURE_API_KEY")
        else:
            if not s.ai_api_key.get_secret_value():
                missing.append("AI_API_KEY")
            if not s.ai_base_url:
                missing.append("AI_BASE_URL")
            if not s.ai_model_id:
                missing.append("AI_MODEL_ID")
        if missing:
            raise AnalysisUnavailableError(f"AI provider is not configured: {', '.join(missing)}")

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            s = self.settings
            if s.ai_provider == "azure":
                self._client = AsyncAzureOpenAI(
                    api_key=s.azure_api_key.get_secret_value(),
                    api_version=s.azure_api_version,
                    azure_endpoint=s.azure_endpoint,
                )
            else:
                self._client = AsyncOpenAI(
                    api_key=s.ai_api_key.get_secret_value(),
                    base_url=s.ai_base_url,
                )
        return self._client

    async def _call_ai(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        logger.info(f"[analyzer] Calling {self.settings.ai_provider} model={self.model}")
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.settings.ai_max_tokens,
                temperature=self.settings.ai_temperature,
            )
        except APIError as e:
            logger.error(f"[analyzer] AI request failed: {e}")
            raise AnalysisError(f"AI request failed: {e}") from e

        if not response.choices:
            raise AnalysisError("AI response has no choices")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise AnalysisError("AI response is empty")
        return content

    async def analyze(self, snapshot: Snapshot) -> AnalysisResult:
        """Анализ одной страницы."""
        self.validate_config()
        language = self.settings.language
        content = await self._call_ai(
            get_system_prompt(language), build_user_prompt(snapshot, language)
        )
        return AnalysisResult(
            markdown=wrap_markdown_report(snapshot, content),
            content=content,
        )

    async def analyze_batch(self, snapshots: list[Snapshot]) -> AnalysisResult:
        """Один сводный анализ нескольких страниц одного сайта."""
        if not snapshots:
            raise AnalysisError("Nothing to analyze: empty snapshot list")
        self.validate_config()
        language = self.settings.language
        system_prompt = get_system_prompt(language)
        available = (
            self.settings.ai_max_input_tokens
            - OUTPUT_TOKEN_RESERVE
            - SYSTEM_PROMPT_RESERVE
            - estimate_tokens(system_prompt)
        )
        limits = calculate_batch_limits(snapshots, available)
        if len(limits.selected) < len(snapshots):
            logger.warning(
                f"[analyzer] Token budget: analyzing {len(limits.selected)}/{len(snapshots)} pages "
                f"(html={limits.html_limit}, css={limits.css_limit})"
            )

        user_prompt = build_batch_prompt(
            limits.selected, language, limits.html_limit, limits.css_limit
        )
        content = await self._call_ai(system_prompt, user_prompt)
        original_count = len(snapshots) if len(snapshots) != len(limits.selected) else None
        return AnalysisResult(
            markdown=wrap_batch_markdown_report(limits.selected, content, original_count),
            content=content,
            original_count=len(snapshots),
            analyzed_count=len(limits.selected),
        )
