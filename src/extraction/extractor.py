"""Извлечение HTML/CSS/ассетов/метаданных страницы через page.evaluate."""
from typing import Any

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from pydantic import BaseModel, ValidationError

from src.exceptions import CommunicationError, ExtractionError
from src.models.snapshot import Snapshot
from src.models.task import generate_snapshot_id

# Выполняется в контексте страницы. Ошибки внутри скрипта возвращаются
# как {success: false, error}, а не бросаются — их отличаем от обрыва связи.
EXTRACT_SCRIPT = """
async ({ inlineCSS, collectImages, collectFonts }) => {
  const startTime = Date.now();
  const URL_RE = /url\\(['"]?([^'")]+)['"]?\\)/g;

  function extractHTML() {
    const clone = document.documentElement.cloneNode(true);
    clone.querySelectorAll('script, noscript').forEach(el => el.remove());
    clone.querySelectorAll('*').forEach(el => {
      Array.from(el.attributes).forEach(attr => {
        if (attr.name.startsWith('on')) el.removeAttribute(attr.name);
      });
    });
    return clone.outerHTML;
  }

  async function getInlineCSS() {
    const cssTexts = [];
    document.querySelectorAll('style').forEach(style => {
      if (style.textContent) cssTexts.push(`/* Inline Style */\\n${style.textContent}`);
    });
    for (const sheet of Array.from(document.styleSheets)) {
      try {
        const css = Array.from(sheet.cssRules || []).map(rule => rule.cssText).join('\\n');
        if (css) cssTexts.push(`/* Stylesheet: ${sheet.href || 'embedded'} */\\n${css}`);
      } catch (e) {
        if (!sheet.href) continue;
        try {
          const response = await fetch(sheet.href, { mode: 'cors', credentials: 'omit' });
          if (response.ok) {
            cssTexts.push(`/* External: ${sheet.href} */\\n${await response.text()}`);
          } else {
            cssTexts.push(`/* Failed to load: ${sheet.href} */`);
          }
        } catch (fetchError) {
          cssTexts.push(`/* Failed to load: ${sheet.href} */`);
        }
      }
    }
    return cssTexts.join('\\n\\n');
  }

  function urlsOf(value) {
    return Array.from(value.matchAll(URL_RE)).map(m => m[1]);
  }

  function collectImagesData() {
    const images = [];
    const seen = new Set();
    document.querySelectorAll('img[src]').forEach(img => {
      if (seen.has(img.src)) return;
      seen.add(img.src);
      images.push({
        type: 'img', src: img.src, alt: img.alt || '',
        width: img.naturalWidth, height: img.naturalHeight
      });
    });
    document.querySelectorAll('*').forEach(el => {
      const bg = window.getComputedStyle(el).backgroundImage;
      if (!bg || bg === 'none') return;
      urlsOf(bg).forEach(src => {
        if (seen.has(src)) return;
        seen.add(src);
        images.push({ type: 'background', src, element: el.tagName.toLowerCase() });
      });
    });
    return images;
  }

  function collectFontsData() {
    const fonts = new Map();
    for (const sheet of Array.from(document.styleSheets)) {
      let rules;
      try { rules = Array.from(sheet.cssRules || []); } catch (e) { continue; }
      rules.forEach(rule => {
        if (!(rule instanceof CSSFontFaceRule)) return;
        const family = (rule.style.getPropertyValue('font-family') || '').replace(/['"]/g, '');
        urlsOf(rule.style.getPropertyValue('src') || '').forEach(url => {
          fonts.set(`${family}|${url}`, { family, url });
        });
      });
    }
    return Array.from(fonts.values());
  }

  function collectMetadata() {
    const meta = (name) => {
      const el = document.querySelector(`meta[name="${name}"], meta[property="${name}"]`);
      return el ? el.getAttribute('content') : null;
    };
    return {
      viewport: {
        width: window.innerWidth,
        height: window.innerHeight,
        devicePixelRatio: window.devicePixelRatio || 1
      },
      userAgent: navigator.userAgent,
      language: document.documentElement.lang || navigator.language,
      charset: document.characterSet,
      meta: {
        description: meta('description'),
        keywords: meta('keywords'),
        author: meta('author'),
        ogImage: meta('og:image'),
        ogTitle: meta('og:title'),
        ogDescription: meta('og:description')
      },
      stats: {
        totalElements: document.querySelectorAll('*').length,
        totalImages: document.querySelectorAll('img').length,
        totalLinks: document.querySelectorAll('a').length,
        totalScripts: document.querySelectorAll('script').length,
        totalStyles: document.querySelectorAll('style, link[rel="stylesheet"]').length
      }
    };
  }

  try {
    const html = extractHTML();
    let css = '';
    if (inlineCSS) {
      try { css = await getInlineCSS(); } catch (e) { css = '/* CSS extraction failed */'; }
    }
    return {
      success: true,
      data: {
        url: window.location.href,
        title: document.title,
        html,
        css,
        assets: {
          images: collectImages ? collectImagesData() : [],
          fonts: collectFonts ? collectFontsData() : []
        },
        metadata: collectMetadata(),
        extractedAt: new Date().toISOString(),
        extractionTime: Date.now() - startTime
      }
    };
  } catch (e) {
    return { success: false, error: String(e && e.message || e) };
  }
}
"""


class ExtractOptions(BaseModel):
    """Флаги извлечения — берутся из options задачи, лишние ключи игнорируются."""

    inline_css: bool = True
    collect_images: bool = True
    collect_fonts: bool = True


async def extract_page(page: Page, options: ExtractOptions | None = None) -> Snapshot:
    """
    Выполнить скрипт извлечения на загруженной странице.

    CommunicationError — скрипт не удалось выполнить (вкладка закрыта,
    навигация сбросила контекст). ExtractionError — скрипт вернул ошибку
    или payload не похож на снапшот.
    """
    options = options or ExtractOptions()
    try:
        payload: dict[str, Any] = await page.evaluate(
            EXTRACT_SCRIPT,
            {
                "inlineCSS": options.inline_css,
                "collectImages": options.collect_images,
                "collectFonts": options.collect_fonts,
            },
        )
    except PlaywrightError as e:
        raise CommunicationError(f"Extraction script failed to run: {e}") from e

    if not isinstance(payload, dict) or not payload.get("success"):
        error = payload.get("error") if isinstance(payload, dict) else None
        raise ExtractionError(error or "Extraction script returned no data")

    try:
        snapshot = Snapshot.model_validate({"id": generate_snapshot_id(), **payload["data"]})
    except ValidationError as e:
        raise ExtractionError(f"Malformed snapshot payload: {e}") from e

    logger.debug(
        f"[extractor] {snapshot.url}: html={len(snapshot.html)} css={len(snapshot.css)} "
        f"images={len(snapshot.assets.images)} in {snapshot.extraction_time}ms"
    )
    return snapshot


class PlaywrightExtractor:
    """PageExtractor поверх extract_page: переводит options задачи в ExtractOptions."""

    async def extract(self, page: Page, options: dict[str, Any]) -> Snapshot:
        return await extract_page(page, ExtractOptions.model_validate(options))
