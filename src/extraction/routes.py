"""Сканер маршрутов сайта для пакетного извлечения: ссылки страницы + sitemap."""
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx
from loguru import logger
from lxml import etree
from playwright.async_api import Page

SITEMAP_PATHS = ("/sitemap.xml", "/wp-sitemap.xml", "/sitemap_index.xml")
SITEMAP_TIMEOUT = 10.0

NAV_SELECTORS = (
    "nav a[href]",
    "header a[href]",
    '[role="navigation"] a[href]',
    ".nav a[href]",
    ".navigation a[href]",
    ".menu a[href]",
    ".navbar a[href]",
)

# Возвращает все href страницы (включая навигацию) как абсолютные URL
COLLECT_LINKS_SCRIPT = """
(navSelectors) => {
  const hrefs = [];
  const push = (link) => {
    const href = link.getAttribute('href');
    if (!href) return;
    try { hrefs.push(new URL(href, window.location.href).href); } catch (e) {}
  };
  document.querySelectorAll('a[href]').forEach(push);
  navSelectors.forEach(sel => document.querySelectorAll(sel).forEach(push));
  return { url: window.location.href, hrefs };
}
"""


@dataclass
class RouteScanResult:
    routes: list[str]
    total: int  # сколько уникальных путей найдено до фильтрации


def _origin(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme, parts.netloc


def normalize_path(path: str) -> str:
    """Убрать завершающий слэш, кроме корня."""
    if not path:
        return "/"
    if len(path) > 1 and path.endswith("/"):
        return path[:-1]
    return path


def route_depth(route: str) -> int:
    return len([p for p in route.split("/") if p])


def same_origin_paths(base_url: str, urls: list[str]) -> list[str]:
    """Пути URL того же origin, нормализованные, с сохранением порядка."""
    origin = _origin(base_url)
    paths: list[str] = []
    for url in urls:
        if _origin(url) == origin:
            paths.append(normalize_path(urlsplit(url).path))
    return paths


def parse_sitemap(xml: bytes) -> list[str]:
    """Достать <url><loc> из sitemap. Битый XML — пустой список."""
    try:
        root = etree.fromstring(xml, parser=etree.XMLParser(recover=True))
    except etree.XMLSyntaxError:
        return []
    if root is None:
        return []
    locs = root.xpath("//*[local-name()='url']/*[local-name()='loc']/text()")
    return [loc.strip() for loc in locs if loc.strip()]


async def fetch_sitemap_urls(client: httpx.AsyncClient, base_url: str) -> list[str]:
    """Первый sitemap, в котором нашлись URL. Сетевые ошибки игнорируются."""
    for path in SITEMAP_PATHS:
        sitemap_url = urljoin(base_url, path)
        try:
            resp = await client.get(sitemap_url)
        except httpx.HTTPError as e:
            logger.debug(f"[routes] Sitemap {sitemap_url} unavailable: {e}")
            continue
        if resp.status_code != 200:
            continue
        urls = parse_sitemap(resp.content)
        if urls:
            logger.info(f"[routes] Sitemap {sitemap_url}: {len(urls)} urls")
            return urls
    return []


def filter_routes(
    paths: list[str],
    max_depth: int | None = None,
    limit: int | None = 10,
    exclude_patterns: list[str] | None = None,
) -> RouteScanResult:
    """Дедупликация, сортировка по глубине, фильтры и лимит."""
    unique = list(dict.fromkeys(normalize_path(p) for p in paths))
    routes = sorted(unique, key=route_depth)
    patterns = exclude_patterns or []
    routes = [
        r for r in routes
        if not any(p in r for p in patterns)
        and (max_depth is None or route_depth(r) <= max_depth)
    ]
    if limit is not None:
        routes = routes[:limit]
    return RouteScanResult(routes=routes, total=len(unique))


async def scan_routes(
    page: Page,
    max_depth: int | None = None,
    limit: int | None = 10,
    exclude_patterns: list[str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> RouteScanResult:
    """
    Собрать маршруты сайта с загруженной страницы:
    текущий путь, все same-origin ссылки, навигацию и sitemap.
    """
    data = await page.evaluate(COLLECT_LINKS_SCRIPT, list(NAV_SELECTORS))
    base_url: str = data["url"]
    paths = [normalize_path(urlsplit(base_url).path)]
    paths.extend(same_origin_paths(base_url, data["hrefs"]))

    if http_client is None:
        async with httpx.AsyncClient(timeout=SITEMAP_TIMEOUT, follow_redirects=True) as client:
            sitemap_urls = await fetch_sitemap_urls(client, base_url)
    else:
        sitemap_urls = await fetch_sitemap_urls(http_client, base_url)
    paths.extend(same_origin_paths(base_url, sitemap_urls))

    result = filter_routes(paths, max_depth, limit, exclude_patterns)
    logger.info(f"[routes] {base_url}: {len(result.routes)}/{result.total} routes selected")
    return result


def build_full_urls(base_url: str, routes: list[str]) -> list[str]:
    return [urljoin(base_url, route) for route in routes]


def group_routes(routes: list[str]) -> dict[str, list[str]]:
    """Разложить маршруты по разделам сайта."""
    groups: dict[str, list[str]] = {
        "root": [], "blog": [], "docs": [], "products": [], "other": [],
    }
    for route in routes:
        if route == "/":
            groups["root"].append(route)
        elif "/blog" in route:
            groups["blog"].append(route)
        elif "/doc" in route:
            groups["docs"].append(route)
        elif "/product" in route:
            groups["products"].append(route)
        else:
            groups["other"].append(route)
    return groups
