"""
Naver Search API client and page text helpers.

Used by the company brief service to find news, company pages and blog
posts. A 429 from Naver blocks further searches for an hour through the
shared FetchGuard.
"""

import logging
import re
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from src.common.config import Config
from src.common.error_handling import QuotaBlockedError
from src.services.fetch_guard import FetchGuard, get_fetch_guard

logger = logging.getLogger(__name__)

NAVER_API_BASE = "https://openapi.naver.com/v1/search"
DEFAULT_FETCH_TIMEOUT = 8.0
DEFAULT_MAX_CHARS = 12000
USER_AGENT = "Mozilla/5.0 (compatible; docsmith/1.0)"

_WHITESPACE = re.compile(r"\s+")


def strip_tags(html: str) -> str:
    """Visible text of an HTML string, whitespace collapsed."""
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return _WHITESPACE.sub(" ", soup.get_text(" ")).strip()


def host_from_url(url: Optional[str]) -> str:
    """Hostname without a leading ``www.``; empty for unparseable input."""
    if not url:
        return ""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return re.sub(r"^www\.", "", hostname)


def _iso_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value).isoformat()
    except (TypeError, ValueError):
        return None


async def fetch_text_from_url(
    url: str,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    max_chars: int = DEFAULT_MAX_CHARS,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Download a page and return its visible text, truncated.

    Unreachable pages and non-2xx responses yield "" so a single bad
    candidate URL never fails a whole evidence pass.
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(follow_redirects=True, headers={"User-Agent": USER_AGENT})
    try:
        response = await http.get(url, timeout=timeout)
        if response.status_code >= 400:
            return ""
        return strip_tags(response.text)[:max_chars]
    except httpx.HTTPError as e:
        logger.debug(f"Fetch failed for {url}: {type(e).__name__}")
        return ""
    finally:
        if owns_client:
            await http.aclose()


class NaverClient:
    """
    Args:
        client_id / client_secret: API credentials (default: Config)
        guard: FetchGuard tracking the quota block (default: process guard)
        http_client: Shared httpx.AsyncClient (tests pass a mock transport)
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        guard: Optional[FetchGuard] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.client_id = Config.NAVER_CLIENT_ID if client_id is None else client_id
        self.client_secret = Config.NAVER_CLIENT_SECRET if client_secret is None else client_secret
        self.guard = guard or get_fetch_guard()
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def headers(self) -> Dict[str, str]:
        return {
            "X-Naver-Client-Id": self.client_id,
            "X-Naver-Client-Secret": self.client_secret,
        }

    async def search(self, kind: str, query: str, display: int = 10, sort: str = "sim") -> List[Dict[str, Any]]:
        """
        Raw search call returning Naver's ``items`` list.

        Raises:
            QuotaBlockedError: While blocked, or when Naver answers 429
            httpx.HTTPStatusError: Any other non-2xx response
        """
        self.guard.ensure_not_blocked()
        response = await self.http_client.get(
            f"{NAVER_API_BASE}/{kind}.json",
            params={"query": query, "display": display, "sort": sort},
            headers=self.headers(),
        )
        if response.status_code == 429:
            self.guard.block_quota()
            raise QuotaBlockedError("검색 한도에 도달했습니다. 1시간 후 다시 시도해주세요.")
        response.raise_for_status()
        items = response.json().get("items")
        return items if isinstance(items, list) else []

    async def search_news(self, query: str, display: int = 15) -> List[Dict[str, Optional[str]]]:
        items = await self.search("news", query, display=display, sort="date")
        news = []
        for item in items:
            link = str(item.get("originallink") or item.get("link") or "")
            news.append({
                "title": strip_tags(item.get("title", "")),
                "url": link,
                "source": host_from_url(link) or "Naver News",
                "date": _iso_date(item.get("pubDate")),
            })
        return news

    async def search_web(self, query: str, display: int = 6) -> List[str]:
        items = await self.search("webkr", query, display=display, sort="sim")
        return [str(item.get("link") or "") for item in items if item.get("link")]

    async def search_blog(self, query: str, display: int = 6) -> List[Dict[str, str]]:
        items = await self.search("blog", query, display=display, sort="date")
        posts = []
        for item in items:
            title = strip_tags(item.get("title", ""))
            description = strip_tags(item.get("description", ""))
            link = str(item.get("link") or "")
            posts.append({
                "text": " - ".join(part for part in (title, description) if part)[:2400],
                "url": link,
                "source": host_from_url(link) or "Naver Blog",
            })
        return posts

    async def aclose(self) -> None:
        await self.http_client.aclose()
