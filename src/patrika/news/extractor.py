from __future__ import annotations

import html
import logging
import re
from typing import Any, ClassVar
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from patrika.core.config import BROWSER_USER_AGENT, Settings

LOGGER = logging.getLogger(__name__)

PLACEHOLDER_IMAGE_URL = "https://placehold.co/640x360?text=News+Image"

_IMG_TAG_RE = re.compile(r'<img[^>]+src="([^"]+)"', re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


def truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    if len(words) > max_words:
        return " ".join(words[:max_words]) + "..."
    return " ".join(words)


def strip_html(markup: str) -> str:
    return html.unescape(_HTML_TAG_RE.sub("", markup)).strip()


def _declared_size(value: Any) -> int:
    match = _LEADING_INT_RE.match(str(value or ""))
    return int(match.group(1)) if match else 0


def _web_url(base: str, candidate: str) -> str | None:
    """Resolve `candidate` against `base`, keeping only http(s) results."""
    resolved = urljoin(base, candidate.strip())
    if urlparse(resolved).scheme not in ("http", "https"):
        return None
    return resolved


def _image_from_media(entry: Any) -> str | None:
    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            url = media.get("url")
            if url:
                return url

    links = [link for link in entry.get("links") or [] if link.get("rel") == "enclosure"]
    for enclosure in [*(entry.get("enclosures") or []), *links]:
        url = enclosure.get("href") or enclosure.get("url")
        kind = enclosure.get("type") or ""
        if url and (not kind or kind.startswith("image/")):
            return url
    return None


def _image_from_markup(entry: Any) -> str | None:
    candidates: list[str] = [block.get("value") or "" for block in entry.get("content") or []]
    candidates.append(entry.get("summary") or "")
    candidates.append(entry.get("description") or "")
    for markup in candidates:
        match = _IMG_TAG_RE.search(markup)
        if match:
            return match.group(1)
    return None


def _feed_snippet(entry: Any) -> str:
    raw = entry.get("summary") or entry.get("description") or ""
    if raw == "null":
        return ""
    return strip_html(raw)


class ContentExtractor:
    """Derive an image URL and a bounded summary for a feed entry.

    Lookups prefer data carried by the feed itself and only fetch the article
    page as a last resort. Every network or parsing problem is logged and turned
    into the next fallback; neither public method raises.
    """

    CONTENT_SELECTORS: ClassVar[tuple[str, ...]] = (
        "article",
        ".article-content",
        ".post-content",
        ".entry-content",
        '[itemprop="articleBody"]',
        ".story-body",
        ".news-article",
        ".content-body",
        "main",
        "#content",
        ".main-content",
    )
    MIN_IMAGE_SIDE: ClassVar[int] = 100
    MIN_PARAGRAPH_CHARS: ClassVar[int] = 20

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout_seconds: float = 5.0,
        user_agent: str = BROWSER_USER_AGENT,
        placeholder_image_url: str = PLACEHOLDER_IMAGE_URL,
        max_words: int = 100,
    ) -> None:
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.placeholder_image_url = placeholder_image_url
        self.max_words = max_words
        self._pages: dict[str, BeautifulSoup | None] = {}

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> ContentExtractor:
        return cls(
            client,
            timeout_seconds=settings.article_timeout_seconds,
            user_agent=settings.http_user_agent,
            placeholder_image_url=settings.placeholder_image_url,
            max_words=settings.summary_max_words,
        )

    def reset(self) -> None:
        self._pages.clear()

    async def extract_image(self, entry: Any) -> str:
        try:
            image = _image_from_media(entry) or _image_from_markup(entry)
            if image:
                return image

            link = entry.get("link")
            if link:
                image = await self._image_from_article(link)
                if image:
                    return image
        except Exception as exc:
            LOGGER.warning("Image extraction failed for %r: %s", entry.get("title"), exc)
        return self.placeholder_image_url

    async def extract_summary(self, entry: Any) -> str | None:
        try:
            snippet = _feed_snippet(entry)
            if snippet:
                return truncate_words(snippet, self.max_words)

            link = entry.get("link")
            if link:
                return await self._summary_from_article(link)
        except Exception as exc:
            LOGGER.warning("Summary extraction failed for %r: %s", entry.get("title"), exc)
        return None

    async def _fetch_page(self, url: str) -> BeautifulSoup | None:
        if url in self._pages:
            return self._pages[url]

        soup: BeautifulSoup | None = None
        try:
            response = await self._client.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
                follow_redirects=True,
            )
            response.raise_for_status()
            soup = BeautifulSoup(response.text, "html.parser")
        except httpx.HTTPError as exc:
            LOGGER.warning("Error fetching article page %s: %s", url, exc)

        self._pages[url] = soup
        return soup

    async def _image_from_article(self, url: str) -> str | None:
        soup = await self._fetch_page(url)
        if soup is None:
            return None

        for attrs in ({"property": "og:image"}, {"name": "twitter:image"}, {"property": "twitter:image"}):
            meta = soup.find("meta", attrs=attrs)
            if meta and meta.get("content"):
                image = _web_url(url, meta["content"])
                if image:
                    return image

        for img in soup.find_all("img"):
            src = img.get("data-src") or img.get("src")
            if not src:
                continue
            width = _declared_size(img.get("width"))
            height = _declared_size(img.get("height"))
            if (width == 0 and height == 0) or (width > self.MIN_IMAGE_SIDE and height > self.MIN_IMAGE_SIDE):
                image = _web_url(url, src)
                if image:
                    return image
        return None

    async def _summary_from_article(self, url: str) -> str | None:
        soup = await self._fetch_page(url)
        if soup is None:
            return None

        content = ""
        for selector in self.CONTENT_SELECTORS:
            containers = soup.select(selector)
            if not containers:
                continue
            content = " ".join(p.get_text(" ", strip=True) for node in containers for p in node.find_all("p"))
            if content.strip():
                break

        if not content.strip():
            paragraphs = (p.get_text(" ", strip=True) for p in soup.find_all("p"))
            content = " ".join(text for text in paragraphs if len(text) > self.MIN_PARAGRAPH_CHARS)

        content = content.strip()
        if not content:
            return None
        return truncate_words(content, self.max_words)
