from __future__ import annotations

import re
import warnings
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning


DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; Googlebot/2.1)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class MetadataFetchError(Exception):
    pass


@dataclass
class PageMetadata:
    title: str | None = None
    description: str | None = None
    image: str | None = None

    def as_payload(self) -> dict:
        return {
            "ogImage": self.image,
            "ogTitle": self.title,
            "ogDesc": self.description,
        }


def _normalize_error(exc: Exception) -> str:
    message = str(exc).strip()
    if message:
        return message
    return exc.__class__.__name__


def fetch_html(url: str, timeout: float, max_bytes: int) -> str:
    with httpx.Client(
        follow_redirects=True, timeout=timeout, headers=DEFAULT_HEADERS
    ) as client:
        with client.stream("GET", url) as response:
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    break
                chunks.append(chunk)
            data = b"".join(chunks)
            encoding = response.encoding or "utf-8"
            return data.decode(encoding, errors="ignore")


def _build_soup(html: str) -> BeautifulSoup:
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        return BeautifulSoup(html, "lxml")


def _meta_content(soup: BeautifulSoup, attribute: str, value: str) -> str | None:
    pattern = re.compile(rf"^{re.escape(value)}$", re.IGNORECASE)
    for tag in soup.find_all("meta", attrs={attribute: pattern}):
        content = (tag.get("content") or "").strip()
        if content:
            return content
    return None


def _title_text(soup: BeautifulSoup) -> str | None:
    if soup.title and soup.title.string:
        return soup.title.string.strip() or None
    return None


def extract_metadata(html: str) -> PageMetadata:
    soup = _build_soup(html or "")
    return PageMetadata(
        title=_meta_content(soup, "property", "og:title") or _title_text(soup),
        description=_meta_content(soup, "property", "og:description")
        or _meta_content(soup, "name", "description"),
        image=_meta_content(soup, "property", "og:image"),
    )


def fetch_metadata(url: str, timeout: float, max_bytes: int) -> PageMetadata:
    try:
        html = fetch_html(url, timeout=timeout, max_bytes=max_bytes)
    except (httpx.HTTPError, httpx.InvalidURL, LookupError, ValueError) as exc:
        raise MetadataFetchError(_normalize_error(exc)) from exc
    return extract_metadata(html)
