"""Selector cascade used against the rendered profile page.

Instagram changes its markup frequently, so the page scraper tries a
prioritized list of patterns. Earlier patterns are more specific; later ones
are looser and noisier. Each pattern is a pure function from a parsed
document snapshot to raw post candidates, which keeps them testable against
static HTML.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from postsnap.core.normalizer import permalink_for
from postsnap.utils.config import DEFAULT_CAPTION, MAX_ITEMS

SHORTCODE_RE = re.compile(r"/(?:p|reel)/([^/?#]+)")

# Anything shorter is a tracking pixel or a relative stub, not a CDN URL
MIN_MEDIA_URL_LENGTH = 50

Candidate = Dict[str, Any]


def parse_shortcode(href: Optional[str]) -> Optional[str]:
    """Pull the post shortcode out of a ``/p/<code>/`` or ``/reel/<code>/`` link."""
    if not href:
        return None
    match = SHORTCODE_RE.search(href)
    return match.group(1) if match else None


def best_srcset_url(srcset: Optional[str]) -> Optional[str]:
    """Return the last (highest resolution) candidate of a srcset list."""
    if not srcset:
        return None
    urls = [part.strip().split(" ")[0] for part in srcset.split(",")]
    urls = [url for url in urls if url]
    return urls[-1] if urls else None


def resolve_media_url(img: Optional[Tag], shortcode: str) -> str:
    """
    Pick the image URL for a post thumbnail.

    ``src`` wins unless it is missing, an inline data URI placeholder or
    implausibly short; then the srcset is used. Without an image at all the
    post's media redirect URL is returned.
    """
    media_url = img.get("src") if img is not None else None
    if not media_url or media_url.startswith("data:") or len(media_url) < MIN_MEDIA_URL_LENGTH:
        srcset_url = best_srcset_url(img.get("srcset")) if img is not None else None
        if srcset_url:
            media_url = srcset_url
    if not media_url:
        media_url = f"{permalink_for(shortcode)}media/?size=l"
    return media_url


def element_to_candidate(element: Tag, captured_at: Optional[datetime] = None) -> Optional[Candidate]:
    """Turn one matched element (a link or an image inside one) into a candidate."""
    link = element.find_parent("a") if element.name == "img" else element
    if link is None:
        return None

    shortcode = parse_shortcode(link.get("href"))
    if not shortcode:
        return None

    img = element if element.name == "img" else link.find("img")
    caption = (img.get("alt") if img is not None else None) or DEFAULT_CAPTION

    return {
        "shortcode": shortcode,
        "media_url": resolve_media_url(img, shortcode),
        "caption": caption,
        "captured_at": captured_at or datetime.now(timezone.utc),
    }


def extract_elements(document: BeautifulSoup, css: str, limit: int = MAX_ITEMS) -> List[Candidate]:
    """Default extractor: the first ``limit`` matches of ``css``."""
    captured_at = datetime.now(timezone.utc)
    candidates = []
    for element in document.select(css, limit=limit):
        candidate = element_to_candidate(element, captured_at)
        if candidate:
            candidates.append(candidate)
    return candidates


@dataclass(frozen=True)
class SelectorPattern:
    """One entry of the selector cascade."""
    name: str
    css: str
    extractor: Callable[[BeautifulSoup, str, int], List[Candidate]] = field(default=extract_elements)

    def extract(self, document: BeautifulSoup, limit: int = MAX_ITEMS) -> List[Candidate]:
        return self.extractor(document, self.css, limit)


DEFAULT_PATTERNS: List[SelectorPattern] = [
    SelectorPattern("article-post-link", 'article a[href*="/p/"]'),
    SelectorPattern("post-link-image", 'a[href*="/p/"] img'),
    SelectorPattern("button-post-link", 'div[role="button"] a[href*="/p/"]'),
    SelectorPattern("main-article-post-link", 'main article a[href*="/p/"]'),
    SelectorPattern("article-grid-post-link", 'article > div a[href*="/p/"]'),
    SelectorPattern("reel-link", 'a[href*="/reel/"]'),
    SelectorPattern("any-post-link", 'a[href*="/p/"]'),
]


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")
