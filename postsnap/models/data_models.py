"""Data models for retrieved Instagram posts."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SourceStrategy(Enum):
    """Strategy that produced a retrieval result."""
    STRUCTURED_API = "Instagram API"
    RENDERED_PAGE = "Playwright Scraper"
    FALLBACK = "Embed Fallback"


@dataclass(frozen=True)
class PostSummary:
    """Represents one recent Instagram post."""
    shortcode: str
    permalink: str
    captured_at: datetime
    media_url: str = ""
    caption: str = ""
    uses_embed_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shortcode": self.shortcode,
            "media_url": self.media_url,
            "permalink": self.permalink,
            "caption": self.caption,
            "timestamp": self.captured_at.isoformat(),
            "embed_fallback": self.uses_embed_fallback,
        }


@dataclass(frozen=True)
class RetrievalResult:
    """Normalized answer for one username."""
    primary: PostSummary
    items: Tuple[PostSummary, ...]
    source: SourceStrategy
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape served over HTTP."""
        data: Dict[str, Any] = {
            "success": self.success,
            "post": self.primary.to_dict(),
            "allPosts": [item.to_dict() for item in self.items],
            "source": self.source.value,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class CacheEntry:
    """A cached result and the clock reading at which it was stored."""
    result: RetrievalResult
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.age(now) < ttl


@dataclass
class RetrievalStats:
    """Counters describing how requests were served."""
    cache_hits: int = 0
    cache_misses: int = 0
    served_by: Dict[str, int] = field(default_factory=dict)
    contained_failures: int = 0

    def record_source(self, source: SourceStrategy) -> None:
        self.served_by[source.name] = self.served_by.get(source.name, 0) + 1
