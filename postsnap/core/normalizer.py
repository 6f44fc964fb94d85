"""Map raw strategy output into PostSummary / RetrievalResult."""

import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from postsnap.models.data_models import PostSummary, RetrievalResult, SourceStrategy
from postsnap.utils.config import DEFAULT_CAPTION, INSTAGRAM_BASE_URL, MAX_ITEMS
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)

_SHORTCODE_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def permalink_for(shortcode: str) -> str:
    """Canonical URL of a post."""
    return f"{INSTAGRAM_BASE_URL}/p/{shortcode}/"


def profile_url_for(username: str) -> str:
    """Canonical URL of a profile."""
    return f"{INSTAGRAM_BASE_URL}/{username}/"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return ""


def _from_epoch(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def normalize_post(raw: Mapping[str, Any]) -> Optional[PostSummary]:
    """
    Build a PostSummary from a flat candidate mapping.

    Expected keys: ``shortcode`` (required), ``media_url``, ``caption`` and
    ``captured_at`` (datetime or epoch seconds). Returns None when the
    candidate has no usable shortcode.
    """
    if not isinstance(raw, Mapping):
        return None

    shortcode = _as_text(raw.get("shortcode"))
    if not shortcode or not _SHORTCODE_RE.match(shortcode):
        return None

    captured_at = raw.get("captured_at")
    if not isinstance(captured_at, datetime):
        captured_at = _from_epoch(captured_at) or _utcnow()

    return PostSummary(
        shortcode=shortcode,
        permalink=permalink_for(shortcode),
        captured_at=captured_at,
        media_url=_as_text(raw.get("media_url")),
        caption=_as_text(raw.get("caption")) or DEFAULT_CAPTION,
    )


def normalize_candidates(candidates: Iterable[Mapping[str, Any]], limit: int = MAX_ITEMS) -> List[PostSummary]:
    """Normalize up to ``limit`` candidates, dropping unusable ones."""
    posts: List[PostSummary] = []
    try:
        for raw in candidates:
            if len(posts) >= limit:
                break
            post = normalize_post(raw)
            if post:
                posts.append(post)
    except TypeError:
        logger.debug("Candidates were not iterable, treating as empty")
        return []
    return posts


def _caption_from_node(node: Mapping[str, Any]) -> str:
    edges = (node.get("edge_media_to_caption") or {}).get("edges")
    if isinstance(edges, list) and edges and isinstance(edges[0], Mapping):
        return _as_text((edges[0].get("node") or {}).get("text"))
    return ""


def normalize_api_payload(payload: Any, limit: int = MAX_ITEMS) -> List[PostSummary]:
    """
    Extract posts from a ``web_profile_info`` response body.

    Shape: ``data.user.edge_owner_to_timeline_media.edges[].node``. Anything
    that does not match is treated as zero posts.
    """
    try:
        edges = payload["data"]["user"]["edge_owner_to_timeline_media"]["edges"]
    except (KeyError, TypeError):
        return []
    if not isinstance(edges, list):
        return []

    candidates = []
    for edge in edges[:limit]:
        node = edge.get("node") if isinstance(edge, Mapping) else None
        if not isinstance(node, Mapping):
            continue
        try:
            candidates.append({
                "shortcode": node.get("shortcode"),
                "media_url": node.get("display_url") or node.get("thumbnail_src"),
                "caption": _caption_from_node(node),
                "captured_at": node.get("taken_at_timestamp"),
            })
        except (AttributeError, KeyError, TypeError) as e:
            logger.warning(f"Failed to parse post node: {str(e)}")
    return normalize_candidates(candidates, limit)


def build_result(
    items: Sequence[PostSummary],
    source: SourceStrategy,
    limit: int = MAX_ITEMS,
    error: Optional[str] = None,
) -> Optional[RetrievalResult]:
    """Wrap normalized posts into a RetrievalResult; None when there are none."""
    items = tuple(items[:limit])
    if not items:
        return None
    return RetrievalResult(
        primary=items[0],
        items=items,
        source=source,
        success=True,
        error=error,
    )
