"""Last-resort strategy: point the caller at the profile embed."""

from datetime import datetime, timezone
from typing import Optional

from postsnap.core.normalizer import profile_url_for
from postsnap.models.data_models import PostSummary, RetrievalResult, SourceStrategy
from postsnap.utils.config import FALLBACK_CAPTION_TEMPLATE


class FallbackScraper:
    """Synthesizes a single placeholder post referencing the profile itself."""

    name = SourceStrategy.FALLBACK

    async def fetch(self, username: str, reason: Optional[str] = None) -> RetrievalResult:
        post = PostSummary(
            shortcode=username,
            permalink=profile_url_for(username),
            captured_at=datetime.now(timezone.utc),
            media_url="",
            caption=FALLBACK_CAPTION_TEMPLATE.format(username=username),
            uses_embed_fallback=True,
        )
        return RetrievalResult(
            primary=post,
            items=(post,),
            source=self.name,
            success=True,
            error=reason,
        )
