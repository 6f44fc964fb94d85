"""Structured API strategy: Instagram's web_profile_info endpoint."""

from typing import Optional

import httpx

from postsnap.core.exceptions import (
    EmptyResultError,
    MalformedResponseError,
    SourceUnavailableError,
    StrategyError,
)
from postsnap.core.normalizer import build_result, normalize_api_payload
from postsnap.models.data_models import RetrievalResult, SourceStrategy
from postsnap.utils.config import (
    API_TIMEOUT,
    API_USER_AGENT,
    INSTAGRAM_APP_ID,
    INSTAGRAM_PROFILE_INFO_URL,
    MAX_ITEMS,
)
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)


class ApiScraper:
    """Fetches recent posts from the machine-readable profile endpoint."""

    name = SourceStrategy.STRUCTURED_API

    def __init__(
        self,
        timeout: float = API_TIMEOUT,
        limit: int = MAX_ITEMS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize scraper.

        Args:
            timeout: Total connect/read budget in seconds
            limit: Maximum number of posts to return
            client: Pre-built HTTP client (owned by the caller)
        """
        self.timeout = timeout
        self.limit = limit
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self):
        """Create HTTP client on context entry."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close HTTP client on context exit."""
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _get_headers(self) -> dict:
        return {
            "User-Agent": API_USER_AGENT,
            "X-IG-App-ID": INSTAGRAM_APP_ID,
            "Accept": "*/*",
        }

    async def fetch(self, username: str) -> RetrievalResult:
        """
        Fetch the most recent posts for a username.

        Args:
            username: Instagram username

        Returns:
            RetrievalResult with 1..limit posts

        Raises:
            SourceUnavailableError: Transport failure or non-200 status
            MalformedResponseError: Body is not the expected JSON object
            EmptyResultError: Profile has no timeline posts
        """
        if not self.client:
            raise SourceUnavailableError("ApiScraper must be used as context manager")

        logger.info(f"Trying Instagram API for @{username}")

        try:
            response = await self.client.get(
                INSTAGRAM_PROFILE_INFO_URL,
                params={"username": username},
                headers=self._get_headers(),
                timeout=self.timeout,
            )

            if response.status_code != 200:
                raise SourceUnavailableError(f"API returned {response.status_code}")

            try:
                payload = response.json()
            except ValueError:
                logger.debug(f"Response preview: {response.text[:200]}")
                raise MalformedResponseError("Invalid JSON response from Instagram")

            if not isinstance(payload, dict):
                raise MalformedResponseError(f"Unexpected payload type: {type(payload).__name__}")

            posts = normalize_api_payload(payload, self.limit)
            result = build_result(posts, self.name, self.limit)
            if result is None:
                raise EmptyResultError(f"No posts in API response for @{username}")

            logger.info(f"Found {len(result.items)} posts via API for @{username}")
            return result

        except StrategyError:
            raise
        except httpx.TimeoutException as e:
            raise SourceUnavailableError(f"Request timeout: {str(e)}")
        except httpx.HTTPError as e:
            raise SourceUnavailableError(f"HTTP error: {str(e)}")
        except Exception as e:
            logger.exception(f"Unexpected error in API scraper for @{username}")
            raise SourceUnavailableError(f"Unexpected error: {str(e)}")
