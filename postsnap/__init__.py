"""PostSnap - recent public Instagram posts with a cached multi-strategy scraper."""

from postsnap.utils.config import APP_VERSION

__version__ = APP_VERSION
