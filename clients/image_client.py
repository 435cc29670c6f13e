"""Best-effort photo lookup via the Unsplash API."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
from urllib.parse import urlparse

import requests

from discovery.settings import Settings

logger = logging.getLogger(__name__)

IMAGE_TIMEOUT = 5


class ImageLookupClient:
    """Resolve a short keyword to a photo URL.

    Every failure (missing key, HTTP error, timeout, bad payload) is logged and
    turned into ``None``; callers fall back to local images.
    """

    def __init__(self, settings: Settings):
        self.api_url = settings.unsplash_api_url
        self.access_key = settings.unsplash_access_key

    def fetch_image(self, keyword: Optional[str], orientation: str = "landscape") -> Optional[str]:
        if not self.access_key:
            logger.info("No Unsplash access key, skipping image fetch")
            return None

        if not keyword or not keyword.strip():
            logger.info("No keyword provided, skipping image fetch")
            return None

        normalized = keyword.strip().lower()
        headers = {
            "Authorization": f"Client-ID {self.access_key}",
            "Accept-Version": "v1",
        }
        params = {"query": normalized, "orientation": orientation, "content_filter": "high"}

        try:
            response = requests.get(self.api_url, headers=headers, params=params, timeout=IMAGE_TIMEOUT)
        except requests.Timeout:
            logger.warning(f"Image lookup for '{normalized}' timed out after {IMAGE_TIMEOUT}s")
            return None
        except requests.RequestException as e:
            logger.warning(f"Image lookup for '{normalized}' failed: {e}")
            return None

        if response.status_code == 403:
            logger.warning("Unsplash rate limit exceeded or invalid access key")
            return None
        if response.status_code == 404:
            logger.info(f"No images found for keyword: {normalized}")
            return None
        if response.status_code != 200:
            logger.warning(f"Unsplash API error: {response.status_code}")
            return None

        try:
            data = response.json()
            image_url = data["urls"]["regular"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unexpected Unsplash payload for '{normalized}': {e}")
            return None

        if not isinstance(image_url, str) or not image_url:
            return None

        logger.info(f"Fetched image for '{normalized}': {image_url}")
        return image_url

    def fetch_images(self, keywords: List[Optional[str]], max_workers: int = 4) -> List[Optional[str]]:
        """Look up several keywords concurrently, preserving order."""
        if not keywords:
            return []
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.fetch_image, keywords))


def is_unsplash_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return False
    return host == "unsplash.com" or host.endswith(".unsplash.com")
