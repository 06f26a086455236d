"""Best-effort asset downloads."""

import asyncio
import logging
from typing import Optional

import requests

from site_snapshot.config import Config
from site_snapshot.urls import is_font_url

logger = logging.getLogger(__name__)

HTML_SIGNATURES = (b"<!doctype", b"<!DOCTYPE", b"<html", b"<HTML")


def _mark_started(started: "asyncio.Future[None]") -> None:
    if not started.done():
        started.set_result(None)


class AssetFetcher:
    """Downloads asset bytes, collapsing every failure to ``None``."""

    def __init__(self, config: Optional[Config] = None, session: Optional[requests.Session] = None):
        """Initialize fetcher with configuration."""
        self.config = config or Config()
        self.timeout = self.config.fetch_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": self.config.user_agent})

    def _is_corrupted_font(self, content: bytes, url: str) -> bool:
        """Check if a downloaded font file is actually an HTML error page.

        Some CDNs answer missing fonts with a 200 and an HTML body.
        """
        if not is_font_url(url):
            return False
        return content[:200].strip().startswith(HTML_SIGNATURES)

    def download(self, url: str, timeout: Optional[float] = None) -> Optional[bytes]:
        """Download a file synchronously. Returns None on any failure."""
        timeout = self.timeout if timeout is None else timeout
        try:
            response = self.session.get(url, timeout=timeout, allow_redirects=True)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            logger.debug("Timed out fetching %s", url)
            return None
        except requests.exceptions.RequestException as e:
            logger.debug("Failed to fetch %s: %s", url, e)
            return None
        except Exception as e:
            logger.debug("Unexpected error fetching %s: %s", url, e)
            return None

        content = response.content
        if self._is_corrupted_font(content, url):
            logger.warning("Font %s is an HTML error page, skipping", url)
            return None
        return content

    async def fetch(self, url: str, timeout: Optional[float] = None) -> Optional[bytes]:
        """Download a file without blocking the event loop.

        The request is bounded by ``timeout`` seconds counted from the moment a
        worker thread picks it up, so time spent queued behind other downloads
        does not count. A late response is abandoned and reported as
        unavailable.
        """
        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started = loop.create_future()

        def download_in_worker() -> Optional[bytes]:
            loop.call_soon_threadsafe(_mark_started, started)
            return self.download(url, timeout)

        job = asyncio.ensure_future(asyncio.to_thread(download_in_worker))
        await asyncio.wait({started, job}, return_when=asyncio.FIRST_COMPLETED)
        try:
            return await asyncio.wait_for(job, timeout)
        except asyncio.TimeoutError:
            logger.debug("Aborted %s after %ss", url, timeout)
            return None

    async def fetch_text(self, url: str, timeout: Optional[float] = None) -> str:
        """Download a text resource such as a stylesheet; empty string on failure."""
        content = await self.fetch(url, timeout)
        if content is None:
            return ""
        return content.decode("utf-8", errors="replace")
