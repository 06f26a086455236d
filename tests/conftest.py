"""Shared fixtures for site-snapshot tests."""

import asyncio
from typing import Dict, List, Optional

import pytest


class FakeFetcher:
    """In-memory stand-in for AssetFetcher that records every request."""

    def __init__(self, responses: Optional[Dict[str, bytes]] = None):
        self.responses = responses or {}
        self.calls: List[str] = []

    async def fetch(self, url: str, timeout: Optional[float] = None) -> Optional[bytes]:
        self.calls.append(url)
        # Yield so concurrent callers really interleave
        await asyncio.sleep(0)
        return self.responses.get(url)

    async def fetch_text(self, url: str, timeout: Optional[float] = None) -> str:
        content = await self.fetch(url, timeout)
        return "" if content is None else content.decode("utf-8")


class FakeRenderer:
    """Returns canned HTML instead of driving a browser."""

    def __init__(self, html: str = "", error: Optional[Exception] = None):
        self.html = html
        self.error = error
        self.urls: List[str] = []

    async def render(self, url: str) -> str:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.html


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()
