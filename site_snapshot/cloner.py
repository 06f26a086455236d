"""Orchestration of preview extraction, static cloning and edited exports."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from site_snapshot.assets import Content, SnapshotRun, content_addressed_name
from site_snapshot.config import Config
from site_snapshot.css import rewrite_css
from site_snapshot.exceptions import (
    CloneError,
    ExportError,
    ExtractionError,
    InputValidationError,
)
from site_snapshot.fetcher import AssetFetcher
from site_snapshot.minify import Minifier
from site_snapshot.renderer import PageRenderer
from site_snapshot.structure import StructureNode, extract_structure, tag_sections
from site_snapshot.urls import extract_extension, is_inline_uri, to_absolute

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"

EXPORT_DOCUMENT = """<!doctype html>
<html>
<head>
<meta charset="utf-8"/>
<meta name="viewport" content="width=device-width,initial-scale=1"/>
<style>{theme_css}</style>
</head>
<body>
{body}
</body>
</html>
"""


@dataclass
class PreviewResult:
    """Body markup, layout regions and combined CSS of a rendered page."""

    body_html: str
    structure: List[StructureNode]
    css: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "body_html": self.body_html,
            "structure": [node.to_dict() for node in self.structure],
            "css": self.css,
        }


def _require(**fields: Optional[str]) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise InputValidationError(f"{' and '.join(missing)} required")


def _stylesheet_links(soup: BeautifulSoup) -> List[Tag]:
    return soup.find_all("link", rel="stylesheet")


def _remove_base_tags(soup: BeautifulSoup) -> None:
    for base in soup.find_all("base"):
        base.decompose()


def _image_folder(ext: str) -> str:
    return "favicon" if ext == "ico" else "images"


def _attribute_escaped(url: str) -> str:
    """Get ``url`` the way BeautifulSoup serializes it inside an attribute."""
    return url.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def replace_recorded_urls(html: str, recorded: Iterable[Tuple[str, str]]) -> str:
    """Point every literal occurrence of a downloaded URL at its archive path.

    Longer URLs are replaced first so a URL that prefixes another one (the same
    file without its query string, say) cannot clobber it.
    """
    for abs_url, local_path in sorted(recorded, key=lambda item: len(item[0]), reverse=True):
        if is_inline_uri(abs_url):
            continue
        html = html.replace(abs_url, local_path)
        escaped = _attribute_escaped(abs_url)
        if escaped != abs_url:
            html = html.replace(escaped, local_path)
    return html


async def _settle(jobs: List[Awaitable[Any]]) -> None:
    """Wait for every job; a failed job is logged and never cancels its siblings."""
    results = await asyncio.gather(*jobs, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.warning("Asset job failed: %s", result)


class SiteCloner:
    """Turns a live page into a preview payload or a self-contained ZIP archive."""

    def __init__(
        self,
        config: Optional[Config] = None,
        renderer: Optional[PageRenderer] = None,
        fetcher: Optional[AssetFetcher] = None,
    ):
        """Initialize cloner with configuration."""
        self.config = config or Config()
        self.renderer = renderer or PageRenderer(self.config)
        self.fetcher = fetcher or AssetFetcher(self.config)
        self.minifier = Minifier(self.config)

    # Preview extraction

    async def scrape(self, website_url: str) -> PreviewResult:
        """Render a page and return its body, structure and linked CSS."""
        _require(website_url=website_url)
        try:
            return await self._scrape(website_url)
        except Exception as e:
            logger.exception("Scrape failed for %s", website_url)
            raise ExtractionError("Scraping failed") from e

    async def _scrape(self, website_url: str) -> PreviewResult:
        html = await self.renderer.render(website_url)
        soup = BeautifulSoup(html, "lxml")
        structure = extract_structure(soup)
        tag_sections(soup)
        body_html = soup.body.decode_contents() if soup.body is not None else ""

        css_urls = []
        for link in _stylesheet_links(soup):
            abs_url = to_absolute(link.get("href"), website_url)
            if abs_url and not is_inline_uri(abs_url):
                css_urls.append(abs_url)

        css_texts = await asyncio.gather(*(self.fetcher.fetch_text(url) for url in css_urls))
        return PreviewResult(body_html=body_html, structure=structure, css="\n\n".join(css_texts))

    # Full static clone

    async def clone_static(self, website_url: str) -> bytes:
        """Render a page and package it with all of its assets as a ZIP archive."""
        _require(website_url=website_url)
        try:
            return await self._clone_static(website_url)
        except Exception as e:
            logger.exception("Static clone failed for %s", website_url)
            raise CloneError("Static clone failed") from e

    async def _clone_static(self, website_url: str) -> bytes:
        html = await self.renderer.render(website_url)
        soup = BeautifulSoup(html, "lxml")
        _remove_base_tags(soup)

        run = SnapshotRun(self.fetcher)
        jobs: List[Awaitable[Any]] = []

        for link in _stylesheet_links(soup):
            abs_url = to_absolute(link.get("href"), website_url)
            if not abs_url or is_inline_uri(abs_url):
                continue
            link["href"] = abs_url
            jobs.append(self._archive_stylesheet(run, abs_url))

        for script in soup.find_all("script", src=True):
            abs_url = to_absolute(script.get("src"), website_url)
            if not abs_url or is_inline_uri(abs_url):
                continue
            script["src"] = abs_url
            jobs.append(
                run.ensure_downloaded(
                    abs_url, "js", extract_extension(abs_url, "js"), transform=self.minifier.minify_js
                )
            )

        for img in soup.find_all("img"):
            src = img.get("src") or img.get("data-src") or img.get("data-original")
            # Only the chosen resolution is archived
            for attr in ("srcset", "sizes"):
                if attr in img.attrs:
                    del img[attr]
            abs_url = to_absolute(src, website_url)
            if not abs_url or is_inline_uri(abs_url):
                continue
            img["src"] = abs_url
            ext = extract_extension(abs_url, "png")
            jobs.append(run.ensure_downloaded(abs_url, _image_folder(ext), ext))

        for style in soup.find_all("style"):
            if style.string and style.string.strip():
                jobs.append(self._rewrite_inline_style(run, style, website_url))

        await _settle(jobs)
        logger.info("Archived %d assets for %s", len(run.store), website_url)

        html = replace_recorded_urls(soup.decode(), run.store.items())
        soup = BeautifulSoup(html, "lxml")
        _remove_base_tags(soup)

        run.archive.write(INDEX_FILE, self.minifier.optimize_html(soup.decode()))
        return run.archive.to_zip()

    async def _archive_stylesheet(self, run: SnapshotRun, abs_url: str) -> None:
        async def download_stylesheet() -> Optional[Tuple[str, Content]]:
            data = await self.fetcher.fetch(abs_url)
            if data is None:
                return None
            css_text = await rewrite_css(data.decode("utf-8", errors="replace"), abs_url, run)
            return f"css/{content_addressed_name(abs_url, 'css')}", self.minifier.minify_css(css_text)

        await run.store_asset(abs_url, download_stylesheet)

    async def _rewrite_inline_style(self, run: SnapshotRun, style: Tag, website_url: str) -> None:
        # index.html sits at the archive root, so no ../ prefix
        style.string = await rewrite_css(style.string, website_url, run, css_dir="")

    # Export with edits

    async def export_with_edits(
        self, website_url: str, edited_html: str, theme_css: Optional[str] = None
    ) -> bytes:
        """Package editor output and its theme CSS, archiving the images it shows."""
        _require(website_url=website_url, edited_html=edited_html)
        try:
            return await self._export_with_edits(website_url, edited_html, theme_css or "")
        except Exception as e:
            logger.exception("Export failed for %s", website_url)
            raise ExportError("Export failed") from e

    async def _export_with_edits(self, website_url: str, edited_html: str, theme_css: str) -> bytes:
        soup = BeautifulSoup(edited_html, "lxml")
        run = SnapshotRun(self.fetcher)

        await _settle([self._archive_edited_image(run, img, website_url) for img in soup.find_all("img")])

        # lxml wraps fragments in <html><body>; only the body content is embedded
        body = soup.body.decode_contents() if soup.body is not None else soup.decode()
        run.archive.write(INDEX_FILE, EXPORT_DOCUMENT.format(theme_css=theme_css, body=body))
        return run.archive.to_zip()

    async def _archive_edited_image(self, run: SnapshotRun, img: Tag, website_url: str) -> None:
        abs_url = to_absolute(img.get("src"), website_url)
        if not abs_url or is_inline_uri(abs_url):
            return
        ext = extract_extension(abs_url, "png")
        resolution = await run.ensure_downloaded(abs_url, _image_folder(ext), ext)
        if resolution.stored:
            img["src"] = resolution.local_path
