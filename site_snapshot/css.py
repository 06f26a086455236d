"""Rewriting of ``url()`` references inside stylesheets."""

import asyncio
import logging
import re
from typing import Dict, List

from site_snapshot.assets import AssetResolution, SnapshotRun
from site_snapshot.urls import (
    classify_folder,
    extract_extension,
    is_font_url,
    is_inline_uri,
    to_absolute,
)

logger = logging.getLogger(__name__)

# url(x), url('x'), url("x"); group 2 is the raw reference
CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)(.*?)\1\s*\)""", re.IGNORECASE)


def relative_from_css(local_path: str, css_dir: str = "css") -> str:
    """Get the path of an archived asset as seen from a stylesheet in ``css_dir``."""
    if not css_dir:
        return local_path
    prefix = css_dir.rstrip("/") + "/"
    if local_path.startswith(prefix):
        return local_path[len(prefix):]
    return "../" + local_path


async def _download_reference(raw: str, css_file_url: str, run: SnapshotRun) -> AssetResolution:
    abs_url = to_absolute(raw, css_file_url)
    if not abs_url:
        return AssetResolution.unavailable()
    ext = extract_extension(abs_url, "woff2" if is_font_url(abs_url) else "png")
    return await run.ensure_downloaded(abs_url, classify_folder(ext), ext)


async def rewrite_css(
    css_text: str,
    css_file_url: str,
    run: SnapshotRun,
    css_dir: str = "css",
) -> str:
    """Download every asset a stylesheet references and point it at the archive.

    ``css_file_url`` is the URL relative references are resolved against and
    ``css_dir`` the archive directory the rewritten text will live in (empty
    for ``<style>`` blocks inside ``index.html``). References that cannot be
    downloaded are left as they were.
    """
    if not css_text:
        return css_text

    raws: List[str] = []
    seen = set()
    for match in CSS_URL_RE.finditer(css_text):
        raw = match.group(2).strip()
        if not raw or is_inline_uri(raw) or raw in seen:
            continue
        seen.add(raw)
        raws.append(raw)
    if not raws:
        return css_text

    results = await asyncio.gather(
        *(_download_reference(raw, css_file_url, run) for raw in raws),
        return_exceptions=True,
    )
    resolved: Dict[str, str] = {}
    for raw, result in zip(raws, results):
        if isinstance(result, Exception):
            logger.warning("Could not resolve %s in %s: %s", raw, css_file_url, result)
        elif result.stored:
            resolved[raw] = relative_from_css(result.local_path, css_dir)

    def replace_css_url(match: "re.Match[str]") -> str:
        relative = resolved.get(match.group(2).strip())
        if relative is None:
            return match.group(0)
        return f'url("{relative}")'

    return CSS_URL_RE.sub(replace_css_url, css_text)
