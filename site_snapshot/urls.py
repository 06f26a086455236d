"""URL resolution and asset classification helpers."""

from typing import Optional
from urllib.parse import urljoin, urlparse

INLINE_SCHEMES = ("data:", "blob:")

FONT_EXTENSIONS = {"woff", "woff2", "ttf", "otf", "eot"}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "avif", "svg"}

# Archive folder per file extension; anything missing lands in "assets"
FOLDER_BY_EXTENSION = {
    "css": "css",
    "js": "js",
    "mjs": "js",
    "ico": "favicon",
}
FOLDER_BY_EXTENSION.update({ext: "images" for ext in IMAGE_EXTENSIONS})
FOLDER_BY_EXTENSION.update({ext: "fonts" for ext in FONT_EXTENSIONS})

MAX_EXTENSION_LENGTH = 6


def is_inline_uri(url: Optional[str]) -> bool:
    """Check if URL is an inline data:/blob: URI that is never archived."""
    return bool(url) and url.startswith(INLINE_SCHEMES)


def to_absolute(raw: Optional[str], base: str) -> str:
    """Resolve a raw href/src/url() value against the page it appeared on.

    Returns an absolute http(s) URL, the raw value itself for data:/blob:
    URIs, or an empty string when the value cannot be resolved. Never raises.
    """
    if not raw:
        return ""
    value = str(raw).strip()
    if not value:
        return ""
    if is_inline_uri(value):
        return value
    if value.startswith("//"):
        value = "https:" + value

    try:
        absolute = urljoin(base or "", value)
        parsed = urlparse(absolute)
    except ValueError:
        return ""

    # mailto:, javascript: and anything still relative are not fetchable assets
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return ""
    return absolute


def strip_query_and_fragment(url: str) -> str:
    """Drop the fragment and query string from a URL."""
    return str(url or "").split("#")[0].split("?")[0]


def extract_extension(url: str, fallback: str) -> str:
    """Get the lower-cased file extension of the URL's last path segment.

    Extensions longer than six characters are treated as missing, since they
    are usually slugs rather than file types.
    """
    last_segment = strip_query_and_fragment(url).split("/")[-1]
    dot = last_segment.rfind(".")
    if dot == -1:
        return fallback
    ext = last_segment[dot + 1:].lower()
    if not ext or len(ext) > MAX_EXTENSION_LENGTH:
        return fallback
    return ext


def classify_folder(ext: str) -> str:
    """Get the archive folder for a file extension."""
    return FOLDER_BY_EXTENSION.get(str(ext or "").lower(), "assets")


def is_font_url(url: str) -> bool:
    """Check if URL points at a web font file."""
    return extract_extension(url, "") in FONT_EXTENSIONS
