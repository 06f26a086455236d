"""Optional minification of archived HTML, CSS and JavaScript."""

import logging

import cssmin
import minify_html
import rjsmin

from site_snapshot.config import Config

logger = logging.getLogger(__name__)


class Minifier:
    """Applies the minifiers enabled in the configuration; no-op otherwise."""

    def __init__(self, config: Config):
        self.config = config

    def optimize_html(self, html: str) -> str:
        """Optimize HTML code."""
        if not self.config.optimize_html:
            return html

        try:
            return minify_html.minify(html, minify_js=False, minify_css=False)
        except Exception as e:
            logger.warning("Error optimizing HTML: %s", e)
            return html

    def minify_css(self, content: str) -> str:
        """Minify CSS."""
        if not self.config.minify_css:
            return content

        try:
            return cssmin.cssmin(content)
        except Exception as e:
            logger.warning("Error minifying CSS: %s", e)
            return content

    def minify_js(self, content: bytes) -> bytes:
        """Minify JavaScript bytes, keeping them untouched if they are not UTF-8."""
        if not self.config.minify_js:
            return content

        try:
            return rjsmin.jsmin(content.decode("utf-8")).encode("utf-8")
        except Exception as e:
            logger.warning("Error minifying JS: %s", e)
            return content
