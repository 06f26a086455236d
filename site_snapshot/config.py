"""Configuration management for site-snapshot."""

import os
from typing import Optional, Tuple
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.getenv(key, "").lower()
    return value in ("true", "1", "yes", "on") if value else default


def get_str_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get string environment variable."""
    return os.getenv(key, default)


def get_float_env(key: str, default: float) -> float:
    """Get float environment variable, falling back on unparseable values."""
    value = os.getenv(key, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Config:
    """Configuration class for site-snapshot."""

    def __init__(self):
        # Target page (required by the CLI only)
        self.website_url: Optional[str] = get_str_env("WEBSITE_URL")

        # Output
        self.output_path: str = get_str_env("OUTPUT_PATH", "./static-clone.zip")

        # Asset downloads
        self.fetch_timeout: float = get_float_env("FETCH_TIMEOUT", 20.0)
        self.user_agent: str = get_str_env("USER_AGENT", DEFAULT_USER_AGENT)

        # Rendering
        self.navigation_timeout: float = get_float_env("NAVIGATION_TIMEOUT", 75.0)
        self.retry_navigation_timeout: float = get_float_env("RETRY_NAVIGATION_TIMEOUT", 90.0)
        self.retry_delay: float = get_float_env("RETRY_DELAY", 1.5)
        self.settle_delay: float = get_float_env("SETTLE_DELAY", 3.5)
        self.headless: bool = get_bool_env("HEADLESS", True)

        # Minification
        self.minify_css: bool = get_bool_env("MINIFY_CSS", False)
        self.minify_js: bool = get_bool_env("MINIFY_JS", False)
        self.optimize_html: bool = get_bool_env("OPTIMIZE_HTML", False)

    def validate(self) -> Tuple[bool, Optional[str]]:
        """Validate configuration."""
        if not self.website_url:
            return False, "WEBSITE_URL environment variable is required"
        return True, None

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(website_url={self.website_url}, output_path={self.output_path})"
