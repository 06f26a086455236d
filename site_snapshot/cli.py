"""Command-line interface for site-snapshot."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from site_snapshot.cloner import SiteCloner
from site_snapshot.config import Config
from site_snapshot.exceptions import SnapshotError


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="site-snapshot",
        description="Capture a live web page as an editable, self-contained static bundle",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Print body HTML, layout structure and CSS as JSON")
    clone = subparsers.add_parser("clone", help="Write a ZIP archive of the page and its assets")
    export = subparsers.add_parser("export", help="Write a ZIP archive from edited HTML and theme CSS")
    export.add_argument("edited_html", type=Path, help="File containing the edited page body")
    export.add_argument("--theme-css", type=Path, help="Stylesheet embedded into the exported page")

    for sub in (scrape, clone, export):
        sub.add_argument("--url", help="Page to capture (defaults to WEBSITE_URL)")
        sub.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    for sub in (clone, export):
        sub.add_argument("--output", type=Path, help="Archive path (defaults to OUTPUT_PATH)")

    return parser.parse_args(argv)


def _write_archive(archive: bytes, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(archive)
    print(f"Archive written to {output} ({len(archive)} bytes)", flush=True)


async def _run(args: argparse.Namespace, config: Config) -> None:
    cloner = SiteCloner(config)
    if args.command == "scrape":
        result = await cloner.scrape(config.website_url)
        print(json.dumps(result.to_dict(), indent=2))
        return

    output = args.output or Path(config.output_path)
    if args.command == "clone":
        archive = await cloner.clone_static(config.website_url)
    else:
        edited_html = args.edited_html.read_text(encoding="utf-8")
        theme_css = args.theme_css.read_text(encoding="utf-8") if args.theme_css else ""
        archive = await cloner.export_with_edits(config.website_url, edited_html, theme_css)
    _write_archive(archive, output)


def main(argv: Optional[Sequence[str]] = None):
    """Main CLI entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = Config()
    if args.url:
        config.website_url = args.url

    # Validate configuration
    is_valid, error = config.validate()
    if not is_valid:
        print(f"Error: {error}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        print("\nSnapshot interrupted by user")
        sys.exit(1)
    except (SnapshotError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
