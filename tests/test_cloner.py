"""Tests for the clone orchestrator."""

import asyncio
import io
import zipfile
from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup
from conftest import FakeFetcher, FakeRenderer
from site_snapshot.assets import content_addressed_name
from site_snapshot.cloner import SiteCloner, replace_recorded_urls
from site_snapshot.config import Config
from site_snapshot.exceptions import (
    ArchiveError,
    CloneError,
    ExportError,
    ExtractionError,
    InputValidationError,
    RenderError,
)

SITE = "https://example.com/"
CSS = "https://example.com/assets/site.css"
BG = "https://example.com/assets/bg.png"
JS = "https://cdn.example.net/app.js"
HERO = "https://example.com/img/hero.jpg"
LAZY = "https://example.com/img/lazy.webp"
ICON = "https://example.com/favicon.ico"

PAGE = f"""<!doctype html>
<html>
<head>
  <base href="https://example.com/">
  <link rel="stylesheet" href="/assets/site.css">
  <script src="//cdn.example.net/app.js"></script>
  <style>.hero {{ background: url(/assets/bg.png) }}</style>
</head>
<body>
  <header><h1>Acme</h1></header>
  <section><h2>Features</h2><img src="img/hero.jpg" srcset="img/hero-2x.jpg 2x" sizes="100vw"></section>
  <section><img data-src="/img/lazy.webp"><img src="data:image/gif;base64,R0lGODlhAQABAAAAACw="></section>
  <footer><img src="/favicon.ico"><a href="https://example.com/img/hero.jpg">full size</a></footer>
</body>
</html>
"""


def _read_zip(data):
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def _cloner(html=PAGE, responses=None, error=None):
    fetcher = FakeFetcher(responses or {})
    renderer = FakeRenderer(html, error=error)
    return SiteCloner(Config(), renderer=renderer, fetcher=fetcher), fetcher


class TestScrape:
    """Test preview extraction."""

    def test_scrape(self):
        """Test body, structure and concatenated CSS."""
        html = """<html><head>
          <link rel="stylesheet" href="/a.css"><link rel="stylesheet" href="/missing.css">
          <link rel="stylesheet" href="https://cdn.example.net/b.css">
        </head><body><section><h1>Hi</h1></section><footer>Bye</footer></body></html>"""
        cloner, _ = _cloner(
            html,
            {
                "https://example.com/a.css": b"a { color: red }",
                "https://cdn.example.net/b.css": b"b { color: blue }",
            },
        )

        result = asyncio.run(cloner.scrape(SITE))

        assert result.css == "a { color: red }\n\n\n\nb { color: blue }"
        assert [node.type for node in result.structure] == ["hero", "footer"]
        assert "<body" not in result.body_html
        assert 'data-section-id="section_0"' in result.body_html
        assert 'data-section-id="section_1"' in result.body_html
        assert result.to_dict()["structure"][0] == {"id": "section_0", "type": "hero", "heading": "Hi"}

    def test_scrape_requires_url(self):
        """Test missing URL is an input error."""
        cloner, _ = _cloner()
        with pytest.raises(InputValidationError):
            asyncio.run(cloner.scrape(""))

    def test_scrape_render_failure(self):
        """Test rendering failures surface as a generic extraction error."""
        cloner, _ = _cloner(error=RenderError("Could not load https://example.com/"))
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(cloner.scrape(SITE))
        assert str(exc_info.value) == "Scraping failed"


class TestCloneStatic:
    """Test the full static clone."""

    def setup_method(self):
        """Set up test fixtures."""
        self.responses = {
            CSS: b".box { background: url('bg.png') } .ico { background: url(/assets/bg.png) }",
            BG: b"PNGDATA",
            JS: b"console.log('hi')",
            HERO: b"JPEGDATA",
            LAZY: b"WEBPDATA",
            ICON: b"ICODATA",
        }

    def test_archive_layout(self):
        """Test every asset is archived once and referenced locally."""
        cloner, fetcher = _cloner(responses=self.responses)

        files = _read_zip(asyncio.run(cloner.clone_static(SITE)))

        css_path = f"css/{content_addressed_name(CSS, 'css')}"
        bg_path = f"images/{content_addressed_name(BG, 'png')}"
        js_path = f"js/{content_addressed_name(JS, 'js')}"
        hero_path = f"images/{content_addressed_name(HERO, 'jpg')}"
        lazy_path = f"images/{content_addressed_name(LAZY, 'webp')}"
        icon_path = f"favicon/{content_addressed_name(ICON, 'ico')}"
        assert sorted(files) == sorted(
            ["index.html", css_path, bg_path, js_path, hero_path, lazy_path, icon_path]
        )
        # Background image is shared by the stylesheet and the inline style
        assert fetcher.calls.count(BG) == 1
        assert files[bg_path] == b"PNGDATA"
        assert files[icon_path] == b"ICODATA"

        stylesheet = files[css_path].decode("utf-8")
        assert BG not in stylesheet
        assert stylesheet.count(f'url("../{bg_path}")') == 2

        index = files["index.html"].decode("utf-8")
        soup = BeautifulSoup(index, "lxml")
        assert soup.find("base") is None
        assert soup.find("link", rel="stylesheet")["href"] == css_path
        assert soup.find("script")["src"] == js_path
        images = soup.find_all("img")
        assert images[0]["src"] == hero_path
        assert "srcset" not in images[0].attrs and "sizes" not in images[0].attrs
        assert images[1]["src"] == lazy_path
        assert images[2]["src"].startswith("data:image/gif")
        assert images[3]["src"] == icon_path
        # Every literal occurrence is replaced, including plain links
        assert soup.find("a")["href"] == hero_path
        assert f'url("{bg_path}")' in soup.find("style").string

    def test_filenames_are_stable(self):
        """Test cloning twice yields identical archives."""
        first, _ = _cloner(responses=self.responses)
        second, _ = _cloner(responses=self.responses)
        assert asyncio.run(first.clone_static(SITE)) == asyncio.run(second.clone_static(SITE))

    def test_unavailable_asset_keeps_absolute_url(self):
        """Test a failed download leaves the absolute URL in the page."""
        del self.responses[HERO]
        cloner, _ = _cloner(responses=self.responses)

        files = _read_zip(asyncio.run(cloner.clone_static(SITE)))

        index = files["index.html"].decode("utf-8")
        assert f'src="{HERO}"' in index
        assert not any(name.endswith(".jpg") for name in files)

    def test_unavailable_stylesheet(self):
        """Test a missing stylesheet does not fail the clone."""
        del self.responses[CSS]
        cloner, _ = _cloner(responses=self.responses)

        files = _read_zip(asyncio.run(cloner.clone_static(SITE)))

        assert not any(name.startswith("css/") for name in files)
        assert CSS in files["index.html"].decode("utf-8")

    def test_mutually_importing_stylesheets(self):
        """Test two stylesheets importing each other are both archived."""
        first_css = "https://example.com/assets/a.css"
        second_css = "https://example.com/assets/b.css"
        html = (
            '<html><head><link rel="stylesheet" href="/assets/a.css">'
            '<link rel="stylesheet" href="/assets/b.css"></head><body><p>x</p></body></html>'
        )
        cloner, _ = _cloner(
            html,
            {first_css: b"@import url(b.css);", second_css: b"@import url(a.css);"},
        )

        async def clone():
            return await asyncio.wait_for(cloner.clone_static(SITE), timeout=5)

        files = _read_zip(asyncio.run(clone()))

        first_path = f"css/{content_addressed_name(first_css, 'css')}"
        second_path = f"css/{content_addressed_name(second_css, 'css')}"
        assert sorted(files) == sorted(["index.html", first_path, second_path])
        index = files["index.html"].decode("utf-8")
        assert first_path in index and second_path in index
        # One of the two imports points at the archived sibling
        first_text = files[first_path].decode("utf-8")
        second_text = files[second_path].decode("utf-8")
        assert (
            first_text == f'@import url("{second_path[len("css/"):]}");'
            or second_text == f'@import url("{first_path[len("css/"):]}");'
        )

    def test_clone_render_failure(self):
        """Test rendering failures surface as a generic clone error."""
        cloner, _ = _cloner(error=RenderError("Could not load"))
        with pytest.raises(CloneError) as exc_info:
            asyncio.run(cloner.clone_static(SITE))
        assert str(exc_info.value) == "Static clone failed"

    def test_clone_requires_url(self):
        """Test missing URL is an input error."""
        cloner, fetcher = _cloner()
        with pytest.raises(InputValidationError):
            asyncio.run(cloner.clone_static(None))
        assert fetcher.calls == []


class TestExportWithEdits:
    """Test exporting editor output."""

    def test_export(self):
        """Test images are archived and the theme CSS embedded."""
        edited = (
            '<section data-section-id="section_0"><h1>New title</h1>'
            '<img src="/img/hero.jpg"><img src="/img/hero.jpg"><img src="/img/gone.png"></section>'
        )
        cloner, fetcher = _cloner(responses={HERO: b"JPEGDATA"})

        files = _read_zip(asyncio.run(cloner.export_with_edits(SITE, edited, "h1 { color: teal }")))

        hero_path = f"images/{content_addressed_name(HERO, 'jpg')}"
        assert sorted(files) == sorted(["index.html", hero_path])
        assert fetcher.calls.count(HERO) == 1

        index = files["index.html"].decode("utf-8")
        assert index.startswith("<!doctype html>")
        assert '<meta charset="utf-8"/>' in index
        assert "<style>h1 { color: teal }</style>" in index
        assert "New title" in index
        assert index.count("<body>") == 1 and index.count("<html") == 1
        soup = BeautifulSoup(index, "lxml")
        sources = [img["src"] for img in soup.find_all("img")]
        assert sources == [hero_path, hero_path, "/img/gone.png"]

    def test_export_full_document(self):
        """Test a full document contributes only its body content."""
        edited = "<html><head><title>x</title></head><body><p>Body only</p></body></html>"
        cloner, _ = _cloner()

        index = _read_zip(asyncio.run(cloner.export_with_edits(SITE, edited, None)))["index.html"].decode("utf-8")

        assert "<title>" not in index
        assert index.count("<body>") == 1
        assert "<p>Body only</p>" in index
        assert "<style></style>" in index

    def test_export_requires_inputs(self):
        """Test missing URL or HTML is an input error."""
        cloner, _ = _cloner()
        with pytest.raises(InputValidationError, match="website_url"):
            asyncio.run(cloner.export_with_edits("", "<p>x</p>", ""))
        with pytest.raises(InputValidationError, match="edited_html"):
            asyncio.run(cloner.export_with_edits(SITE, "", ""))

    def test_export_failure_is_generic(self):
        """Test unexpected failures surface as a generic export error."""
        cloner, _ = _cloner()
        with patch("site_snapshot.assets.ArchiveBuilder.to_zip", side_effect=ArchiveError("disk full")):
            with pytest.raises(ExportError) as exc_info:
                asyncio.run(cloner.export_with_edits(SITE, '<img src="/a.png">', ""))
        assert str(exc_info.value) == "Export failed"
        assert "disk full" not in str(exc_info.value)


class TestReplaceRecordedUrls:
    """Test literal URL replacement in the serialized page."""

    def test_longest_first_and_escaped(self):
        """Test prefix URLs and &amp;-escaped attributes are handled."""
        html = (
            '<img src="https://x.com/a.png?v=1&amp;w=2">'
            '<img src="https://x.com/a.png">'
            '<img src="data:image/png;base64,AA">'
        )
        recorded = [
            ("https://x.com/a.png", "images/plain.png"),
            ("https://x.com/a.png?v=1&w=2", "images/query.png"),
            ("data:image/png;base64,AA", "images/never.png"),
        ]
        result = replace_recorded_urls(html, recorded)
        assert result == (
            '<img src="images/query.png">'
            '<img src="images/plain.png">'
            '<img src="data:image/png;base64,AA">'
        )
