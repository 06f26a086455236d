"""Classification of a page's top-level layout regions."""

import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Union

from bs4 import BeautifulSoup, Tag

LAYOUT_SELECTOR = "section, header, footer, main"
GRID_TEXT_RE = re.compile(r"feature|benefit", re.IGNORECASE)

HERO = "hero"
CONTENT = "content"
GRID = "grid"
FOOTER = "footer"


@dataclass
class StructureNode:
    """One layout region offered to the editor."""

    id: str
    type: str
    heading: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def section_id(index: int) -> str:
    return f"section_{index}"


def layout_regions(soup: BeautifulSoup) -> List[Tag]:
    """Get the layout region elements in document order."""
    return soup.select(LAYOUT_SELECTOR)


def classify_region(element: Tag) -> str:
    """Classify a region. Footer beats grid, grid beats hero."""
    if element.name == "footer":
        return FOOTER
    if GRID_TEXT_RE.search(element.get_text()):
        return GRID
    if element.find("h1") is not None:
        return HERO
    return CONTENT


def extract_structure(html: Union[str, BeautifulSoup]) -> List[StructureNode]:
    """Walk the rendered page and describe its layout regions.

    A page without any region still yields a single placeholder hero node so
    the editor always has something to attach to.
    """
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "lxml")
    structure = []
    for index, element in enumerate(layout_regions(soup)):
        region_type = classify_region(element)
        heading = element.select_one("h1, h2")
        heading_text = heading.get_text(strip=True) if heading is not None else ""
        structure.append(
            StructureNode(id=section_id(index), type=region_type, heading=heading_text or region_type)
        )

    if not structure:
        return [StructureNode(id=section_id(0), type=HERO, heading="Hero")]
    return structure


def tag_sections(soup: BeautifulSoup) -> None:
    """Stamp each layout region with the id ``extract_structure`` gives it."""
    for index, element in enumerate(layout_regions(soup)):
        element["data-section-id"] = section_id(index)
