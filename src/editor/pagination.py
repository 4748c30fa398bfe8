"""
A4 preview pagination.

Lays a serialized body into fixed-size page frames. Blocks are packed
greedily in document order: a block that would overflow the current page
moves to a fresh one, a block taller than a page sits alone on its own page
(no sub-block splitting), and ``data-page-break`` markers force boundaries.

There is no browser here, so heights come from a measuring callable. The
default ``HeightModel`` estimates them from text length and tag; tests use
``FixedHeights`` to make assignments exact.
"""

import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from bs4 import Tag

from src.editor.html_codec import PAGE_BREAK_ATTR, strip_decorations, wrap_bare_runs
from src.editor.markup import outer_html, parse_fragment

logger = logging.getLogger(__name__)


def mm_to_px(mm: float) -> float:
    """Millimetres to CSS pixels at 96 dpi."""
    return mm * 96 / 25.4


A4_WIDTH_PX = round(mm_to_px(210))    # 794
A4_HEIGHT_PX = round(mm_to_px(297))   # 1123
DEFAULT_PADDING = 48

MIN_ZOOM = 0.5
MAX_ZOOM = 2.0
ZOOM_STEP = 0.1
ZOOM_PRESETS = (1.0, 0.8, 0.6)

Measure = Callable[[Tag, int], float]


# ============================================================================
# Preparation
# ============================================================================

def prepare_preview_html(html: str) -> str:
    """
    Clean a body for preview.

    Drops script/style and editor decorations, constrains images and tables
    to the page width, and wraps bare top-level text in paragraphs.
    """
    soup = parse_fragment(strip_decorations(html or ""))
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for tag in soup.find_all(["img", "table"]):
        tag["style"] = "max-width:100%;height:auto"
    wrap_bare_runs(soup)
    return outer_html(soup)


# ============================================================================
# Measuring
# ============================================================================

@dataclass(frozen=True)
class TextStyle:
    font_size: float
    line_height: float
    margin: float


TAG_STYLES: Dict[str, TextStyle] = {
    "h1": TextStyle(28, 1.3, 19),
    "h2": TextStyle(22, 1.35, 18),
    "h3": TextStyle(18, 1.4, 16),
    "p": TextStyle(14, 1.7, 14),
    "blockquote": TextStyle(14, 1.7, 14),
    "pre": TextStyle(13, 1.5, 14),
    "li": TextStyle(14, 1.7, 2),
}


class HeightModel:
    """
    Estimates rendered block heights.

    Text is wrapped at the content width, counting East Asian wide
    characters as a full em and everything else as half. Images get a fixed
    placeholder height since their intrinsic size is unknown at measure time.
    """

    def __init__(
        self,
        content_width: float = A4_WIDTH_PX - 2 * DEFAULT_PADDING,
        image_height: float = 200,
        table_row_height: float = 32,
        block_padding: float = 32,
    ):
        self.content_width = content_width
        self.image_height = image_height
        self.table_row_height = table_row_height
        self.block_padding = block_padding

    def line_count(self, text: str, font_size: float) -> int:
        lines = 0
        for raw_line in (text or "").split("\n"):
            width = sum(
                font_size if unicodedata.east_asian_width(ch) in ("W", "F") else font_size * 0.5
                for ch in raw_line
            )
            lines += max(1, int(-(-width // self.content_width)))
        return lines

    def _text_height(self, element: Tag, style: TextStyle) -> float:
        text = element.get_text("\n") if element.name == "pre" else _text_with_breaks(element)
        lines = self.line_count(text, style.font_size)
        return lines * style.font_size * style.line_height + style.margin

    def __call__(self, element: Tag, index: int = 0) -> float:
        name = element.name
        images = len(element.find_all("img")) + (1 if name == "img" else 0)

        if name in ("ul", "ol"):
            style = TAG_STYLES["li"]
            items = element.find_all("li", recursive=False)
            height = sum(self._text_height(li, style) for li in items) + TAG_STYLES["p"].margin
        elif name == "table":
            height = len(element.find_all("tr")) * self.table_row_height + TAG_STYLES["p"].margin
        elif name == "hr":
            height = 16
        elif name == "img":
            height = 0
        elif name in TAG_STYLES:
            height = self._text_height(element, TAG_STYLES[name])
        else:
            # Structured sections and unknown containers: measure their text
            height = self._text_height(element, TAG_STYLES["p"]) + self.block_padding
        return height + images * self.image_height


def _text_with_breaks(element: Tag) -> str:
    parts = []
    for node in element.descendants:
        if isinstance(node, Tag):
            if node.name == "br":
                parts.append("\n")
        else:
            parts.append(str(node))
    return "".join(parts)


class FixedHeights:
    """Measure that returns preset heights by block position."""

    def __init__(self, heights: Sequence[float], default: float = 0):
        self.heights = list(heights)
        self.default = default

    def __call__(self, element: Tag, index: int) -> float:
        if index < len(self.heights):
            return self.heights[index]
        return self.default


# ============================================================================
# Paging
# ============================================================================

@dataclass
class Page:
    number: int
    blocks: List[str] = field(default_factory=list)
    indexes: List[int] = field(default_factory=list)
    content_height: float = 0

    @property
    def html(self) -> str:
        return "".join(self.blocks)

    @property
    def is_empty(self) -> bool:
        return not self.blocks


def paginate(
    html: str,
    measure: Optional[Measure] = None,
    page_height: float = A4_HEIGHT_PX,
    padding: float = DEFAULT_PADDING,
) -> List[Page]:
    """
    Split a body into pages.

    Args:
        html: Serialized body HTML
        measure: Callable (element, index) -> height; defaults to HeightModel
        page_height: Page height including padding
        padding: Inner padding on each side

    Returns:
        Pages in order. Empty input yields a single empty page; the result
        never ends with an empty page.
    """
    measure = measure or HeightModel(content_width=A4_WIDTH_PX - 2 * padding)
    soup = parse_fragment(prepare_preview_html(html))
    elements = [child for child in soup.contents if isinstance(child, Tag)]

    pages = [Page(number=1)]
    break_pending = False

    def new_page() -> Page:
        page = Page(number=len(pages) + 1)
        pages.append(page)
        return page

    for index, element in enumerate(elements):
        height = measure(element, index)
        current = pages[-1]

        forced = break_pending or element.get(PAGE_BREAK_ATTR) == "before"
        break_pending = False
        if forced and not current.is_empty:
            current = new_page()

        if not current.is_empty and padding * 2 + current.content_height + height > page_height:
            current = new_page()

        current.blocks.append(outer_html(element))
        current.indexes.append(index)
        current.content_height += height

        if element.get(PAGE_BREAK_ATTR) == "after":
            break_pending = True

    logger.debug(f"Paginated {len(elements)} block(s) into {len(pages)} page(s)")
    return pages


# ============================================================================
# Presentation
# ============================================================================

def clamp_zoom(zoom: float) -> float:
    """Clamp to [0.5, 2.0] and snap to 0.1 steps."""
    return max(MIN_ZOOM, min(MAX_ZOOM, round(zoom * 10) / 10))


def zoom_in(zoom: float) -> float:
    return clamp_zoom(zoom + ZOOM_STEP)


def zoom_out(zoom: float) -> float:
    return clamp_zoom(zoom - ZOOM_STEP)


def fit_scale(container_width: Optional[float]) -> float:
    """Scale that fits one page into a container (never below 0.5 or above 1)."""
    if not container_width or container_width <= 0:
        return 0.8
    return max(MIN_ZOOM, min(1.0, (container_width - 16) / A4_WIDTH_PX))


def render_pages(pages: Sequence[Page], zoom: float = 1.0, padding: float = DEFAULT_PADDING) -> str:
    """Page frames with a uniform CSS scale; zoom never changes page assignment."""
    scale = clamp_zoom(zoom)
    gap = max(16, 24 * scale)
    frames = []
    for page in pages:
        frames.append(
            f'<div class="a4-page" data-page="{page.number}" '
            f'style="width:{A4_WIDTH_PX}px;height:{A4_HEIGHT_PX}px;overflow:hidden;'
            f'transform:scale({scale});transform-origin:top left;margin-bottom:{gap:g}px">'
            f'<div class="a4-inner" style="box-sizing:border-box;padding:{padding:g}px;width:{A4_WIDTH_PX}px">'
            f"{page.html}</div></div>"
        )
    return "".join(frames)
