"""
Inline editing on the HTML content of a single text node.

Positions are plain-text offsets: every character of text counts as one,
``<br>`` counts as one (it reads as a newline), and other markup counts as
zero. This matches what a caret offset means inside a contenteditable line.
"""

from typing import Iterable, List, Tuple

from bs4 import BeautifulSoup, Tag
from bs4.element import Comment, NavigableString

from src.editor.markup import INLINE_TAGS, escape_text, outer_html, parse_fragment

# Marks that render the same and toggle together
EQUIVALENT_MARKS = {
    "strong": {"strong", "b"},
    "b": {"strong", "b"},
    "em": {"em", "i"},
    "i": {"em", "i"},
    "u": {"u"},
}


def _units(root: BeautifulSoup) -> List:
    units = []
    for node in root.descendants:
        if isinstance(node, Comment):
            continue
        if isinstance(node, NavigableString):
            units.append(node)
        elif isinstance(node, Tag) and node.name == "br":
            units.append(node)
    return units


def _length(unit) -> int:
    return len(unit) if isinstance(unit, NavigableString) else 1


def plain_text(html: str) -> str:
    """Text content with ``<br>`` read as newline."""
    soup = parse_fragment(html)
    return "".join(str(u) if isinstance(u, NavigableString) else "\n" for u in _units(soup))


def text_length(html: str) -> int:
    return len(plain_text(html))


def _insert_nodes_before(anchor, nodes: Iterable) -> None:
    for node in nodes:
        anchor.insert_before(node)


def insert_markup(html: str, offset: int, markup: str) -> str:
    """Insert an HTML fragment at a plain-text offset."""
    soup = parse_fragment(html)
    fragment = [node.extract() for node in list(parse_fragment(markup).contents)]
    pos = 0

    for unit in _units(soup):
        if isinstance(unit, NavigableString):
            length = len(unit)
            if offset <= pos + length:
                cut = offset - pos
                text = str(unit)
                pieces = []
                if text[:cut]:
                    pieces.append(NavigableString(text[:cut]))
                pieces.extend(fragment)
                if text[cut:]:
                    pieces.append(NavigableString(text[cut:]))
                _insert_nodes_before(unit, pieces)
                unit.extract()
                return outer_html(soup)
            pos += length
        else:
            if offset <= pos:
                _insert_nodes_before(unit, fragment)
                return outer_html(soup)
            pos += 1

    for node in fragment:
        soup.append(node)
    return outer_html(soup)


def insert_text(html: str, offset: int, text: str) -> str:
    """Insert escaped plain text (newlines become ``<br>``) at an offset."""
    return insert_markup(html, offset, escape_text(text))


def _prune_empty_inline(soup: BeautifulSoup) -> None:
    for tag in reversed(soup.find_all(True)):
        if tag.name == "br" or tag.name not in INLINE_TAGS:
            continue
        if tag.get_text() == "" and tag.find(["br", "img"]) is None:
            tag.decompose()


def delete_range(html: str, start: int, end: int) -> str:
    """Remove the characters between two offsets."""
    if end <= start:
        return html
    soup = parse_fragment(html)
    pos = 0

    for unit in _units(soup):
        length = _length(unit)
        unit_start, unit_end = pos, pos + length
        pos = unit_end
        if unit_end <= start or unit_start >= end:
            continue
        if isinstance(unit, Tag):
            unit.decompose()
            continue
        text = str(unit)
        a = max(start, unit_start) - unit_start
        b = min(end, unit_end) - unit_start
        remaining = text[:a] + text[b:]
        if remaining:
            unit.replace_with(NavigableString(remaining))
        else:
            unit.extract()

    _prune_empty_inline(soup)
    return outer_html(soup)


def slice_html(html: str, start: int, end: int) -> str:
    """Keep only the characters between two offsets, with their markup."""
    total = text_length(html)
    kept = delete_range(html, end, total)
    return delete_range(kept, 0, start)


def split_at(html: str, offset: int) -> Tuple[str, str]:
    """Split inline content into (before, after) at an offset."""
    total = text_length(html)
    return delete_range(html, offset, total), delete_range(html, 0, offset)


def _mark_ancestor(node, names: set, root: BeautifulSoup):
    parent = node.parent
    while parent is not None and parent is not root:
        if parent.name in names:
            return parent
        parent = parent.parent
    return None


def toggle_mark(html: str, start: int, end: int, mark: str) -> str:
    """
    Toggle an inline mark (strong/em/u) over a range.

    If every character in the range already carries the mark, the mark
    elements touching the range are unwrapped; otherwise the uncovered text is
    wrapped in a new mark element.
    """
    if end <= start:
        return html
    names = EQUIVALENT_MARKS.get(mark, {mark})
    soup = parse_fragment(html)

    overlapping = []
    pos = 0
    for unit in _units(soup):
        length = _length(unit)
        unit_start, unit_end = pos, pos + length
        pos = unit_end
        if isinstance(unit, NavigableString) and unit_end > start and unit_start < end and length:
            overlapping.append((unit, max(start, unit_start) - unit_start, min(end, unit_end) - unit_start))

    if not overlapping:
        return html

    if all(_mark_ancestor(unit, names, soup) is not None for unit, _, _ in overlapping):
        for unit, _, _ in overlapping:
            ancestor = _mark_ancestor(unit, names, soup)
            if ancestor is not None and ancestor.parent is not None:
                ancestor.unwrap()
        return outer_html(soup)

    for unit, a, b in overlapping:
        if _mark_ancestor(unit, names, soup) is not None:
            continue
        text = str(unit)
        wrapper = soup.new_tag(mark)
        wrapper.string = text[a:b]
        pieces = []
        if text[:a]:
            pieces.append(NavigableString(text[:a]))
        pieces.append(wrapper)
        if text[b:]:
            pieces.append(NavigableString(text[b:]))
        _insert_nodes_before(unit, pieces)
        unit.extract()

    return outer_html(soup)
