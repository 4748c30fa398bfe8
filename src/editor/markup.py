"""
Low-level HTML helpers shared by the editor modules.

All parsing goes through BeautifulSoup's html.parser with multi-valued
attributes disabled, and all output goes through one formatter, so the same
tree always produces the same string (attributes sorted, void elements
written as ``<br>``, only ``& < >`` escaped in text).
"""

import html as html_lib
from typing import Union

from bs4 import BeautifulSoup, Tag
from bs4.dammit import EntitySubstitution
from bs4.element import Comment, NavigableString
from bs4.formatter import HTMLFormatter

CANONICAL_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)

# Inline elements that may appear in a bare top-level text run
INLINE_TAGS = {
    "a", "b", "br", "code", "em", "i", "mark", "s", "small", "span",
    "strong", "sub", "sup", "u",
}

VOID_TAGS = {"br", "hr", "img", "input", "col", "wbr"}


def parse_fragment(html: str) -> BeautifulSoup:
    """Parse an HTML fragment without adding html/body wrappers."""
    return BeautifulSoup(html or "", "html.parser", multi_valued_attributes=None)


def outer_html(node: Union[Tag, NavigableString, BeautifulSoup]) -> str:
    if isinstance(node, NavigableString):
        if isinstance(node, Comment):
            return ""
        return EntitySubstitution.substitute_xml(str(node))
    return node.decode(formatter=CANONICAL_FORMATTER)


def inner_html(tag: Tag) -> str:
    return tag.decode_contents(formatter=CANONICAL_FORMATTER)


def canonicalize(html: str) -> str:
    """Re-emit an HTML fragment in canonical form."""
    return outer_html(parse_fragment(html))


def escape_text(text: str) -> str:
    """
    Escape plain text for insertion into HTML.

    Only ``&``, ``<`` and ``>`` are escaped; newlines become ``<br>``.
    """
    escaped = (text or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return escaped.replace("\r\n", "\n").replace("\n", "<br>")


def escape_attr(value: str) -> str:
    return html_lib.escape(value or "", quote=True)


def is_blank(node) -> bool:
    """True for whitespace-only strings and comments."""
    if isinstance(node, Comment):
        return True
    return isinstance(node, NavigableString) and not str(node).strip()


def escape_plain(text: str) -> str:
    """Escape ``& < >`` without touching newlines."""
    return (text or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
