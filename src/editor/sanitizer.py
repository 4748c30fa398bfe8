"""
Allow-list sanitizer for HTML entering the editor (paste, imports).

Policy is fail-open-but-safe: nothing is rejected. Disallowed elements are
unwrapped so their text survives, and disallowed attributes are dropped.
"""

import logging
import re

from bs4 import Tag
from bs4.element import Comment, NavigableString

from src.editor.markup import outer_html, parse_fragment

logger = logging.getLogger(__name__)

ALLOWED_TAGS = {
    "a", "b", "blockquote", "br", "code", "div", "em", "h1", "h2", "h3",
    "hr", "i", "img", "li", "mark", "ol", "p", "pre", "s", "section",
    "small", "span", "strong", "sub", "sup", "table", "tbody", "td", "th",
    "thead", "tr", "u", "ul",
}

# Attributes the editor itself writes; everything else is dropped
ALLOWED_GENERIC_ATTRS = {
    "class", "contenteditable", "colspan", "rowspan",
    "data-block", "data-variant", "data-uid", "data-field", "data-chip",
    "data-bullet", "data-item", "data-list", "data-checked", "data-kv",
    "data-page-break", "data-action", "data-target", "data-kpi",
}

ANCHOR_ATTRS = {"href", "target", "rel"}
IMAGE_ATTRS = {"src", "alt"}

# Elements whose text is kept but whose markup never is
TEXT_ONLY_TAGS = {"script", "style"}

_UNSAFE_URL = re.compile(r"^\s*(javascript|vbscript):", re.IGNORECASE)
_SAFE_IMAGE_SRC = re.compile(r"^\s*(https?:|data:image/|/)", re.IGNORECASE)


def _filter_attrs(tag: Tag) -> None:
    if tag.name == "a":
        allowed = ANCHOR_ATTRS
    elif tag.name == "img":
        allowed = IMAGE_ATTRS
    else:
        allowed = ALLOWED_GENERIC_ATTRS

    for name in list(tag.attrs):
        if name not in allowed:
            del tag[name]

    href = tag.get("href")
    if href is not None and _UNSAFE_URL.match(href):
        del tag["href"]

    src = tag.get("src")
    if src is not None and not _SAFE_IMAGE_SRC.match(src):
        del tag["src"]


def sanitize_html(html: str) -> str:
    """
    Sanitize untrusted HTML against the editor's allow-list.

    - Editor decorations are removed outright
    - script/style become their text content
    - other disallowed elements are unwrapped, keeping their children
    - every ``style`` attribute is stripped; anchors keep href/target/rel,
      images keep src/alt
    """
    soup = parse_fragment(html)

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for deco in soup.find_all(attrs={"data-deco": True}):
        deco.decompose()

    unwrapped = 0
    for tag in soup.find_all(True):
        if tag.name in TEXT_ONLY_TAGS:
            tag.replace_with(NavigableString(tag.get_text()))
            unwrapped += 1
        elif tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            unwrapped += 1
        else:
            _filter_attrs(tag)

    if unwrapped:
        logger.debug(f"Sanitizer unwrapped {unwrapped} disallowed element(s)")
    return outer_html(soup)
