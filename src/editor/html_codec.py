"""
Serialization between the document tree and the persisted HTML body.

The body is stored as one HTML string. ``serialize`` renders the tree and
re-emits it through the canonical formatter; ``deserialize`` parses that
string back into nodes. For any HTML produced by ``serialize``::

    serialize(deserialize(html)) == html

Editor decorations (hover toolbars and highlight overlays) exist only in the
display projection. ``deserialize`` strips them first, so they can never
reach saved content.
"""

import logging
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from bs4.element import NavigableString

from src.editor.block_templates import parse_block, render_block
from src.editor.blocks import (
    Block,
    Document,
    ListItem,
    ListNode,
    Node,
    PageBreak,
    RawNode,
    TableNode,
    TextNode,
    TEXT_TAGS,
)
from src.editor.markup import (
    INLINE_TAGS,
    VOID_TAGS,
    escape_attr,
    escape_plain,
    inner_html,
    is_blank,
    outer_html,
    parse_fragment,
)

logger = logging.getLogger(__name__)

DECO_ATTR = "data-deco"
PAGE_BREAK_ATTR = "data-page-break"


# ============================================================================
# Rendering
# ============================================================================

def _attr_string(attrs: dict, page_break: Optional[PageBreak]) -> str:
    merged = dict(attrs)
    merged.pop(PAGE_BREAK_ATTR, None)
    if page_break is not None:
        merged[PAGE_BREAK_ATTR] = page_break.value
    return "".join(f' {key}="{escape_attr(str(value))}"' for key, value in merged.items())


def render_node(node: Node) -> str:
    """Render one top-level node to (non-canonical) HTML."""
    if isinstance(node, Block):
        return render_block(node)

    if isinstance(node, TextNode):
        attrs = _attr_string(node.attrs, node.page_break)
        return f"<{node.tag}{attrs}>{node.html}</{node.tag}>"

    if isinstance(node, ListNode):
        if node.tag == "todo":
            attrs = _attr_string({**node.attrs, "data-list": "todo"}, node.page_break)
            items = "".join(
                f'<li data-checked="{"true" if item.checked else "false"}">{item.html}</li>'
                for item in node.items
            )
            return f"<ul{attrs}>{items}</ul>"
        attrs = _attr_string(node.attrs, node.page_break)
        items = "".join(f"<li>{item.html}</li>" for item in node.items)
        return f"<{node.tag}{attrs}>{items}</{node.tag}>"

    if isinstance(node, TableNode):
        attrs = _attr_string({"data-kv": "1"}, node.page_break)
        rows = "".join(
            f"<tr><th>{escape_plain(key)}</th><td>{escape_plain(value)}</td></tr>"
            for key, value in node.rows
        )
        return f"<table{attrs}><tbody>{rows}</tbody></table>"

    if isinstance(node, RawNode):
        soup = parse_fragment(node.html)
        root = soup.find(True)
        if root is not None:
            if node.page_break is not None:
                root[PAGE_BREAK_ATTR] = node.page_break.value
            elif PAGE_BREAK_ATTR in root.attrs:
                del root[PAGE_BREAK_ATTR]
        return outer_html(soup)

    raise TypeError(f"Unknown node type: {type(node).__name__}")


def serialize(document: Document) -> str:
    """Canonical HTML body for a document."""
    rendered = "".join(render_node(node) for node in document.nodes)
    return outer_html(parse_fragment(rendered))


# ============================================================================
# Parsing
# ============================================================================

def _page_break(tag: Tag) -> Optional[PageBreak]:
    value = tag.get(PAGE_BREAK_ATTR)
    if value in ("before", "after"):
        return PageBreak(value)
    return None


def _own_attrs(tag: Tag, *exclude: str) -> dict:
    skip = {PAGE_BREAK_ATTR, *exclude}
    return {key: value for key, value in tag.attrs.items() if key not in skip}


def _parse_list(tag: Tag) -> Optional[ListNode]:
    items: List[ListItem] = []
    for child in tag.contents:
        if is_blank(child):
            continue
        if not isinstance(child, Tag) or child.name != "li":
            return None
        items.append(ListItem(
            html=inner_html(child),
            checked=child.get("data-checked") == "true",
        ))

    is_todo = tag.name == "ul" and tag.get("data-list") == "todo"
    return ListNode(
        tag="todo" if is_todo else tag.name,
        items=items,
        attrs=_own_attrs(tag, "data-list"),
        page_break=_page_break(tag),
    )


def _parse_table(tag: Tag) -> Optional[TableNode]:
    rows = []
    for tr in tag.find_all("tr"):
        cells = tr.find_all(["th", "td"], recursive=False)
        if len(cells) != 2:
            return None
        rows.append((cells[0].get_text(), cells[1].get_text()))
    return TableNode(rows=rows, page_break=_page_break(tag))


def parse_node(tag: Tag) -> Node:
    """Map one top-level element to a tree node."""
    if tag.name == "section" and tag.get("data-block"):
        try:
            return parse_block(tag)
        except ValueError:
            logger.warning(f"Unknown block kind '{tag.get('data-block')}', keeping raw HTML")

    if tag.name in TEXT_TAGS:
        return TextNode(
            tag=tag.name,
            html=inner_html(tag),
            attrs=_own_attrs(tag),
            page_break=_page_break(tag),
        )

    if tag.name in ("ul", "ol"):
        node = _parse_list(tag)
        if node is not None:
            return node

    if tag.name == "table" and tag.get("data-kv") == "1":
        node = _parse_table(tag)
        if node is not None:
            return node

    return RawNode(html=outer_html(tag), page_break=_page_break(tag))


def _flush_run(run: list, nodes: List[Node]) -> None:
    if not run:
        return
    html = "".join(outer_html(part) for part in run).strip()
    run.clear()
    if html:
        nodes.append(TextNode(tag="p", html=html))


def deserialize(html: str) -> Document:
    """
    Parse a persisted HTML body into a document tree.

    Whitespace-only text between top-level elements is dropped; bare text,
    ``<br>`` and inline elements at the top level are gathered into
    paragraphs.
    """
    soup = parse_fragment(strip_decorations(html))
    nodes: List[Node] = []
    run: list = []

    for child in list(soup.contents):
        if is_blank(child):
            if run:
                run.append(child)
            continue
        if isinstance(child, NavigableString) or child.name in INLINE_TAGS:
            run.append(child)
            continue
        _flush_run(run, nodes)
        nodes.append(parse_node(child))

    _flush_run(run, nodes)
    return Document(nodes=nodes)


def wrap_bare_runs(soup: BeautifulSoup) -> BeautifulSoup:
    """Wrap top-level text/inline runs of a parsed fragment in ``<p>``, in place."""
    run: list = []

    def flush():
        if any(not is_blank(part) for part in run):
            p = soup.new_tag("p")
            run[0].insert_before(p)
            for part in run:
                p.append(part.extract())
        run.clear()

    for child in list(soup.contents):
        if isinstance(child, NavigableString) or (isinstance(child, Tag) and child.name in INLINE_TAGS):
            run.append(child)
        else:
            flush()
    flush()
    return soup


# ============================================================================
# Decorations
# ============================================================================

TOOLBAR_HTML = (
    '<div data-deco="toolbar" class="block-toolbar" contenteditable="false">'
    '<button type="button" data-action="move-up">↑</button>'
    '<button type="button" data-action="move-down">↓</button>'
    '<button type="button" data-action="delete-block">✕</button>'
    "</div>"
)
HIGHLIGHT_HTML = '<div data-deco="highlight" class="block-highlight" contenteditable="false"></div>'


def decorate(html: str) -> str:
    """
    Add hover toolbar and highlight overlay to every top-level element.

    Idempotent: elements that already carry a toolbar are left alone.
    """
    soup = parse_fragment(html)
    for child in soup.contents:
        if not isinstance(child, Tag) or child.name in VOID_TAGS:
            continue
        if child.find(attrs={DECO_ATTR: "toolbar"}, recursive=False) is not None:
            continue
        child.insert(0, parse_fragment(HIGHLIGHT_HTML).find(True))
        child.insert(0, parse_fragment(TOOLBAR_HTML).find(True))
    return outer_html(soup)


def strip_decorations(html: str) -> str:
    """Remove every editor-only decoration element."""
    soup = parse_fragment(html)
    for deco in soup.find_all(attrs={DECO_ATTR: True}):
        deco.decompose()
    return outer_html(soup)
