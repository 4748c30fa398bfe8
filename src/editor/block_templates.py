"""
HTML templates for structured blocks.

Each block renders as::

    <section data-block="<kind>" data-uid="<uid>" [data-variant="card|text"]>
        ... elements carrying data-field="<name>" ...
    </section>

``read_fields`` extracts values back out of that markup regardless of the
variant it was rendered with, and ``switch_variant`` is the only way a block
changes variant: read the fields, render again. No other code edits block
markup directly.
"""

import logging
from typing import Any, Callable, Dict, List, Tuple, Union

from bs4 import Tag

from src.editor.blocks import (
    Block,
    BlockKind,
    FieldType,
    PageBreak,
    VARIANT_KINDS,
    Variant,
    default_fields,
    field_specs,
    new_uid,
)
from src.editor.markup import escape_attr, escape_plain, parse_fragment

logger = logging.getLogger(__name__)

VARIANT_LABELS = {Variant.CARD: "카드형", Variant.TEXT: "텍스트형"}


def _control(action: str, label: str, **data: str) -> str:
    extra = "".join(f' data-{key}="{escape_attr(value)}"' for key, value in data.items())
    return (
        f'<button type="button" data-action="{action}"{extra} '
        f'contenteditable="false">{escape_plain(label)}</button>'
    )


def _text(tag: str, name: str, value: str, cls: str = "") -> str:
    class_attr = f' class="{cls}"' if cls else ""
    return f'<{tag} data-field="{name}"{class_attr}>{escape_plain(value)}</{tag}>'


def _image(name: str, src: str, cls: str) -> str:
    return (
        f'<img data-field="{name}" class="{cls}" src="{escape_attr(src)}" alt="{name}">'
        + _control("upload-image", "이미지", target=name)
    )


def _chips(name: str, items: List[str]) -> str:
    chips = "".join(f'<span data-chip="1" class="chip">{escape_plain(item)}</span>' for item in items)
    return (
        f'<div data-field="{name}" class="chips">{chips}'
        + _control("add-chip", "+ 추가", target=name)
        + "</div>"
    )


def _bullets(name: str, items: List[str]) -> str:
    bullets = "".join(f'<li data-bullet="1">{escape_plain(item)}</li>' for item in items)
    return (
        f'<ul data-field="{name}" class="bullets">{bullets}</ul>'
        + _control("add-bullet", "+ 항목 추가", target=name)
    )


def _items(name: str, items: List[str], cls: str) -> str:
    rows = "".join(f'<li data-item="1">{escape_plain(item)}</li>' for item in items)
    return f'<ul data-field="{name}" class="{cls}">{rows}</ul>'


def _switch(current: Variant) -> str:
    target = Variant.TEXT if current == Variant.CARD else Variant.CARD
    return _control("switch-variant", VARIANT_LABELS[target], variant=target.value)


# ============================================================================
# Variant-capable kinds
# ============================================================================

def _education_card(f: Dict[str, Any]) -> str:
    return (
        '<div class="block-head">'
        + _image("logo", f["logo"], "logo")
        + '<div class="block-head-text">'
        + _text("h3", "school", f["school"])
        + _text("div", "major", f["major"], "muted")
        + "</div>"
        + _text("span", "period", f["period"], "period")
        + "</div>"
        + _text("p", "description", f["description"])
        + _switch(Variant.CARD)
    )


def _education_text(f: Dict[str, Any]) -> str:
    return (
        '<p class="block-line">'
        + _image("logo", f["logo"], "logo-inline")
        + _text("strong", "school", f["school"])
        + " · " + _text("span", "major", f["major"])
        + " · " + _text("span", "period", f["period"])
        + "</p>"
        + _text("p", "description", f["description"])
        + _switch(Variant.TEXT)
    )


def _experience_card(f: Dict[str, Any]) -> str:
    return (
        '<div class="block-head">'
        + _image("logo", f["logo"], "logo")
        + '<div class="block-head-text">'
        + _text("h3", "company", f["company"])
        + _text("div", "role", f["role"], "muted")
        + "</div>"
        + _text("span", "period", f["period"], "period")
        + "</div>"
        + _bullets("bullets", f["bullets"])
        + _switch(Variant.CARD)
    )


def _experience_text(f: Dict[str, Any]) -> str:
    return (
        '<p class="block-line">'
        + _image("logo", f["logo"], "logo-inline")
        + _text("strong", "company", f["company"])
        + " · " + _text("span", "role", f["role"])
        + " · " + _text("span", "period", f["period"])
        + "</p>"
        + _bullets("bullets", f["bullets"])
        + _switch(Variant.TEXT)
    )


def _project_card(f: Dict[str, Any]) -> str:
    return (
        '<div class="block-head">'
        + _image("logo", f["logo"], "logo")
        + '<div class="block-head-text">'
        + _text("h3", "name", f["name"])
        + _text("div", "summary", f["summary"], "muted")
        + "</div>"
        + _text("span", "period", f["period"], "period")
        + "</div>"
        + _chips("chips", f["chips"])
        + _bullets("bullets", f["bullets"])
        + _switch(Variant.CARD)
    )


def _project_text(f: Dict[str, Any]) -> str:
    return (
        '<p class="block-line">'
        + _image("logo", f["logo"], "logo-inline")
        + _text("strong", "name", f["name"])
        + " · " + _text("span", "period", f["period"])
        + "</p>"
        + _text("p", "summary", f["summary"])
        + _chips("chips", f["chips"])
        + _bullets("bullets", f["bullets"])
        + _switch(Variant.TEXT)
    )


# ============================================================================
# Single-renderer kinds
# ============================================================================

def _skills(f: Dict[str, Any]) -> str:
    return _text("h3", "title", f["title"]) + _chips("chips", f["chips"])


def _kpi(f: Dict[str, Any]) -> str:
    return _text("h3", "title", f["title"]) + _items("metrics", f["metrics"], "kpi-grid")


def _awards(f: Dict[str, Any]) -> str:
    return _text("h3", "title", f["title"]) + _chips("chips", f["chips"])


def _quote(f: Dict[str, Any]) -> str:
    return (
        _text("blockquote", "text", f["text"])
        + '<p class="quote-author">- ' + _text("span", "author", f["author"]) + "</p>"
    )


def _contact(f: Dict[str, Any]) -> str:
    return (
        '<div class="block-head">'
        + _image("avatar", f["avatar"], "avatar")
        + '<div class="block-head-text">'
        + _text("h2", "name", f["name"])
        + _text("div", "headline", f["headline"], "muted")
        + "</div></div>"
        + '<p class="contact-line">'
        + _text("span", "email", f["email"])
        + " | " + _text("span", "phone", f["phone"])
        + " | " + _text("span", "link", f["link"])
        + "</p>"
    )


def _summary(f: Dict[str, Any]) -> str:
    return _text("h3", "title", f["title"]) + _text("p", "body", f["body"])


def _section_title(f: Dict[str, Any]) -> str:
    return _text("h2", "title", f["title"])


def _divider(f: Dict[str, Any]) -> str:
    return "<hr>"


def _callout(f: Dict[str, Any]) -> str:
    return _text("p", "body", f["body"], "callout")


def _certification(f: Dict[str, Any]) -> str:
    return (
        '<p class="block-line">'
        + _text("strong", "name", f["name"])
        + " · " + _text("span", "issuer", f["issuer"])
        + " · " + _text("span", "date", f["date"])
        + "</p>"
    )


def _language(f: Dict[str, Any]) -> str:
    return (
        '<p class="block-line">'
        + _text("strong", "language", f["language"])
        + " · " + _text("span", "level", f["level"])
        + " · " + _text("span", "score", f["score"])
        + "</p>"
    )


def _reference(f: Dict[str, Any]) -> str:
    return (
        '<p class="block-line">'
        + _text("strong", "name", f["name"])
        + " · " + _text("span", "relation", f["relation"])
        + " · " + _text("span", "contact", f["contact"])
        + "</p>"
    )


def _timeline(f: Dict[str, Any]) -> str:
    return _text("h3", "title", f["title"]) + _items("entries", f["entries"], "timeline")


def _links(f: Dict[str, Any]) -> str:
    return _text("h3", "title", f["title"]) + _items("entries", f["entries"], "links")


def _signature(f: Dict[str, Any]) -> str:
    return _text("p", "date", f["date"], "signature-date") + _text("p", "name", f["name"], "signature-name")


Renderer = Callable[[Dict[str, Any]], str]

RENDERERS: Dict[Tuple[BlockKind, Union[Variant, None]], Renderer] = {
    (BlockKind.EDUCATION, Variant.CARD): _education_card,
    (BlockKind.EDUCATION, Variant.TEXT): _education_text,
    (BlockKind.EXPERIENCE, Variant.CARD): _experience_card,
    (BlockKind.EXPERIENCE, Variant.TEXT): _experience_text,
    (BlockKind.PROJECT, Variant.CARD): _project_card,
    (BlockKind.PROJECT, Variant.TEXT): _project_text,
    (BlockKind.SKILLS, None): _skills,
    (BlockKind.KPI, None): _kpi,
    (BlockKind.AWARDS, None): _awards,
    (BlockKind.QUOTE, None): _quote,
    (BlockKind.CONTACT, None): _contact,
    (BlockKind.SUMMARY, None): _summary,
    (BlockKind.SECTION_TITLE, None): _section_title,
    (BlockKind.DIVIDER, None): _divider,
    (BlockKind.CALLOUT, None): _callout,
    (BlockKind.CERTIFICATION, None): _certification,
    (BlockKind.LANGUAGE, None): _language,
    (BlockKind.REFERENCE, None): _reference,
    (BlockKind.TIMELINE, None): _timeline,
    (BlockKind.LINKS, None): _links,
    (BlockKind.SIGNATURE, None): _signature,
}


def render_block(block: Block) -> str:
    """Render a block (including its section wrapper) to HTML."""
    renderer = RENDERERS[(block.kind, block.variant)]
    attrs = f'data-block="{block.kind.value}" data-uid="{escape_attr(block.uid)}"'
    if block.variant is not None:
        attrs += f' data-variant="{block.variant.value}"'
    if block.page_break is not None:
        attrs += f' data-page-break="{block.page_break.value}"'
    return (
        f'<section {attrs} class="block block-{block.kind.value}">'
        + renderer(block.fields)
        + "</section>"
    )


# ============================================================================
# Reading blocks back
# ============================================================================

def _find_field(element: Tag, name: str):
    return element.find(attrs={"data-field": name})


def read_fields(kind: BlockKind, element: Tag) -> Dict[str, Any]:
    """
    Extract field values from a rendered block, whatever its variant.

    Never raises on missing markup: a missing or blank text field takes its
    default, a missing list container takes the default list, and a list
    container that is present but empty stays empty.
    """
    kind = BlockKind(kind)
    defaults = default_fields(kind)
    values: Dict[str, Any] = {}

    for spec in field_specs(kind):
        el = _find_field(element, spec.name)
        if el is None:
            values[spec.name] = defaults[spec.name]
            continue

        if spec.type == FieldType.TEXT:
            text = el.get_text().strip()
            values[spec.name] = text or defaults[spec.name]
        elif spec.type == FieldType.IMAGE:
            values[spec.name] = el.get("src") or defaults[spec.name]
        elif spec.type == FieldType.CHIPS:
            values[spec.name] = [c.get_text().strip() for c in el.find_all(attrs={"data-chip": "1"})]
        elif spec.type == FieldType.BULLETS:
            values[spec.name] = [li.get_text().strip() for li in el.find_all("li", recursive=False)]
        else:
            values[spec.name] = [li.get_text().strip() for li in el.find_all(attrs={"data-item": "1"})]

    return values


def parse_block(element: Tag) -> Block:
    """
    Build a Block from a ``section[data-block]`` element.

    Raises:
        ValueError: If the element names an unknown block kind
    """
    kind = BlockKind(element.get("data-block"))
    variant = element.get("data-variant") if kind in VARIANT_KINDS else None
    if variant not in (None, Variant.CARD.value, Variant.TEXT.value):
        logger.warning(f"Unknown variant '{variant}' on {kind.value} block, using card")
        variant = None
    page_break = element.get("data-page-break")

    return Block(
        kind=kind,
        fields=read_fields(kind, element),
        variant=Variant(variant) if variant else None,
        uid=element.get("data-uid") or new_uid(),
        page_break=PageBreak(page_break) if page_break in ("before", "after") else None,
    )


def switch_variant(block_html: Union[str, Tag], variant: Union[Variant, str]) -> str:
    """
    Re-render a block in another variant, carrying every field across.

    Raises:
        ValueError: If the markup is not a variant-capable block
    """
    if isinstance(block_html, Tag):
        element = block_html
    else:
        element = parse_fragment(block_html).find("section", attrs={"data-block": True})
    if element is None:
        raise ValueError("No block element found")

    block = parse_block(element)
    if block.kind not in VARIANT_KINDS:
        raise ValueError(f"{block.kind.value} blocks have a single variant")

    block.variant = Variant(variant)
    return render_block(block)
