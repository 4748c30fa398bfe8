"""
Editor surface.

Headless model of the contenteditable region. It owns the document tree and
a caret/selection, and turns keyboard, click and paste input into tree
mutations. The HTML shown in the browser is a projection of the tree
(``decorated_html``); the HTML that gets saved is ``html()``.

Caret positions are (node, offset) pairs, plus an item index when the caret
sits inside a list. Offsets are plain-text offsets as defined in
``src.editor.inline``.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from src.common.error_handling import UploadError, ValidationError
from src.common.logger import get_logger
from src.editor import inline
from src.editor.actions import Action, ClickEvent, KeyEvent, SurfaceEvent
from src.editor.block_templates import parse_block, render_block, switch_variant
from src.editor.blocks import (
    Block,
    BlockKind,
    Document,
    FieldType,
    LIST_FIELD_TYPES,
    ListItem,
    ListNode,
    NEW_ITEM_TEXT,
    Node,
    TableNode,
    TextNode,
    VARIANT_KINDS,
    Variant,
    field_spec,
    merge_fields,
    new_uid,
)
from src.editor.html_codec import decorate, deserialize, render_node, serialize
from src.editor.markup import INLINE_TAGS, canonicalize, escape_plain, escape_text, parse_fragment
from src.editor.sanitizer import sanitize_html

PLACEHOLDER_RE = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")

# Line prefixes converted when followed by a space at the start of a paragraph
PARAGRAPH_PREFIXES = {
    "#": "h1",
    "##": "h2",
    "###": "h3",
    ">": "blockquote",
    "-": "ul",
    "*": "ul",
    "1.": "ol",
    "- [ ]": "todo",
    "[ ]": "todo",
}
CHECKLIST_PREFIX = "[ ]"
CODE_FENCE = "```"


def fill_placeholders(text: str, context: Dict[str, Any]) -> str:
    """
    Replace ``{{key}}`` tokens with values from context.

    Unknown keys and blank values leave the token verbatim.
    """
    def _replace(match: "re.Match") -> str:
        value = context.get(match.group(1))
        if value is None or not str(value).strip():
            return match.group(0)
        return str(value)

    return PLACEHOLDER_RE.sub(_replace, text or "")


def fill_placeholders_html(html: str, context: Dict[str, Any]) -> str:
    """Placeholder fill for markup: values are escaped, newlines become ``<br>``."""
    def _replace(match: "re.Match") -> str:
        value = context.get(match.group(1))
        if value is None or not str(value).strip():
            return match.group(0)
        return escape_text(str(value))

    return PLACEHOLDER_RE.sub(_replace, html or "")


@dataclass
class Caret:
    node: int = 0
    offset: int = 0
    item: Optional[int] = None

    def line(self) -> Tuple[int, int]:
        return (self.node, self.item or 0)


@dataclass
class Selection:
    start: Caret
    end: Caret

    @property
    def collapsed(self) -> bool:
        return self.start == self.end


@dataclass
class UploadTarget:
    """Image field waiting for a file read to finish."""
    uid: str
    field: str


@dataclass
class _Segment:
    node: int
    item: Optional[int]
    start: int
    end: int
    length: int


class EditorSurface:
    """
    Editing session over one document body.

    Args:
        html: Initial body HTML (decorations, if any, are ignored)
        context: Placeholder values, e.g. {"company": ..., "role": ...}
        kpi_prompt: Called on Ctrl/Cmd+Shift+K; returns badge text or None
        on_save: Called on Ctrl/Cmd+S
        on_slash_menu: Called when "/" is typed at the start of a line
        doc_id: Used only for log correlation
    """

    def __init__(
        self,
        html: str = "",
        context: Optional[Dict[str, Any]] = None,
        kpi_prompt: Optional[Callable[[], Optional[str]]] = None,
        on_save: Optional[Callable[[], None]] = None,
        on_slash_menu: Optional[Callable[[Caret], None]] = None,
        doc_id: Optional[str] = None,
    ):
        self.context: Dict[str, Any] = dict(context or {})
        self.kpi_prompt = kpi_prompt
        self.on_save = on_save
        self.on_slash_menu = on_slash_menu
        self.logger = get_logger(__name__, doc_id=doc_id, component="surface")

        self.document = Document()
        self.caret = Caret()
        self.selection: Optional[Selection] = None
        self.upload_target: Optional[UploadTarget] = None

        self._shortcuts: Dict[Tuple[str, bool], Callable[[], SurfaceEvent]] = {
            ("b", False): lambda: self.toggle_format("strong"),
            ("i", False): lambda: self.toggle_format("em"),
            ("u", False): lambda: self.toggle_format("u"),
            ("s", False): self._request_save,
            ("k", True): self._prompt_kpi_badge,
        }
        self._click_handlers: Dict[Action, Callable[[ClickEvent], SurfaceEvent]] = {
            Action.MOVE_UP: self._move_up,
            Action.MOVE_DOWN: self._move_down,
            Action.DELETE_BLOCK: self._delete_block,
            Action.TOGGLE_CHECK: self._toggle_check,
            Action.ADD_CHIP: self._add_chip,
            Action.REMOVE_CHIP: self._remove_chip,
            Action.ADD_BULLET: self._add_bullet,
            Action.REMOVE_BULLET: self._remove_bullet,
            Action.SWITCH_VARIANT: self._switch_variant,
            Action.UPLOAD_IMAGE: self._upload_image,
        }

        self.load(html)

    # ========================================================================
    # Hydration / projection
    # ========================================================================

    def load(self, html: str) -> None:
        """Replace the whole document with a new body."""
        self.document = deserialize(html or "")
        self.selection = None
        self.upload_target = None
        self.place_caret_at_end()

    def html(self) -> str:
        """Body HTML as persisted (no decorations)."""
        return serialize(self.document)

    def decorated_html(self) -> str:
        """Body HTML with hover toolbars and highlights, for display."""
        return decorate(self.html())

    @property
    def nodes(self) -> List[Node]:
        return self.document.nodes

    # ========================================================================
    # Caret and selection
    # ========================================================================

    def place_caret(self, node: int, offset: int = 0, item: Optional[int] = None) -> None:
        self.caret = Caret(node, offset, item)
        self.selection = None

    def place_caret_at_end(self) -> None:
        if not self.nodes:
            self.caret = Caret()
            return
        index = len(self.nodes) - 1
        self.caret = self._end_of(index)

    def select(self, start: Caret, end: Caret) -> None:
        """Select between two carets (order-insensitive)."""
        if (end.node, end.item or 0, end.offset) < (start.node, start.item or 0, start.offset):
            start, end = end, start
        self.selection = Selection(start, end)
        self.caret = Caret(end.node, end.offset, end.item)

    def select_text(self, node: int, start: int, end: int, item: Optional[int] = None) -> None:
        """Select a range inside one line."""
        self.select(Caret(node, start, item), Caret(node, end, item))

    def _end_of(self, index: int) -> Caret:
        node = self.nodes[index]
        if isinstance(node, TextNode):
            return Caret(index, inline.text_length(node.html))
        if isinstance(node, ListNode) and node.items:
            last = len(node.items) - 1
            return Caret(index, inline.text_length(node.items[last].html), last)
        return Caret(index, 0)

    def _line_html(self, node_index: int, item: Optional[int]) -> Optional[str]:
        if not 0 <= node_index < len(self.nodes):
            return None
        node = self.nodes[node_index]
        if isinstance(node, TextNode):
            return node.html
        if isinstance(node, ListNode) and item is not None and 0 <= item < len(node.items):
            return node.items[item].html
        return None

    def _set_line_html(self, node_index: int, item: Optional[int], html: str) -> None:
        node = self.nodes[node_index]
        if isinstance(node, TextNode):
            node.html = html
        else:
            node.items[item].html = html

    def _ensure_line(self) -> None:
        """Make sure the caret sits in an editable text line."""
        if self._line_html(self.caret.node, self.caret.item) is not None:
            return
        paragraph = TextNode("p", "")
        index = self.caret.node + 1 if self.nodes else 0
        self.nodes.insert(index, paragraph)
        self.caret = Caret(index, 0)

    def _segments(self) -> List[_Segment]:
        """Text lines covered by the selection with their selected ranges."""
        if self.selection is None or self.selection.collapsed:
            return []
        start, end = self.selection.start, self.selection.end
        segments = []
        for index in range(start.node, end.node + 1):
            node = self.nodes[index]
            if isinstance(node, TextNode):
                lines = [(None, node.html)]
            elif isinstance(node, ListNode):
                first = (start.item or 0) if index == start.node else 0
                last = (end.item or 0) if index == end.node else len(node.items) - 1
                lines = [(i, node.items[i].html) for i in range(first, last + 1)]
            else:
                continue
            for item, html in lines:
                length = inline.text_length(html)
                is_first = (index, item or 0) == start.line()
                is_last = (index, item or 0) == end.line()
                segments.append(_Segment(
                    node=index,
                    item=item,
                    start=start.offset if is_first else 0,
                    end=min(end.offset, length) if is_last else length,
                    length=length,
                ))
        return segments

    # ========================================================================
    # Keyboard
    # ========================================================================

    def handle_key(self, event: KeyEvent) -> SurfaceEvent:
        """Apply one key press."""
        if event.mod:
            handler = self._shortcuts.get((event.key.lower(), event.shift))
            return handler() if handler else SurfaceEvent.NONE
        if event.key == "Enter":
            return self._enter()
        if len(event.key) == 1:
            return self._type_char(event.key)
        return SurfaceEvent.NONE

    def type_text(self, text: str) -> SurfaceEvent:
        """Type characters one by one, as key presses ("\\n" presses Enter)."""
        result = SurfaceEvent.NONE
        for ch in text:
            outcome = self.handle_key(KeyEvent("Enter" if ch == "\n" else ch))
            if outcome != SurfaceEvent.NONE:
                result = outcome
        return result

    def _type_char(self, ch: str) -> SurfaceEvent:
        if self.selection and not self.selection.collapsed:
            self.delete_selection()
        self._ensure_line()
        caret = self.caret

        if ch == "/" and caret.offset == 0 and isinstance(self.nodes[caret.node], TextNode):
            self.logger.debug("Slash menu opened")
            if self.on_slash_menu:
                self.on_slash_menu(caret)
            return SurfaceEvent.SLASH_MENU

        if ch == " " and self._convert_prefix():
            return SurfaceEvent.CHANGED

        line = self._line_html(caret.node, caret.item)
        self._set_line_html(caret.node, caret.item, inline.insert_text(line, caret.offset, ch))
        self.caret = Caret(caret.node, caret.offset + 1, caret.item)
        return SurfaceEvent.CHANGED

    def _convert_prefix(self) -> bool:
        """
        Turn a Markdown-style prefix into a block.

        Fires only when the text between line start and caret is exactly a
        known prefix, so the same characters typed mid-line stay literal.
        """
        caret = self.caret
        node = self.nodes[caret.node]
        line = self._line_html(caret.node, caret.item)
        before = inline.plain_text(line)[:caret.offset]

        if isinstance(node, TextNode) and node.tag == "p":
            target = PARAGRAPH_PREFIXES.get(before)
            if target is None:
                return False
            rest = inline.delete_range(node.html, 0, caret.offset)
            if target in ("ul", "ol", "todo"):
                replacement = ListNode(target, [ListItem(rest)], page_break=node.page_break)
                self.nodes[caret.node] = replacement
                self.caret = Caret(caret.node, 0, 0)
            else:
                self.nodes[caret.node] = TextNode(target, rest, page_break=node.page_break)
                self.caret = Caret(caret.node, 0)
            self.logger.debug(f"Converted '{before}' prefix to {target}")
            return True

        if isinstance(node, ListNode) and node.tag == "ul" and before == CHECKLIST_PREFIX:
            item = node.items[caret.item]
            item.html = inline.delete_range(item.html, 0, caret.offset)
            self._split_list(caret.node, caret.item, "todo")
            return True

        return False

    def _split_list(self, index: int, item_index: int, middle_tag: str) -> None:
        """Move one list item into its own list of another type."""
        node = self.nodes[index]
        before = node.items[:item_index]
        current = node.items[item_index]
        after = node.items[item_index + 1:]

        replacement: List[Node] = []
        if before:
            replacement.append(ListNode(node.tag, before, dict(node.attrs), node.page_break))
        replacement.append(ListNode(middle_tag, [ListItem(current.html)]))
        if after:
            replacement.append(ListNode(node.tag, after, dict(node.attrs)))

        self.nodes[index:index + 1] = replacement
        self.caret = Caret(index + (1 if before else 0), 0, 0)

    def _enter(self) -> SurfaceEvent:
        if self.selection and not self.selection.collapsed:
            self.delete_selection()
        if not self.nodes:
            self._ensure_line()

        caret = self.caret
        node = self.nodes[caret.node]

        if isinstance(node, TextNode):
            if node.tag == "pre":
                node.html = inline.insert_markup(node.html, caret.offset, "\n")
                self.caret = Caret(caret.node, caret.offset + 1)
                return SurfaceEvent.CHANGED
            if node.tag == "p" and inline.plain_text(node.html) == CODE_FENCE:
                self.nodes[caret.node] = TextNode("pre", "", page_break=node.page_break)
                self.caret = Caret(caret.node, 0)
                return SurfaceEvent.CHANGED
            left, right = inline.split_at(node.html, caret.offset)
            node.html = left
            self.nodes.insert(caret.node + 1, TextNode("p", right))
            self.caret = Caret(caret.node + 1, 0)
            return SurfaceEvent.CHANGED

        if isinstance(node, ListNode) and caret.item is not None:
            item = node.items[caret.item]
            if not inline.plain_text(item.html).strip():
                self._exit_list(caret.node, caret.item)
                return SurfaceEvent.CHANGED
            left, right = inline.split_at(item.html, caret.offset)
            item.html = left
            node.items.insert(caret.item + 1, ListItem(right))
            self.caret = Caret(caret.node, 0, caret.item + 1)
            return SurfaceEvent.CHANGED

        self.nodes.insert(caret.node + 1, TextNode("p", ""))
        self.caret = Caret(caret.node + 1, 0)
        return SurfaceEvent.CHANGED

    def _exit_list(self, index: int, item_index: int) -> None:
        """Enter on an empty item: leave the list with a new paragraph."""
        node = self.nodes[index]
        before = node.items[:item_index]
        after = node.items[item_index + 1:]

        replacement: List[Node] = []
        if before:
            replacement.append(ListNode(node.tag, before, dict(node.attrs), node.page_break))
        replacement.append(TextNode("p", ""))
        if after:
            replacement.append(ListNode(node.tag, after, dict(node.attrs)))

        self.nodes[index:index + 1] = replacement
        self.caret = Caret(index + (1 if before else 0), 0)

    # ========================================================================
    # Formatting
    # ========================================================================

    def toggle_format(self, mark: str) -> SurfaceEvent:
        """Toggle strong/em/u over the selection. No-op without a selection."""
        segments = self._segments()
        if not segments:
            return SurfaceEvent.NONE
        for seg in segments:
            html = self._line_html(seg.node, seg.item)
            self._set_line_html(seg.node, seg.item, inline.toggle_mark(html, seg.start, seg.end, mark))
        return SurfaceEvent.CHANGED

    def _request_save(self) -> SurfaceEvent:
        if self.on_save:
            self.on_save()
        return SurfaceEvent.SAVE_REQUESTED

    def _prompt_kpi_badge(self) -> SurfaceEvent:
        if self.kpi_prompt is None:
            return SurfaceEvent.NONE
        text = self.kpi_prompt()
        if not text or not text.strip():
            return SurfaceEvent.NONE
        return self.insert_kpi_badge(text.strip())

    def insert_kpi_badge(self, text: str) -> SurfaceEvent:
        badge = f'<span class="kpi-badge" data-kpi="1">{escape_plain(text)}</span>'
        return self._insert_inline(badge)

    # ========================================================================
    # Clicks
    # ========================================================================

    def handle_click(self, event: ClickEvent) -> SurfaceEvent:
        """Route a click on an in-document control."""
        if not 0 <= event.node_index < len(self.nodes):
            self.logger.warning(f"Click on missing node {event.node_index} ignored")
            return SurfaceEvent.NONE
        return self._click_handlers[event.action](event)

    def _neighbour_block(self, index: int, step: int) -> Optional[int]:
        """Index of the nearest Block from ``index`` in direction ``step``."""
        cursor = index + step
        while 0 <= cursor < len(self.nodes):
            if isinstance(self.nodes[cursor], Block):
                return cursor
            cursor += step
        return None

    def _move_up(self, event: ClickEvent) -> SurfaceEvent:
        index = event.node_index
        target = self._neighbour_block(index, -1)
        if target is None:
            return SurfaceEvent.NONE
        self.nodes.insert(target, self.nodes.pop(index))
        self.place_caret(target)
        return SurfaceEvent.CHANGED

    def _move_down(self, event: ClickEvent) -> SurfaceEvent:
        index = event.node_index
        target = self._neighbour_block(index, 1)
        if target is None:
            return SurfaceEvent.NONE
        # after the pop the neighbour sits at target - 1, so target lands just past it
        self.nodes.insert(target, self.nodes.pop(index))
        self.place_caret(target)
        return SurfaceEvent.CHANGED

    def _delete_block(self, event: ClickEvent) -> SurfaceEvent:
        removed = self.nodes.pop(event.node_index)
        if isinstance(removed, Block) and self.upload_target and self.upload_target.uid == removed.uid:
            self.upload_target = None
        if self.nodes:
            self.place_caret(min(event.node_index, len(self.nodes) - 1))
        else:
            self.place_caret(0)
        return SurfaceEvent.CHANGED

    def _toggle_check(self, event: ClickEvent) -> SurfaceEvent:
        node = self.nodes[event.node_index]
        if not isinstance(node, ListNode) or node.tag != "todo":
            return SurfaceEvent.NONE
        if event.item_index is None or not 0 <= event.item_index < len(node.items):
            return SurfaceEvent.NONE
        item = node.items[event.item_index]
        item.checked = not item.checked
        return SurfaceEvent.CHANGED

    def _list_field(self, event: ClickEvent, default_field: str, field_type: FieldType) -> Optional[List[str]]:
        node = self.nodes[event.node_index]
        if not isinstance(node, Block):
            return None
        name = event.field or default_field
        try:
            spec = field_spec(node.kind, name)
        except KeyError:
            return None
        if spec.type != field_type:
            return None
        return node.fields.setdefault(name, [])

    def _add_chip(self, event: ClickEvent) -> SurfaceEvent:
        chips = self._list_field(event, "chips", FieldType.CHIPS)
        if chips is None:
            return SurfaceEvent.NONE
        chips.append(NEW_ITEM_TEXT)
        return SurfaceEvent.CHANGED

    def _remove_chip(self, event: ClickEvent) -> SurfaceEvent:
        chips = self._list_field(event, "chips", FieldType.CHIPS)
        if chips is None or not event.modifier:
            return SurfaceEvent.NONE
        if event.item_index is None or not 0 <= event.item_index < len(chips):
            return SurfaceEvent.NONE
        chips.pop(event.item_index)
        return SurfaceEvent.CHANGED

    def _add_bullet(self, event: ClickEvent) -> SurfaceEvent:
        bullets = self._list_field(event, "bullets", FieldType.BULLETS)
        if bullets is None:
            return SurfaceEvent.NONE
        bullets.append(NEW_ITEM_TEXT)
        return SurfaceEvent.CHANGED

    def _remove_bullet(self, event: ClickEvent) -> SurfaceEvent:
        bullets = self._list_field(event, "bullets", FieldType.BULLETS)
        if bullets is None or not event.modifier:
            return SurfaceEvent.NONE
        if event.item_index is None or not 0 <= event.item_index < len(bullets):
            return SurfaceEvent.NONE
        bullets.pop(event.item_index)
        return SurfaceEvent.CHANGED

    def _switch_variant(self, event: ClickEvent) -> SurfaceEvent:
        node = self.nodes[event.node_index]
        if not isinstance(node, Block) or node.kind not in VARIANT_KINDS:
            return SurfaceEvent.NONE
        if event.variant:
            target = Variant(event.variant)
        else:
            target = Variant.TEXT if node.variant == Variant.CARD else Variant.CARD

        switched = switch_variant(render_block(node), target)
        element = parse_fragment(switched).find("section")
        self.nodes[event.node_index] = parse_block(element)
        return SurfaceEvent.CHANGED

    def _upload_image(self, event: ClickEvent) -> SurfaceEvent:
        return self.begin_upload(event.node_index, event.field or "logo")

    def edit_field(self, node_index: int, name: str, value: Union[str, Sequence[str]]) -> SurfaceEvent:
        """In-place edit of one block field."""
        node = self.nodes[node_index]
        if not isinstance(node, Block):
            raise ValueError(f"Node {node_index} is not a block")
        spec = field_spec(node.kind, name)
        if spec.type in LIST_FIELD_TYPES:
            node.fields[name] = [str(v).strip() for v in value]
        else:
            node.fields[name] = str(value).strip()
        return SurfaceEvent.CHANGED

    # ========================================================================
    # Image upload
    # ========================================================================

    def begin_upload(self, node_index: int, name: str) -> SurfaceEvent:
        """Remember which image field the next file read should fill."""
        node = self.nodes[node_index]
        if not isinstance(node, Block) or field_spec(node.kind, name).type != FieldType.IMAGE:
            raise ValueError(f"Node {node_index} has no image field '{name}'")
        self.upload_target = UploadTarget(uid=node.uid, field=name)
        return SurfaceEvent.OPEN_FILE_PICKER

    def complete_upload(self, data_url: str, mime_type: Optional[str] = None) -> bool:
        """
        Finish a pending upload with the file's data URL.

        The pending target is consumed before anything else, so a later
        unrelated upload can never land on a stale target.

        Raises:
            ValidationError: If the file is not an image
        """
        target, self.upload_target = self.upload_target, None
        if target is None:
            self.logger.warning("Upload completed with no pending target")
            return False

        mime = mime_type
        if mime is None and data_url.startswith("data:"):
            mime = data_url[5:].split(";", 1)[0].split(",", 1)[0]
        if not mime or not mime.startswith("image/"):
            raise ValidationError("이미지 파일만 업로드할 수 있습니다.")

        index = self.document.find_block(target.uid)
        if index is None:
            self.logger.warning(f"Upload target block {target.uid} no longer exists")
            return False
        self.nodes[index].fields[target.field] = data_url
        return True

    def fail_upload(self, reason: str = "") -> None:
        """
        Abandon a pending upload after a failed file read.

        Raises:
            UploadError: Always, so the caller can show the message
        """
        self.upload_target = None
        self.logger.warning(f"Image read failed: {reason or 'unknown error'}")
        raise UploadError()

    # ========================================================================
    # Paste
    # ========================================================================

    def paste(self, html: Optional[str] = None, text: Optional[str] = None) -> SurfaceEvent:
        """
        Paste clipboard content at the caret.

        HTML is sanitized first; plain text is escaped with newlines turned
        into ``<br>``.
        """
        if html:
            clean = sanitize_html(html)
            soup = parse_fragment(clean)
            is_inline = all(
                isinstance(child, str) or child.name in INLINE_TAGS
                for child in soup.contents
            )
            if is_inline:
                return self._insert_inline(clean)
            return self._insert_nodes(deserialize(clean).nodes)
        if text:
            return self._insert_inline(escape_text(text))
        return SurfaceEvent.NONE

    def _insert_inline(self, markup: str) -> SurfaceEvent:
        if self.selection and not self.selection.collapsed:
            self.delete_selection()
        self._ensure_line()
        caret = self.caret
        line = self._line_html(caret.node, caret.item)
        self._set_line_html(caret.node, caret.item, inline.insert_markup(line, caret.offset, markup))
        self.caret = Caret(caret.node, caret.offset + inline.text_length(markup), caret.item)
        return SurfaceEvent.CHANGED

    # ========================================================================
    # Insertion primitives
    # ========================================================================

    def _insertion_index(self) -> int:
        if not self.nodes:
            return 0
        index = min(self.caret.node, len(self.nodes) - 1)
        current = self.nodes[index]
        is_empty_paragraph = (
            isinstance(current, TextNode)
            and current.tag == "p"
            and not inline.plain_text(current.html).strip()
            and "<img" not in current.html
        )
        if is_empty_paragraph:
            del self.nodes[index]
            return index
        return index + 1

    def _insert_nodes(self, nodes: Iterable[Node]) -> SurfaceEvent:
        nodes = list(nodes)
        if not nodes:
            return SurfaceEvent.NONE
        taken = {n.uid for n in self.nodes if isinstance(n, Block)}
        for node in nodes:
            if isinstance(node, Block):
                if node.uid in taken:
                    node.uid = new_uid()
                taken.add(node.uid)

        index = self._insertion_index()
        self.nodes[index:index] = nodes
        self.caret = self._end_of(index + len(nodes) - 1)
        self.selection = None
        return SurfaceEvent.CHANGED

    def insert_heading(self, level: int, text: str) -> SurfaceEvent:
        if level not in (1, 2, 3):
            raise ValueError(f"Heading level must be 1-3, got {level}")
        text = fill_placeholders(text, self.context)
        return self._insert_nodes([TextNode(f"h{level}", escape_plain(text))])

    def insert_paragraph(self, text: str) -> SurfaceEvent:
        text = fill_placeholders(text, self.context)
        return self._insert_nodes([TextNode("p", escape_text(text))])

    def insert_bullets(self, items: Sequence[str], ordered: bool = False) -> SurfaceEvent:
        filled = [escape_plain(fill_placeholders(item, self.context)) for item in items]
        return self._insert_nodes([ListNode("ol" if ordered else "ul", [ListItem(i) for i in filled])])

    def insert_key_value_table(self, rows: Union[Dict[str, str], Sequence[Tuple[str, str]]]) -> SurfaceEvent:
        pairs = rows.items() if isinstance(rows, dict) else rows
        filled = [
            (fill_placeholders(str(key), self.context), fill_placeholders(str(value), self.context))
            for key, value in pairs
        ]
        return self._insert_nodes([TableNode(filled)])

    def insert_block(
        self,
        kind: Union[BlockKind, str],
        fields: Optional[Dict[str, Any]] = None,
        variant: Optional[Union[Variant, str]] = None,
    ) -> SurfaceEvent:
        """Insert a structured block, defaults filled in for omitted fields."""
        values = merge_fields(BlockKind(kind), fields)
        for name, value in values.items():
            if isinstance(value, list):
                values[name] = [fill_placeholders(v, self.context) for v in value]
            else:
                values[name] = fill_placeholders(value, self.context)
        block = Block(kind=BlockKind(kind), fields=values, variant=Variant(variant) if variant else None)
        return self._insert_nodes([block])

    def insert_html(self, html: str) -> SurfaceEvent:
        """Insert an HTML snippet (templates, presets) as whole nodes."""
        html = fill_placeholders_html(html, self.context)
        return self._insert_nodes(deserialize(html).nodes)

    # ========================================================================
    # Selection content
    # ========================================================================

    def selection_html(self) -> str:
        """
        HTML of the current selection.

        Inside one line this is the selected inline fragment; across lines
        each touched node is included, trimmed to the selected range.
        """
        if self.selection is None or self.selection.collapsed:
            return ""
        start, end = self.selection.start, self.selection.end
        segments = self._segments()

        if start.line() == end.line() and len(segments) == 1:
            seg = segments[0]
            return inline.slice_html(self._line_html(seg.node, seg.item), seg.start, seg.end)

        by_node: Dict[int, List[_Segment]] = {}
        for seg in segments:
            by_node.setdefault(seg.node, []).append(seg)

        parts = []
        for index in range(start.node, end.node + 1):
            node = self.nodes[index]
            if isinstance(node, TextNode):
                seg = by_node[index][0]
                sliced = inline.slice_html(node.html, seg.start, seg.end)
                parts.append(render_node(TextNode(node.tag, sliced, dict(node.attrs))))
            elif isinstance(node, ListNode):
                items = [
                    ListItem(inline.slice_html(node.items[seg.item].html, seg.start, seg.end),
                             node.items[seg.item].checked)
                    for seg in by_node.get(index, [])
                ]
                parts.append(render_node(ListNode(node.tag, items, dict(node.attrs))))
            else:
                parts.append(render_node(node))
        return canonicalize("".join(parts))

    def delete_selection(self) -> None:
        """Remove the selected content and collapse the caret to its start."""
        segments = self._segments()
        if not segments:
            self.selection = None
            return
        start = self.selection.start
        first, last = segments[0], segments[-1]

        if len(segments) == 1:
            html = self._line_html(first.node, first.item)
            self._set_line_html(first.node, first.item, inline.delete_range(html, first.start, first.end))
            self.place_caret(start.node, first.start, first.item)
            return

        head = inline.delete_range(self._line_html(first.node, first.item), first.start, first.length)
        tail = inline.delete_range(self._line_html(last.node, last.item), 0, last.end)
        self._set_line_html(first.node, first.item, canonicalize(head + tail))

        # Drop everything after the first line up to and including the last line
        end_node = self.nodes[last.node]
        if last.node == first.node:
            del end_node.items[first.item + 1:last.item + 1]
        else:
            if isinstance(self.nodes[first.node], ListNode):
                del self.nodes[first.node].items[first.item + 1:]
            if isinstance(end_node, ListNode) and last.item is not None and last.item + 1 < len(end_node.items):
                del end_node.items[:last.item + 1]
                del self.nodes[first.node + 1:last.node]
            else:
                del self.nodes[first.node + 1:last.node + 1]

        self.place_caret(first.node, first.start, first.item)

    def replace_selection(self, text: str) -> SurfaceEvent:
        """
        Replace the selection with plain text (e.g. an AI rewrite result).

        Placeholders are filled from context. With no selection the text is
        inserted as a new paragraph after the caret.
        """
        text = fill_placeholders(text, self.context)
        if self.selection is None or self.selection.collapsed:
            return self.insert_paragraph(text)
        self.delete_selection()
        return self._insert_inline(escape_text(text))
