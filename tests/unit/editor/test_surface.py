"""
Unit tests for src/editor/surface.py

Drives the headless editing surface the way the browser does: key presses,
clicks on in-document controls, paste and file reads.
"""

import pytest
from unittest.mock import MagicMock

from src.common.error_handling import UploadError, ValidationError
from src.editor.actions import Action, ClickEvent, KeyEvent, SurfaceEvent
from src.editor.blocks import Block, BlockKind, ListNode, NEW_ITEM_TEXT, TextNode, Variant
from src.editor.surface import Caret, EditorSurface, fill_placeholders


class TestFillPlaceholders:
    """Tests for {{key}} substitution."""

    def test_replaces_known_keys(self):
        assert fill_placeholders("{{company}} {{ role }}", {"company": "Acme", "role": "PM"}) == "Acme PM"

    def test_unknown_and_blank_keys_stay_verbatim(self):
        result = fill_placeholders("{{company}} / {{role}}", {"company": "  "})
        assert result == "{{company}} / {{role}}"


class TestPrefixConversion:
    """Markdown-style prefixes typed at the start of a paragraph."""

    def test_hash_space_becomes_heading(self):
        surface = EditorSurface()
        surface.type_text("# ")

        assert surface.html() == "<h1></h1>"
        surface.type_text("Title")
        assert surface.html() == "<h1>Title</h1>"

    @pytest.mark.parametrize("prefix,tag", [("## ", "h2"), ("### ", "h3"), ("> ", "blockquote")])
    def test_other_text_prefixes(self, prefix, tag):
        surface = EditorSurface()
        surface.type_text(prefix + "x")
        assert surface.html() == f"<{tag}>x</{tag}>"

    def test_prefix_mid_line_stays_literal(self):
        surface = EditorSurface()
        surface.type_text("a# b")
        assert surface.html() == "<p>a# b</p>"

    def test_dash_starts_bullet_list_and_empty_item_exits(self):
        surface = EditorSurface()
        surface.type_text("- a\n\nb")

        assert surface.html() == "<ul><li>a</li></ul><p>b</p>"

    def test_numbered_list(self):
        surface = EditorSurface()
        surface.type_text("1. one\ntwo")
        assert surface.html() == "<ol><li>one</li><li>two</li></ol>"

    def test_checklist_prefix_inside_bullet(self):
        surface = EditorSurface()
        surface.type_text("- [ ] task")

        assert surface.html() == '<ul data-list="todo"><li data-checked="false">task</li></ul>'

    def test_code_fence_enter_opens_code_block(self):
        surface = EditorSurface()
        surface.type_text("```\nx\ny")

        assert surface.html() == "<pre>x\ny</pre>"


class TestKeyboard:
    """Enter splitting and modifier shortcuts."""

    def test_enter_splits_paragraph(self):
        surface = EditorSurface("<p>Hello world</p>")
        surface.place_caret(0, 5)
        surface.handle_key(KeyEvent("Enter"))

        assert surface.html() == "<p>Hello</p><p> world</p>"
        assert surface.caret.node == 1

    def test_ctrl_b_toggles_strong_over_selection(self):
        surface = EditorSurface("<p>Hello world</p>")
        surface.select_text(0, 0, 5)

        result = surface.handle_key(KeyEvent("b", ctrl=True))

        assert result == SurfaceEvent.CHANGED
        assert surface.html() == "<p><strong>Hello</strong> world</p>"

        surface.select_text(0, 0, 5)
        surface.handle_key(KeyEvent("B", meta=True))
        assert surface.html() == "<p>Hello world</p>"

    def test_format_without_selection_is_noop(self):
        surface = EditorSurface("<p>Hello</p>")
        assert surface.handle_key(KeyEvent("i", ctrl=True)) == SurfaceEvent.NONE

    def test_ctrl_s_requests_save(self):
        on_save = MagicMock()
        surface = EditorSurface("<p>x</p>", on_save=on_save)

        assert surface.handle_key(KeyEvent("s", ctrl=True)) == SurfaceEvent.SAVE_REQUESTED
        on_save.assert_called_once()

    def test_ctrl_shift_k_inserts_kpi_badge(self):
        surface = EditorSurface("<p>Growth</p>", kpi_prompt=lambda: " +30% ")

        surface.handle_key(KeyEvent("k", ctrl=True, shift=True))

        assert surface.html() == '<p>Growth<span class="kpi-badge" data-kpi="1">+30%</span></p>'

    def test_kpi_prompt_cancel_changes_nothing(self):
        surface = EditorSurface("<p>Growth</p>", kpi_prompt=lambda: None)

        assert surface.handle_key(KeyEvent("k", ctrl=True, shift=True)) == SurfaceEvent.NONE
        assert surface.html() == "<p>Growth</p>"

    def test_slash_at_line_start_opens_menu(self):
        on_slash = MagicMock()
        surface = EditorSurface(on_slash_menu=on_slash)

        assert surface.handle_key(KeyEvent("/")) == SurfaceEvent.SLASH_MENU
        on_slash.assert_called_once()

    def test_typing_replaces_selection(self):
        surface = EditorSurface("<p>Hello world</p>")
        surface.select_text(0, 6, 11)
        surface.type_text("there")

        assert surface.html() == "<p>Hello there</p>"


class TestClicks:
    """Routing of in-document control clicks."""

    @staticmethod
    def _kinds(surface):
        return [node.kind.value if isinstance(node, Block) else node.tag for node in surface.nodes]

    @pytest.fixture
    def mixed(self):
        """skills, a loose paragraph, then a quote block."""
        surface = EditorSurface()
        surface.document.nodes = [
            Block(BlockKind.SKILLS),
            TextNode("p", "loose"),
            Block(BlockKind.QUOTE),
        ]
        return surface

    def test_move_up_skips_loose_paragraph(self, mixed):
        assert mixed.handle_click(ClickEvent(Action.MOVE_UP, 2)) == SurfaceEvent.CHANGED

        assert self._kinds(mixed) == ["quote", "skills", "p"]
        assert mixed.caret.node == 0

    def test_move_down_skips_loose_paragraph(self, mixed):
        assert mixed.handle_click(ClickEvent(Action.MOVE_DOWN, 0)) == SurfaceEvent.CHANGED

        assert self._kinds(mixed) == ["p", "quote", "skills"]
        assert mixed.caret.node == 2

    def test_move_up_then_down_restores_order(self):
        surface = EditorSurface()
        surface.document.nodes = [Block(BlockKind.SKILLS), Block(BlockKind.QUOTE)]

        surface.handle_click(ClickEvent(Action.MOVE_UP, 1))
        assert self._kinds(surface) == ["quote", "skills"]

        surface.handle_click(ClickEvent(Action.MOVE_DOWN, 0))
        assert self._kinds(surface) == ["skills", "quote"]

    def test_move_without_block_neighbour_is_noop(self, mixed):
        assert mixed.handle_click(ClickEvent(Action.MOVE_UP, 0)) == SurfaceEvent.NONE
        assert mixed.handle_click(ClickEvent(Action.MOVE_DOWN, 2)) == SurfaceEvent.NONE
        assert self._kinds(mixed) == ["skills", "p", "quote"]

    def test_paragraphs_alone_never_reorder(self):
        surface = EditorSurface("<p>a</p><p>b</p>")

        assert surface.handle_click(ClickEvent(Action.MOVE_UP, 1)) == SurfaceEvent.NONE
        assert surface.html() == "<p>a</p><p>b</p>"

    def test_click_on_missing_node_is_ignored(self):
        surface = EditorSurface("<p>a</p>")
        assert surface.handle_click(ClickEvent(Action.DELETE_BLOCK, 5)) == SurfaceEvent.NONE

    def test_delete_block(self):
        surface = EditorSurface("<p>a</p><p>b</p>")
        surface.handle_click(ClickEvent(Action.DELETE_BLOCK, 0))
        assert surface.html() == "<p>b</p>"

    def test_toggle_check(self):
        surface = EditorSurface('<ul data-list="todo"><li data-checked="false">x</li></ul>')
        surface.handle_click(ClickEvent(Action.TOGGLE_CHECK, 0, item_index=0))

        assert surface.html() == '<ul data-list="todo"><li data-checked="true">x</li></ul>'

    def test_add_and_remove_chip(self):
        surface = EditorSurface()
        surface.insert_block(BlockKind.SKILLS)

        surface.handle_click(ClickEvent(Action.ADD_CHIP, 0))
        assert surface.nodes[0].fields["chips"] == ["Python", "SQL", "Git", NEW_ITEM_TEXT]

        # Removal needs the modifier key
        assert surface.handle_click(ClickEvent(Action.REMOVE_CHIP, 0, item_index=0)) == SurfaceEvent.NONE
        surface.handle_click(ClickEvent(Action.REMOVE_CHIP, 0, item_index=0, modifier=True))
        assert surface.nodes[0].fields["chips"] == ["SQL", "Git", NEW_ITEM_TEXT]

    def test_add_bullet_on_block_without_bullets_is_noop(self):
        surface = EditorSurface()
        surface.insert_block(BlockKind.SKILLS)
        assert surface.handle_click(ClickEvent(Action.ADD_BULLET, 0)) == SurfaceEvent.NONE

    def test_click_event_from_attributes(self):
        event = ClickEvent.from_attributes({"data-action": "add-chip", "data-target": "chips"}, 2)
        assert event.action == Action.ADD_CHIP
        assert event.field == "chips"

        assert ClickEvent.from_attributes({"data-action": "explode"}, 0) is None
        assert ClickEvent.from_attributes({"data-chip": "1"}, 0, item_index=1) is None
        remove = ClickEvent.from_attributes({"data-chip": "1"}, 0, item_index=1, modifier=True)
        assert remove.action == Action.REMOVE_CHIP

    def test_experience_scenario_bullets_survive_variant_switches(self):
        """Add two bullets, switch to text and back: five bullets, header unchanged."""
        surface = EditorSurface()
        surface.insert_block(BlockKind.EXPERIENCE)
        header = {k: surface.nodes[0].fields[k] for k in ("company", "role", "period")}
        uid = surface.nodes[0].uid

        surface.handle_click(ClickEvent(Action.ADD_BULLET, 0))
        surface.edit_field(0, "bullets", surface.nodes[0].fields["bullets"][:3] + ["fourth"])
        surface.handle_click(ClickEvent(Action.ADD_BULLET, 0))
        surface.handle_click(ClickEvent(Action.SWITCH_VARIANT, 0, variant="text"))
        assert surface.nodes[0].variant == Variant.TEXT
        surface.handle_click(ClickEvent(Action.SWITCH_VARIANT, 0))

        block = surface.nodes[0]
        assert block.variant == Variant.CARD
        assert block.uid == uid
        assert block.fields["bullets"] == [
            "담당 업무와 역할을 적어주세요",
            "정량적인 성과를 수치로 적어주세요",
            "사용한 기술과 협업 방식을 적어주세요",
            "fourth",
            NEW_ITEM_TEXT,
        ]
        assert {k: block.fields[k] for k in header} == header


class TestImageUpload:
    """Upload target lifecycle."""

    def _surface(self):
        surface = EditorSurface()
        surface.insert_block(BlockKind.EXPERIENCE)
        return surface

    def test_upload_sets_image_field(self):
        surface = self._surface()

        assert surface.handle_click(ClickEvent(Action.UPLOAD_IMAGE, 0, field="logo")) == SurfaceEvent.OPEN_FILE_PICKER
        assert surface.complete_upload("data:image/png;base64,AAAA") is True
        assert surface.nodes[0].fields["logo"] == "data:image/png;base64,AAAA"
        assert surface.upload_target is None

    def test_non_image_is_rejected_and_target_cleared(self):
        surface = self._surface()
        surface.begin_upload(0, "logo")

        with pytest.raises(ValidationError):
            surface.complete_upload("data:text/plain;base64,AAAA")
        assert surface.upload_target is None
        assert surface.nodes[0].fields["logo"] == ""

    def test_completion_without_target(self):
        surface = self._surface()
        assert surface.complete_upload("data:image/png;base64,AAAA") is False

    def test_deleted_block_drops_pending_upload(self):
        surface = self._surface()
        surface.begin_upload(0, "logo")
        surface.handle_click(ClickEvent(Action.DELETE_BLOCK, 0))

        assert surface.complete_upload("data:image/png;base64,AAAA") is False

    def test_failed_read_raises_upload_error(self):
        surface = self._surface()
        surface.begin_upload(0, "logo")

        with pytest.raises(UploadError):
            surface.fail_upload("read aborted")
        assert surface.upload_target is None

    def test_begin_upload_on_text_field_raises(self):
        surface = self._surface()
        with pytest.raises(ValueError):
            surface.begin_upload(0, "company")


class TestPaste:
    """Clipboard handling."""

    def test_plain_text_is_escaped_with_line_breaks(self):
        surface = EditorSurface()
        surface.paste(text="a\nb<b>")

        assert surface.html() == "<p>a<br>b&lt;b&gt;</p>"

    def test_inline_html_goes_into_current_line(self):
        surface = EditorSurface("<p>ab</p>")
        surface.place_caret(0, 1)
        surface.paste(html='<b style="color:red">X</b>')

        assert surface.html() == "<p>a<b>X</b>b</p>"

    def test_block_html_is_sanitized_and_inserted_as_nodes(self):
        surface = EditorSurface("<p>first</p>")
        surface.paste(html='<h2 onclick="x()">Title</h2><script>bad()</script><p>body</p>')

        html = surface.html()
        assert html.startswith("<p>first</p><h2>Title</h2>")
        assert "<script" not in html
        assert "onclick" not in html

    def test_empty_paste_is_noop(self):
        surface = EditorSurface("<p>a</p>")
        assert surface.paste() == SurfaceEvent.NONE


class TestInsertion:
    """Insertion primitives used by templates and presets."""

    def test_insert_replaces_empty_paragraph(self):
        surface = EditorSurface("<p></p>")
        surface.insert_heading(2, "Experience")

        assert surface.html() == "<h2>Experience</h2>"

    def test_insert_goes_after_caret_node(self):
        surface = EditorSurface("<p>a</p><p>b</p>")
        surface.place_caret(0)
        surface.insert_paragraph("between")

        assert surface.html() == "<p>a</p><p>between</p><p>b</p>"

    def test_insertions_fill_placeholders(self):
        surface = EditorSurface(context={"company": "Acme"})
        surface.insert_paragraph("Dear {{company}} {{team}}")
        surface.insert_key_value_table([("Company", "{{company}}")])

        html = surface.html()
        assert "<p>Dear Acme {{team}}</p>" in html
        assert "<td>Acme</td>" in html

    def test_insert_bullets_ordered(self):
        surface = EditorSurface()
        surface.insert_bullets(["a", "b"], ordered=True)
        assert surface.html() == "<ol><li>a</li><li>b</li></ol>"

    def test_insert_heading_rejects_bad_level(self):
        with pytest.raises(ValueError):
            EditorSurface().insert_heading(4, "x")

    def test_insert_block_with_variant(self):
        surface = EditorSurface()
        surface.insert_block("education", {"school": "서울대학교"}, "text")

        block = surface.nodes[0]
        assert isinstance(block, Block)
        assert block.variant == Variant.TEXT
        assert block.fields["school"] == "서울대학교"

    def test_duplicate_block_uids_are_reassigned(self):
        surface = EditorSurface()
        surface.insert_block(BlockKind.QUOTE)
        snippet = surface.html()
        surface.insert_html(snippet)

        uids = [node.uid for node in surface.nodes if isinstance(node, Block)]
        assert len(uids) == 2
        assert uids[0] != uids[1]

    def test_replace_selection_with_rewrite(self):
        surface = EditorSurface("<p>Hello world</p>", context={"company": "Acme"})
        surface.select_text(0, 6, 11)
        surface.replace_selection("{{company}}")

        assert surface.html() == "<p>Hello Acme</p>"

    def test_replace_without_selection_adds_paragraph(self):
        surface = EditorSurface("<p>Hello</p>")
        surface.replace_selection("new")
        assert surface.html() == "<p>Hello</p><p>new</p>"


class TestSelection:

    def test_selection_html_single_line(self):
        surface = EditorSurface("<p>Hello <strong>world</strong></p>")
        surface.select_text(0, 3, 8)
        assert surface.selection_html() == "lo <strong>wo</strong>"

    def test_selection_html_across_nodes(self):
        surface = EditorSurface("<h2>Title</h2><p>Body text</p>")
        surface.select(Caret(0, 2), Caret(1, 4))

        assert surface.selection_html() == "<h2>tle</h2><p>Body</p>"

    def test_delete_selection_across_paragraphs_merges(self):
        surface = EditorSurface("<p>abc</p><p>def</p><p>ghi</p>")
        surface.select(Caret(0, 1), Caret(2, 2))
        surface.delete_selection()

        assert surface.html() == "<p>ai</p>"
        assert surface.caret.node == 0
        assert surface.caret.offset == 1

    def test_decorated_html_is_display_only(self):
        surface = EditorSurface("<p>a</p>")
        assert "data-deco" in surface.decorated_html()
        assert "data-deco" not in surface.html()

    def test_load_replaces_document(self):
        surface = EditorSurface("<p>a</p>")
        surface.load("<h1>b</h1>")

        assert isinstance(surface.nodes[0], TextNode)
        assert surface.nodes[0].tag == "h1"
        assert not any(isinstance(n, ListNode) for n in surface.nodes)
