"""
Unit tests for src/editor/inline.py

Offsets are plain-text positions; <br> counts as one character.
"""

from src.editor import inline


class TestPlainText:

    def test_br_reads_as_newline(self):
        assert inline.plain_text("a<br>b") == "a\nb"
        assert inline.text_length("a<br><strong>bc</strong>") == 4

    def test_markup_counts_zero(self):
        assert inline.text_length("<em></em>x") == 1


class TestInsert:

    def test_insert_text_escapes(self):
        assert inline.insert_text("ab", 1, "<b>") == "a&lt;b&gt;b"

    def test_insert_text_converts_newlines(self):
        assert inline.insert_text("", 0, "a\nb") == "a<br>b"

    def test_insert_inside_mark(self):
        assert inline.insert_text("<strong>ab</strong>", 1, "X") == "<strong>aXb</strong>"

    def test_insert_past_end_appends(self):
        assert inline.insert_markup("ab", 10, "<em>c</em>") == "ab<em>c</em>"


class TestDeleteAndSplit:

    def test_delete_range_across_marks(self):
        assert inline.delete_range("a<strong>bc</strong>d", 1, 3) == "ad"

    def test_delete_noop_for_empty_range(self):
        assert inline.delete_range("abc", 2, 2) == "abc"

    def test_split_at(self):
        left, right = inline.split_at("ab<em>cd</em>", 3)
        assert left == "ab<em>c</em>"
        assert right == "<em>d</em>"

    def test_slice_html(self):
        assert inline.slice_html("Hello <u>world</u>", 4, 8) == "o <u>wo</u>"


class TestToggleMark:

    def test_wraps_uncovered_text(self):
        assert inline.toggle_mark("Hello world", 0, 5, "strong") == "<strong>Hello</strong> world"

    def test_unwraps_when_fully_covered(self):
        assert inline.toggle_mark("<strong>Hello</strong> world", 0, 5, "strong") == "Hello world"

    def test_b_and_strong_are_equivalent(self):
        assert inline.toggle_mark("<b>Hi</b>", 0, 2, "strong") == "Hi"

    def test_partial_coverage_wraps_remaining(self):
        result = inline.toggle_mark("<em>ab</em>cd", 0, 4, "em")
        assert result == "<em>ab</em><em>cd</em>"

    def test_empty_range_is_noop(self):
        assert inline.toggle_mark("abc", 1, 1, "u") == "abc"
