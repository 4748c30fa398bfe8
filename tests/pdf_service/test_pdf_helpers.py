"""
Unit tests for PDF helper functions.

Tests filename sanitizing, Korean font lookup and the A4 print document.
"""

from pdf_service.pdf_helpers import (
    EMBEDDED_FONT_FAMILY,
    KOREAN_FONT_FILES,
    build_document_html,
    find_korean_font,
    font_face_css,
    sanitize_for_path,
)


class TestSanitizeForPath:
    """Tests for sanitize_for_path function."""

    def test_reserved_characters_replaced(self):
        assert sanitize_for_path('이력서: "최종"') == '이력서_ _최종_'
        assert sanitize_for_path("a/b\\c|d") == "a_b_c_d"

    def test_hangul_and_spaces_preserved(self):
        assert sanitize_for_path("자기소개서 2025") == "자기소개서 2025"

    def test_sanitize_empty_string(self):
        assert sanitize_for_path("") == ""


class TestFindKoreanFont:
    """Tests for the font lookup order."""

    def test_missing_directory(self, tmp_path):
        path, tried = find_korean_font(str(tmp_path / "nope"))

        assert path is None
        assert len(tried) == len(KOREAN_FONT_FILES)

    def test_first_file_in_order_wins(self, tmp_path):
        (tmp_path / "NotoSansKR-Regular.ttf").write_bytes(b"noto")
        (tmp_path / "PretendardStd-Regular.ttf").write_bytes(b"std")

        path, tried = find_korean_font(str(tmp_path))

        assert path.name == "PretendardStd-Regular.ttf"
        assert len(tried) == 2

    def test_empty_file_is_skipped(self, tmp_path):
        (tmp_path / "Pretendard-Regular.ttf").write_bytes(b"")
        (tmp_path / "NotoSansKR-Regular.ttf").write_bytes(b"noto")

        path, _ = find_korean_font(str(tmp_path))
        assert path.name == "NotoSansKR-Regular.ttf"


class TestFontFaceCss:

    def test_no_font(self):
        assert font_face_css(None) == ""

    def test_embeds_base64(self, tmp_path):
        font = tmp_path / "f.ttf"
        font.write_bytes(b"abc")

        css = font_face_css(font)

        assert f"font-family: '{EMBEDDED_FONT_FAMILY}'" in css
        assert "url(data:font/ttf;base64,YWJj)" in css


class TestBuildDocumentHtml:
    """Tests for the print document template."""

    def test_title_is_escaped_and_body_kept(self):
        html = build_document_html("<R&D>", "<p><strong>성과</strong></p>")

        assert "<title>&lt;R&amp;D&gt;</title>" in html
        assert '<h1 class="doc-title">&lt;R&amp;D&gt;</h1>' in html
        assert "<p><strong>성과</strong></p>" in html

    def test_a4_page_and_page_breaks(self):
        html = build_document_html("t", "")

        assert "size: A4;" in html
        assert "margin: 20mm;" in html
        assert '[data-page-break="before"]' in html
        assert "break-before: page;" in html
        assert '[data-page-break="after"]' in html

    def test_checked_todo_struck_through(self):
        html = build_document_html("t", "")
        assert 'ul[data-list="todo"] li[data-checked="true"]' in html

    def test_font_css_inlined(self):
        html = build_document_html("t", "", font_css="@font-face { font-family: 'X'; }")
        assert "@font-face { font-family: 'X'; }" in html
