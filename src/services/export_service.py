"""
Document export: JSON download, plain text, and the payload the PDF service
renders.

Usage:
    body, filename = export_json(doc)
    payload = build_pdf_payload(doc)   # POST to {PDF_SERVICE_URL}/document-to-pdf
"""

import json
import re
import unicodedata
from typing import Any, Callable, Dict, List, Tuple
from urllib.parse import quote

from bs4 import BeautifulSoup

from src.editor.autosave import UNTITLED
from src.editor.envelope import block_html

UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
TEXT_LINE_WIDTH = 80


def safe_filename(title: str, fallback: str = "document") -> str:
    return UNSAFE_FILENAME_CHARS.sub("_", (title or "").strip()) or fallback


def export_filename(doc: Dict[str, Any], extension: str) -> str:
    """``{title}_{first six id chars}.{ext}``"""
    return f"{safe_filename(doc.get('title'))}_{str(doc.get('id', ''))[:6]}.{extension}"


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{quote(filename)}"'


def html_to_text(html: str) -> str:
    """Line breaks for ``<br>`` and paragraph ends, tags dropped, entities decoded."""
    marked = re.sub(r"<br\s*/?>", "\n", html or "", flags=re.I)
    marked = re.sub(r"</(p|h[1-6]|li|blockquote|pre|tr)>", "\n\n", marked, flags=re.I)
    text = BeautifulSoup(marked, "html.parser").get_text()
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def content_to_text(content: Any) -> str:
    if not content:
        return ""
    if isinstance(content, str):
        return html_to_text(content)
    if isinstance(content, dict):
        return html_to_text(block_html(content))
    return json.dumps(content, ensure_ascii=False, indent=2)


def display_width(text: str) -> int:
    """Column width with East Asian wide characters counted twice."""
    return sum(2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1 for ch in text)


def wrap_lines(text: str, measure: Callable[[str], float], max_width: float) -> List[str]:
    """
    Greedy word wrap. Words wider than a line are broken by character.
    Blank source lines are kept.
    """
    lines: List[str] = []
    for raw_line in re.split(r"\r?\n", text or ""):
        current = ""
        for word in raw_line.split():
            candidate = f"{current} {word}" if current else word
            if measure(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            if measure(word) <= max_width:
                current = word
                continue
            buffer = ""
            for ch in word:
                if measure(buffer + ch) <= max_width:
                    buffer += ch
                else:
                    if buffer:
                        lines.append(buffer)
                    buffer = ch
            current = buffer
        lines.append(current)
    return lines


def export_json(doc: Dict[str, Any]) -> Tuple[str, str]:
    """Pretty JSON body and download filename."""
    body = json.dumps(
        {
            "id": doc.get("id"),
            "title": doc.get("title"),
            "updatedAt": doc.get("updated_at"),
            "content": doc.get("content"),
        },
        ensure_ascii=False,
        indent=2,
    )
    return body, export_filename(doc, "json")


def export_text(doc: Dict[str, Any], width: int = TEXT_LINE_WIDTH) -> Tuple[str, str]:
    title = (doc.get("title") or "").strip() or UNTITLED
    lines = [title, ""] + wrap_lines(content_to_text(doc.get("content")), display_width, width)
    return "\n".join(lines).rstrip() + "\n", export_filename(doc, "txt")


def build_pdf_payload(doc: Dict[str, Any]) -> Dict[str, str]:
    """Request body for the PDF service's /document-to-pdf endpoint."""
    return {
        "title": (doc.get("title") or "").strip() or UNTITLED,
        "html": block_html(doc.get("content")),
        "filename": export_filename(doc, "pdf"),
    }
