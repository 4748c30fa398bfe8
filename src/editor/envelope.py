"""
Persisted content envelope.

Documents store their body as::

    {"blocks": [{"type": "doc", "html": "<p>...</p>"}]}

Older documents may hold a list of typed blocks with ``text`` or ``html``
payloads; ``block_html`` reads both shapes, but writes always use the single
doc-block shape.
"""

import json
import logging
from typing import Any, Dict, Optional, Union

from src.editor.markup import escape_text

logger = logging.getLogger(__name__)

DOC_BLOCK_TYPE = "doc"


def wrap_html(html: str) -> Dict[str, Any]:
    """Build the envelope for a serialized body."""
    return {"blocks": [{"type": DOC_BLOCK_TYPE, "html": html or ""}]}


def _coerce(content: Union[str, Dict[str, Any], None]) -> Optional[Dict[str, Any]]:
    if content is None:
        return None
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Document content is not valid JSON; treating it as raw HTML")
            return wrap_html(content)
    if isinstance(content, list):
        return {"blocks": content}
    if not isinstance(content, dict):
        return None
    return content


def block_html(content: Union[str, Dict[str, Any], None]) -> str:
    """
    Extract the HTML body from stored content.

    Args:
        content: Envelope dict, its JSON string, a bare block list, or None

    Returns:
        HTML body ("" when there is nothing to show)
    """
    envelope = _coerce(content)
    if not envelope:
        return ""

    blocks = envelope.get("blocks") or []
    for block in blocks:
        if isinstance(block, dict) and block.get("type") == DOC_BLOCK_TYPE:
            return block.get("html") or ""

    # Legacy shape: one entry per paragraph
    parts = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        if block.get("html"):
            parts.append(block["html"])
        elif block.get("text"):
            parts.append(f"<p>{escape_text(block['text'])}</p>")
    return "".join(parts)
