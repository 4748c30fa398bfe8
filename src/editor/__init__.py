"""
Block document editor.

Document model, canonical HTML codec, headless editing surface, autosave,
A4 pagination and the template/preset catalog.
"""

from src.editor.blocks import Block, BlockKind, Document, Variant, default_fields
from src.editor.envelope import block_html, wrap_html
from src.editor.html_codec import decorate, deserialize, serialize, strip_decorations
from src.editor.sanitizer import sanitize_html
from src.editor.surface import EditorSurface, fill_placeholders

__all__ = [
    "Block",
    "BlockKind",
    "Document",
    "Variant",
    "default_fields",
    "block_html",
    "wrap_html",
    "decorate",
    "deserialize",
    "serialize",
    "strip_decorations",
    "sanitize_html",
    "EditorSurface",
    "fill_placeholders",
]
