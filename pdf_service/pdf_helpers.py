"""
Helper functions for document PDF generation.

Builds the A4 print document around an editor body and embeds a Korean TTF
font so Hangul renders the same on every host.
"""

import base64
import html
import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# Lookup order; OTF and variable fonts are not used
KOREAN_FONT_FILES = (
    "Pretendard-Regular.ttf",
    "PretendardStd-Regular.ttf",
    "NotoSansKR-Regular.ttf",
)
EMBEDDED_FONT_FAMILY = "DocsmithKR"
A4_MARGIN_MM = 20


def sanitize_for_path(text: str) -> str:
    """
    Sanitize text for use as a download filename.

    Example:
        >>> sanitize_for_path('이력서: "최종"')
        '이력서_ _최종_'
    """
    return re.sub(r'[\\/:*?"<>|]', "_", text)


def find_korean_font(font_dir: str) -> Tuple[Optional[Path], List[str]]:
    """
    First non-empty font file in lookup order.

    Returns:
        (path or None, every path tried)
    """
    tried = []
    for name in KOREAN_FONT_FILES:
        path = Path(font_dir) / name
        tried.append(str(path))
        if path.is_file() and path.stat().st_size > 0:
            return path, tried
    return None, tried


def font_face_css(font_path: Optional[Path]) -> str:
    """@font-face rule embedding the font as a data URL ("" without a font)."""
    if font_path is None:
        return ""
    encoded = base64.b64encode(font_path.read_bytes()).decode("ascii")
    return (
        f"@font-face {{ font-family: '{EMBEDDED_FONT_FAMILY}'; "
        f"src: url(data:font/ttf;base64,{encoded}) format('truetype'); }}"
    )


def build_document_html(title: str, body_html: str, font_css: str = "") -> str:
    """
    Complete HTML document for an A4 print of one editor document.

    The title is escaped; the body is already sanitized canonical HTML.
    Page-break markers from the editor map to CSS page breaks.
    """
    return f"""<!DOCTYPE html>
<html lang="ko">
<head>
    <meta charset="UTF-8">
    <title>{html.escape(title)}</title>
    <style>
        {font_css}

        @page {{
            size: A4;
            margin: {A4_MARGIN_MM}mm;
        }}

        * {{
            box-sizing: border-box;
        }}

        body {{
            font-family: '{EMBEDDED_FONT_FAMILY}', 'Pretendard', 'Noto Sans KR', system-ui, sans-serif;
            font-size: 11pt;
            line-height: 1.6;
            color: #1f2a38;
            margin: 0;
        }}

        h1.doc-title {{
            font-size: 18pt;
            margin: 0 0 14pt 0;
        }}

        h1 {{ font-size: 16pt; }}
        h2 {{ font-size: 14pt; }}
        h3 {{ font-size: 12pt; }}

        img, table {{
            max-width: 100%;
            height: auto;
        }}

        table {{
            border-collapse: collapse;
        }}

        td, th {{
            border: 1px solid #e5e7eb;
            padding: 4pt 6pt;
        }}

        ul[data-list="todo"] li[data-checked="true"] {{
            text-decoration: line-through;
        }}

        .kpi-badge {{
            font-weight: 600;
            padding: 0 4pt;
            border-radius: 4pt;
            background: #eef2ff;
        }}

        [data-page-break="before"] {{
            break-before: page;
        }}

        [data-page-break="after"] {{
            break-after: page;
        }}
    </style>
</head>
<body>
    <h1 class="doc-title">{html.escape(title)}</h1>
    {body_html}
</body>
</html>"""
