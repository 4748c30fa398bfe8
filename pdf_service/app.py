"""
PDF Service - FastAPI application for PDF generation.

Renders editor documents (title + canonical body HTML) and arbitrary
HTML/CSS to A4 PDFs using Playwright/Chromium.
"""

import asyncio
import logging
from datetime import datetime
from io import BytesIO
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from .config import get_settings
from .pdf_helpers import build_document_html, find_korean_font, font_face_css, sanitize_for_path

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PDF Service",
    version="0.2.0",
    description="A4 PDF rendering for editor documents using Playwright/Chromium"
)

settings = get_settings()

# Semaphore for rate limiting
_pdf_semaphore = asyncio.Semaphore(settings.max_concurrent_pdfs)

# Playwright readiness state
_playwright_ready = False
_playwright_error: Optional[str] = None


# ============================================================================
# Startup Event - Validate Playwright
# ============================================================================

@app.on_event("startup")
async def validate_playwright_on_startup():
    """Validate Playwright/Chromium can produce a PDF before reporting healthy."""
    global _playwright_ready, _playwright_error

    logger.info("PDF Service starting - validating Playwright installation...")
    font_path, tried = find_korean_font(settings.font_dir)
    if font_path is None:
        logger.warning(f"No Korean TTF font found (tried: {', '.join(tried)}); Hangul may not render")

    try:
        from playwright.async_api import async_playwright

        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=settings.playwright_headless)
            page = await browser.new_page()
            await page.set_content("<html><body><h1>테스트</h1></body></html>")
            test_pdf = await page.pdf(format="A4")
            await browser.close()

        if len(test_pdf) > 0:
            _playwright_ready = True
            logger.info(f"✅ Playwright validation successful - generated {len(test_pdf)} byte test PDF")
        else:
            _playwright_error = "Test PDF generation returned empty result"
            logger.error(f"❌ Playwright validation failed: {_playwright_error}")

    except Exception as e:
        _playwright_error = str(e)
        logger.error(f"❌ Playwright validation failed: {_playwright_error}")


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime
    active_renders: int
    max_concurrent: int
    playwright_ready: bool = True
    playwright_error: Optional[str] = None
    font_available: bool = False


class RenderPDFRequest(BaseModel):
    """Generic HTML/CSS to PDF request."""
    html: str = Field(..., description="HTML content to render")
    css: Optional[str] = Field(None, description="Additional CSS styles")
    printBackground: bool = Field(True, description="Print background colors/images")


class DocumentToPDFRequest(BaseModel):
    """Editor document to PDF request."""
    title: str = Field("제목 없음", description="Document title, printed as the heading")
    html: str = Field("", description="Canonical body HTML")
    filename: Optional[str] = Field(None, description="Download filename")


def _active_renders() -> int:
    return settings.max_concurrent_pdfs - _pdf_semaphore._value


# ============================================================================
# Health Check Endpoint
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint for container orchestration.

    Returns HTTP 503 if Playwright validation failed on startup.
    """
    font_path, _ = find_korean_font(settings.font_dir)
    if not _playwright_ready:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": datetime.utcnow().isoformat(),
                "active_renders": _active_renders(),
                "max_concurrent": settings.max_concurrent_pdfs,
                "playwright_ready": False,
                "playwright_error": _playwright_error,
                "message": "PDF service is unhealthy - Playwright/Chromium not available"
            }
        )

    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        active_renders=_active_renders(),
        max_concurrent=settings.max_concurrent_pdfs,
        playwright_ready=True,
        font_available=font_path is not None,
    )


# ============================================================================
# PDF Generation
# ============================================================================

def _ensure_capacity() -> None:
    if _pdf_semaphore._value <= 0:
        logger.warning("PDF service overloaded, rejecting request")
        raise HTTPException(
            status_code=503,
            detail="Service overloaded. Too many concurrent PDF operations."
        )


async def _render(full_html: str, print_background: bool = True) -> bytes:
    from playwright.async_api import async_playwright

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=settings.playwright_headless)
        page = await browser.new_page()
        page.set_default_timeout(settings.playwright_timeout)

        await page.set_content(full_html, wait_until="networkidle")
        await page.wait_for_load_state("networkidle")
        pdf_bytes = await page.pdf(format="A4", print_background=print_background)

        await browser.close()
    return pdf_bytes


def _pdf_response(pdf_bytes: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{quote(filename)}"'}
    )


@app.post("/render-pdf")
async def render_pdf(request: RenderPDFRequest):
    """
    Generic HTML/CSS to A4 PDF.

    Raises:
        HTTPException: 400 for empty input, 500 for rendering failures, 503 for overload
    """
    if not request.html or not request.html.strip():
        raise HTTPException(status_code=400, detail="HTML content is required")

    _ensure_capacity()

    async with _pdf_semaphore:
        full_html = request.html
        if request.css:
            full_html = f"<!DOCTYPE html><html><head><style>{request.css}</style></head><body>{request.html}</body></html>"
        try:
            logger.info("Starting generic PDF render")
            pdf_bytes = await _render(full_html, request.printBackground)
        except asyncio.TimeoutError:
            logger.error("PDF rendering timed out")
            raise HTTPException(
                status_code=500,
                detail=f"Rendering timed out after {settings.playwright_timeout}ms"
            )
        except Exception as e:
            logger.error(f"PDF rendering failed: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Rendering failed: {str(e)}")

    return _pdf_response(pdf_bytes, "document.pdf")


@app.post("/document-to-pdf")
async def document_to_pdf(request: DocumentToPDFRequest):
    """
    Editor document to A4 PDF with an embedded Korean font.

    Raises:
        HTTPException: 500 for rendering failures, 503 for overload
    """
    _ensure_capacity()

    title = request.title.strip() or "제목 없음"
    font_path, tried = find_korean_font(settings.font_dir)
    if font_path is None:
        logger.warning(f"Rendering without an embedded font (tried: {', '.join(tried)})")

    async with _pdf_semaphore:
        try:
            logger.info(f"Starting document PDF render ({len(request.html)} chars)")
            full_html = build_document_html(title, request.html, font_face_css(font_path))
            pdf_bytes = await _render(full_html)
        except asyncio.TimeoutError:
            logger.error("Document PDF rendering timed out")
            raise HTTPException(
                status_code=500,
                detail=f"Rendering timed out after {settings.playwright_timeout}ms"
            )
        except Exception as e:
            logger.error(f"Document PDF generation failed: {str(e)}")
            raise HTTPException(status_code=500, detail=f"PDF generation failed: {str(e)}")

    filename = request.filename or f"{sanitize_for_path(title)}.pdf"
    logger.info(f"Document PDF generation completed: {filename}")
    return _pdf_response(pdf_bytes, filename)
