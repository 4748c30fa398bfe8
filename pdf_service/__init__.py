"""
PDF Service - Dedicated service for document PDF generation.

Converts editor documents to A4 PDFs using Playwright/Chromium, separate
from the web app so Chromium never runs inside the Flask process.
"""

__version__ = "0.2.0"
