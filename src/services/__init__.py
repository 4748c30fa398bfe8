"""
Application services behind the web app: documents and folders, AI rewrites,
company briefs, export and the salary calculator.
"""

from src.services.ai_rewrite_service import AiMode, AiRewriteService, StyleProfile
from src.services.company_brief_service import BriefSection, CompanyBrief, CompanyBriefService
from src.services.document_service import DocumentService
from src.services.export_service import build_pdf_payload, export_json, export_text
from src.services.fetch_guard import FetchGuard, get_fetch_guard
from src.services.salary_calculator import SalaryInput, calculate

__all__ = [
    # Documents
    "DocumentService",
    "export_json",
    "export_text",
    "build_pdf_payload",
    # AI
    "AiMode",
    "AiRewriteService",
    "StyleProfile",
    # Company research
    "BriefSection",
    "CompanyBrief",
    "CompanyBriefService",
    "FetchGuard",
    "get_fetch_guard",
    # Tools
    "SalaryInput",
    "calculate",
]
