"""
Flask application for the document builder.

Serves the editor shell and a JSON API over the folder/document services:
- Folder tree and document CRUD (ownership-checked per user)
- Template and preset insertion, A4 preview
- AI rewrite / draft generation with optional company context
- Company briefs, salary calculator
- JSON / text / PDF download (PDF rendered by the pdf_service)

Stack: Flask + requests (PDF proxy); services from the ``src`` package.
"""

import asyncio
import logging
import os
import threading
from functools import wraps
from io import BytesIO
from typing import Any, Coroutine, Optional

import requests
from dotenv import load_dotenv
from flask import Flask, Response, jsonify, redirect, render_template, request, send_file, session, url_for

# Load environment variables
load_dotenv()

# Import version and the src package (from parent directory)
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
try:
    from version import __version__
    APP_VERSION = __version__
except ImportError:
    APP_VERSION = "dev"

from src.common.config import Config
from src.common.error_handling import AuthRequiredError, UserFacingError, ValidationError
from src.common.repositories import PRESETS, get_repository, reset_repositories
from src.editor.catalog import PresetStore, RepositoryPresetStorage, apply_template, grouped_templates
from src.editor.envelope import block_html
from src.editor.pagination import clamp_zoom, fit_scale, paginate, render_pages
from src.editor.surface import EditorSurface
from src.services.ai_rewrite_service import AiRewriteService, StyleProfile
from src.services.company_brief_service import CompanyBriefService
from src.services.document_service import DocumentService
from src.services.export_service import (
    build_pdf_payload,
    content_disposition,
    export_json,
    export_text,
)
from src.services.salary_calculator import SalaryInput, calculate

app = Flask(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Session configuration
flask_secret_key = os.getenv("FLASK_SECRET_KEY")
if not flask_secret_key:
    logger.warning("FLASK_SECRET_KEY not set. Generating random key (sessions will not persist between restarts)")
    flask_secret_key = os.urandom(24).hex()
app.secret_key = flask_secret_key

app.config["SESSION_COOKIE_HTTPONLY"] = True
is_production = os.getenv("FLASK_ENV") == "production"
app.config["SESSION_COOKIE_SECURE"] = is_production
app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
app.config["PERMANENT_SESSION_LIFETIME"] = 60 * 60 * 24 * 31  # 31 days


@app.context_processor
def inject_version():
    """Inject version info into all templates."""
    return {"version": APP_VERSION}


# Authentication configuration. Single-account deployment: the shared password
# always signs in as DEFAULT_USER_ID.
LOGIN_PASSWORD = os.getenv("LOGIN_PASSWORD", "change-me-in-production")
DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "owner")

PDF_TIMEOUT_SECONDS = 60
ASYNC_TIMEOUT_SECONDS = 90


# ============================================================================
# Services
# ============================================================================

_services: dict = {}
_loop: Optional[asyncio.AbstractEventLoop] = None
_loop_lock = threading.Lock()


def get_document_service() -> DocumentService:
    if "documents" not in _services:
        _services["documents"] = DocumentService(drafter=get_ai_service())
    return _services["documents"]


def get_ai_service() -> AiRewriteService:
    if "ai" not in _services:
        _services["ai"] = AiRewriteService()
    return _services["ai"]


def get_brief_service() -> CompanyBriefService:
    if "briefs" not in _services:
        _services["briefs"] = CompanyBriefService()
    return _services["briefs"]


def get_preset_store(user_id: str) -> PresetStore:
    return PresetStore(RepositoryPresetStorage(user_id, get_repository(PRESETS)))


def reset_services() -> None:
    """Drop cached services and repositories (tests)."""
    _services.clear()
    reset_repositories()


def run_async(coro: Coroutine, timeout: float = ASYNC_TIMEOUT_SECONDS) -> Any:
    """
    Run a coroutine on the shared background loop and wait for it.

    One loop for the whole process keeps in-flight fetches shareable
    between concurrent requests.
    """
    global _loop
    with _loop_lock:
        if _loop is None:
            _loop = asyncio.new_event_loop()
            threading.Thread(target=_loop.run_forever, name="async-bridge", daemon=True).start()
    return asyncio.run_coroutine_threadsafe(coro, _loop).result(timeout)


# ============================================================================
# Authentication
# ============================================================================

def login_required(f):
    """
    Decorator to require authentication for routes.

    For API routes (/api/*): Returns JSON 401 if not authenticated
    For page routes: Redirects to login page if not authenticated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get("authenticated"):
            if request.path.startswith('/api/'):
                return jsonify(AuthRequiredError().to_dict()), 401
            return redirect(url_for("login_page"))
        return f(*args, **kwargs)
    return decorated_function


def current_user() -> str:
    return session.get("user_id") or DEFAULT_USER_ID


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("요청 형식이 올바르지 않습니다.")
    return data


@app.errorhandler(UserFacingError)
def handle_user_facing_error(error: UserFacingError):
    logger.info(f"{request.method} {request.path} -> {error.status}: {error.message}")
    return jsonify(error.to_dict()), error.status


@app.route("/login", methods=["GET", "POST"])
def login_page():
    """Handle login page and authentication."""
    if request.method == "GET":
        return render_template("login.html", error=None)

    password = request.form.get("password", "")
    if password == LOGIN_PASSWORD:
        session["authenticated"] = True
        session["user_id"] = DEFAULT_USER_ID
        session.permanent = True
        get_document_service().ensure_root_folders(session["user_id"])
        return redirect(url_for("index"))
    return render_template("login.html", error="비밀번호가 올바르지 않습니다."), 401


@app.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return redirect(url_for("login_page"))


@app.route("/health", methods=["GET"])
def public_health_check():
    """Public health endpoint; no authentication required."""
    try:
        response = requests.get(f"{Config.PDF_SERVICE_URL}/health", timeout=3)
        pdf_status = "healthy" if response.status_code == 200 else "unhealthy"
    except requests.RequestException:
        pdf_status = "unreachable"

    return jsonify({
        "status": "healthy" if pdf_status == "healthy" else "degraded",
        "version": APP_VERSION,
        "services": {
            "storage": Config.STORAGE_BACKEND,
            "pdf_service": pdf_status,
        },
    })


@app.route("/")
@login_required
def index():
    """Render the editor shell."""
    return render_template("index.html", user_id=current_user())


# ============================================================================
# Folders
# ============================================================================

@app.route("/api/folders", methods=["GET"])
@login_required
def list_folders():
    service = get_document_service()
    service.ensure_root_folders(current_user())
    return jsonify({"success": True, "folders": service.list_tree(current_user())})


@app.route("/api/folders", methods=["POST"])
@login_required
def create_folder():
    data = json_body()
    folder = get_document_service().create_folder(
        current_user(), name=data.get("name"), parent_id=data.get("parent_id")
    )
    return jsonify({"success": True, "folder": folder}), 201


@app.route("/api/folders/<folder_id>", methods=["PUT"])
@login_required
def rename_folder(folder_id: str):
    data = json_body()
    folder = get_document_service().rename_folder(current_user(), folder_id, data.get("name", ""))
    return jsonify({"success": True, "folder": folder})


@app.route("/api/folders/<folder_id>", methods=["DELETE"])
@login_required
def delete_folder(folder_id: str):
    deleted = get_document_service().delete_folder(current_user(), folder_id)
    return jsonify({"success": True, "deleted": deleted})


# ============================================================================
# Documents
# ============================================================================

@app.route("/api/documents", methods=["POST"])
@login_required
def create_document():
    data = json_body()
    if not data.get("folder_id"):
        raise ValidationError("폴더를 선택해주세요.")
    doc = get_document_service().create_document(
        current_user(),
        data["folder_id"],
        title=data.get("title"),
        template_key=data.get("template_key"),
        company=data.get("company"),
        role=data.get("role"),
    )
    return jsonify({"success": True, "document": doc}), 201


@app.route("/api/documents/<doc_id>", methods=["GET"])
@login_required
def get_document(doc_id: str):
    doc = get_document_service().get_document(current_user(), doc_id)
    return jsonify({"success": True, "document": doc})


@app.route("/api/documents/<doc_id>/title", methods=["PUT"])
@login_required
def update_document_title(doc_id: str):
    result = get_document_service().update_title(current_user(), doc_id, json_body().get("title", ""))
    return jsonify({"success": True, **result})


@app.route("/api/documents/<doc_id>/content", methods=["PUT"])
@login_required
def update_document_content(doc_id: str):
    data = json_body()
    if "content" not in data:
        raise ValidationError("문서 내용이 없습니다.")
    result = get_document_service().update_content(current_user(), doc_id, data["content"])
    return jsonify({"success": True, **result})


@app.route("/api/documents/<doc_id>/meta", methods=["PUT"])
@login_required
def update_document_meta(doc_id: str):
    result = get_document_service().update_metadata(current_user(), doc_id, **json_body())
    return jsonify({"success": True, **result})


@app.route("/api/documents/<doc_id>/move", methods=["PUT"])
@login_required
def move_document(doc_id: str):
    folder_id = json_body().get("folder_id")
    if not folder_id:
        raise ValidationError("폴더를 선택해주세요.")
    result = get_document_service().move_document(current_user(), doc_id, folder_id)
    return jsonify({"success": True, **result})


@app.route("/api/documents/<doc_id>", methods=["DELETE"])
@login_required
def delete_document(doc_id: str):
    get_document_service().delete_document(current_user(), doc_id)
    return jsonify({"success": True})


@app.route("/api/documents/<doc_id>/insert", methods=["POST"])
@login_required
def insert_into_document(doc_id: str):
    """
    Append a template or preset to the end of a stored document.

    Body: {"template_key": "..."} or {"preset_id": "..."}
    """
    data = json_body()
    service = get_document_service()
    doc = service.get_document(current_user(), doc_id)

    surface = EditorSurface(
        block_html(doc.get("content")),
        context={"company": doc.get("company"), "role": doc.get("role")},
        doc_id=doc_id,
    )
    surface.place_caret_at_end()
    if data.get("template_key"):
        apply_template(surface, data["template_key"])
    elif data.get("preset_id"):
        get_preset_store(current_user()).insert(surface, data["preset_id"])
    else:
        raise ValidationError("삽입할 템플릿이나 프리셋을 선택해주세요.")

    html = surface.html()
    result = service.update_content(current_user(), doc_id, html)
    return jsonify({"success": True, "html": html, **result})


@app.route("/api/documents/<doc_id>/download", methods=["GET"])
@login_required
def download_document(doc_id: str):
    """Download as ?type=json, txt or pdf (default)."""
    doc = get_document_service().get_document(current_user(), doc_id)
    export_type = (request.args.get("type") or "pdf").lower()

    if export_type == "json":
        body, filename = export_json(doc)
        return Response(body, headers={
            "Content-Type": "application/json; charset=utf-8",
            "Content-Disposition": content_disposition(filename),
            "Cache-Control": "no-store",
        })
    if export_type == "txt":
        body, filename = export_text(doc)
        return Response(body, headers={
            "Content-Type": "text/plain; charset=utf-8",
            "Content-Disposition": content_disposition(filename),
            "Cache-Control": "no-store",
        })
    if export_type != "pdf":
        raise ValidationError(f"지원하지 않는 형식입니다: {export_type}")

    payload = build_pdf_payload(doc)
    endpoint = f"{Config.PDF_SERVICE_URL}/document-to-pdf"
    try:
        logger.info(f"Requesting PDF for document {doc_id} from {endpoint}")
        response = requests.post(endpoint, json=payload, timeout=PDF_TIMEOUT_SECONDS)
    except requests.Timeout:
        logger.error(f"PDF generation timed out for document {doc_id}")
        return jsonify({"success": False, "error": "PDF 생성 시간이 초과되었습니다. 다시 시도해주세요."}), 504
    except requests.ConnectionError as e:
        logger.error(f"Failed to connect to PDF service at {Config.PDF_SERVICE_URL}: {e}")
        return jsonify({"success": False, "error": "PDF 서비스에 연결할 수 없습니다."}), 503

    if response.status_code != 200:
        try:
            detail = response.json().get("detail", "")
        except ValueError:
            detail = response.text[:200]
        logger.error(f"PDF generation failed for document {doc_id}: {response.status_code} {detail}")
        return jsonify({"success": False, "error": "PDF 생성에 실패했습니다.", "detail": detail}), response.status_code

    return send_file(
        BytesIO(response.content),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=payload["filename"],
    )


# ============================================================================
# Preview, templates, presets
# ============================================================================

@app.route("/api/preview", methods=["POST"])
@login_required
def preview():
    """
    Paginate a body for the A4 preview.

    Body: {"html": "..."} or {"doc_id": "..."}, optional "zoom" and
    "container_width" (zoom defaults to the fit scale).
    """
    data = json_body()
    if data.get("doc_id"):
        html = get_document_service().get_document_html(current_user(), data["doc_id"])
    else:
        html = data.get("html") or ""

    try:
        zoom = clamp_zoom(float(data["zoom"])) if data.get("zoom") else fit_scale(data.get("container_width"))
    except (TypeError, ValueError):
        raise ValidationError("배율 값이 올바르지 않습니다.") from None

    pages = paginate(html)
    return jsonify({
        "success": True,
        "page_count": len(pages),
        "zoom": zoom,
        "pages": [
            {"number": p.number, "blocks": p.indexes, "content_height": p.content_height}
            for p in pages
        ],
        "html": render_pages(pages, zoom),
    })


@app.route("/api/templates", methods=["GET"])
@login_required
def list_templates():
    return jsonify({"success": True, "groups": grouped_templates(request.args.get("q", ""))})


@app.route("/api/presets", methods=["GET"])
@login_required
def list_presets():
    presets = get_preset_store(current_user()).list()
    return jsonify({"success": True, "presets": [p.to_dict() for p in presets]})


@app.route("/api/presets", methods=["POST"])
@login_required
def create_preset():
    data = json_body()
    preset = get_preset_store(current_user()).capture(data.get("name", ""), data.get("html", ""))
    return jsonify({"success": True, "preset": preset.to_dict()}), 201


@app.route("/api/presets/<preset_id>", methods=["DELETE"])
@login_required
def delete_preset(preset_id: str):
    get_preset_store(current_user()).remove(preset_id)
    return jsonify({"success": True})


# ============================================================================
# AI and company research
# ============================================================================

def _company_context(company: Optional[str], role: Optional[str]) -> Optional[str]:
    if not company or not company.strip():
        return None
    brief = get_brief_service().fetch_brief(company, role)
    return None if brief.is_empty() else brief.as_context()


@app.route("/api/ai/rewrite", methods=["POST"])
@login_required
def ai_rewrite():
    """
    Body: {"mode", "text", "tone"?, "profile"?, "company"?, "role"?}
    """
    data = json_body()
    result = get_ai_service().rewrite(
        data.get("mode", ""),
        data.get("text", ""),
        tone=data.get("tone"),
        profile=StyleProfile.from_dict(data.get("profile")) if data.get("profile") else None,
        company_context=_company_context(data.get("company"), data.get("role")),
    )
    return jsonify({"success": True, "result": result})


@app.route("/api/ai/draft", methods=["POST"])
@login_required
def ai_draft():
    """Body: {"kind": "resume" | "cover_letter", "profile", "projects"?, "company"?, "role"?}"""
    data = json_body()
    profile = data.get("profile") or {}
    kind = data.get("kind")
    service = get_ai_service()
    if kind == "resume":
        result = service.draft_resume(profile, data.get("projects"), fallback=True)
    elif kind == "cover_letter":
        result = service.draft_cover_letter(profile, data.get("company"), data.get("role"), fallback=True)
    else:
        raise ValidationError("초안 종류를 선택해주세요.")
    return jsonify({"success": True, "result": result})


# ============================================================================
# Onboarding
# ============================================================================

@app.route("/api/onboarding", methods=["GET"])
@login_required
def get_onboarding():
    stored = get_document_service().get_profile(current_user())
    return jsonify({"success": True, "profile": stored})


@app.route("/api/onboarding", methods=["POST"])
@login_required
def save_onboarding():
    """
    Save the profile and seed the first drafts.

    Body: {"profile": {...}, "projects"?: [{"name", "role", "period": "2023.01 ~ 2023.06", ...}]}
    """
    data = json_body()
    service = get_document_service()
    stored = service.save_profile(current_user(), data.get("profile"), data.get("projects"))
    drafts = service.initialize_user_documents(current_user())
    return jsonify({"success": True, "profile": stored, "drafts": drafts})


@app.route("/api/documents/regenerate", methods=["POST"])
@login_required
def regenerate_document():
    """Body: {"kind": "resume" | "cover_letter", "profile"?, "projects"?}"""
    data = json_body()
    result = get_document_service().regenerate_document(
        current_user(), data.get("kind", ""), data.get("profile"), data.get("projects")
    )
    return jsonify({"success": True, **result})


@app.route("/api/company-brief", methods=["GET"])
@login_required
def get_company_brief():
    brief = get_brief_service().fetch_brief(request.args.get("company", ""), request.args.get("role"))
    return jsonify({"success": True, "brief": brief.to_dict()})


@app.route("/api/company-brief/recent", methods=["GET"])
@login_required
def recent_company_briefs():
    limit = request.args.get("limit", 8, type=int)
    briefs = get_brief_service().list_recent(limit)
    return jsonify({"success": True, "briefs": [b.to_dict() for b in briefs]})


@app.route("/api/company-brief/refresh", methods=["POST"])
@login_required
def refresh_company_brief():
    """
    Body: {"company", "role"?, "section"?, "strict"?, "speed"?,
           "include_community"?, "manual_urls"?}
    """
    data = json_body()
    brief = run_async(get_brief_service().refresh_brief(
        data.get("company", ""),
        role=data.get("role"),
        section=data.get("section"),
        strict=bool(data.get("strict", True)),
        speed=data.get("speed") or "fast",
        include_community=bool(data.get("include_community", False)),
        manual_urls=data.get("manual_urls") or [],
    ))
    return jsonify({"success": True, "brief": brief.to_dict()})


# ============================================================================
# Tools
# ============================================================================

@app.route("/api/salary", methods=["POST"])
@login_required
def salary():
    breakdown = calculate(SalaryInput.from_dict(json_body()))
    return jsonify({"success": True, "breakdown": breakdown.to_dict()})


if __name__ == "__main__":
    Config.validate()
    logger.info(Config.summary())
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=os.getenv("FLASK_DEBUG") == "1")
