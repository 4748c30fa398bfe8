"""
Document Service

Folder and document CRUD for one user at a time. Every operation checks that
the caller owns the folder or document it touches and raises the Korean
user-facing errors the UI shows verbatim.

Collections used:
    - folders: {_id, owner_id, name, type, parent_id, created_at}
    - documents: {_id, owner_id, folder_id, title, content, template_key,
      company, role, status, created_at, updated_at}
    - profiles: {_id (= owner), owner_id, profile, projects, updated_at}

Usage:
    service = DocumentService()
    service.ensure_root_folders(user_id)
    doc = service.create_document(user_id, folder_id, template_key="resume_classic")
"""

import logging
import math
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from src.common.error_handling import (
    AuthRequiredError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from src.common.repositories import (
    DOCUMENTS,
    FOLDERS,
    PROFILES,
    CollectionRepositoryInterface,
    get_repository,
)
from src.editor.autosave import UNTITLED
from src.editor.catalog import apply_template
from src.editor.envelope import block_html, wrap_html
from src.editor.markup import escape_plain
from src.editor.surface import EditorSurface
from src.services.ai_rewrite_service import AiRewriteService, to_list

logger = logging.getLogger(__name__)

DEFAULT_FOLDER_NAME = "새 폴더"
DEFAULT_DOCUMENT_TITLE = "새 문서"
DEFAULT_PROJECT_NAME = "프로젝트"
METADATA_FIELDS = ("company", "role")


class FolderType(str, Enum):
    ROOT_COVERLETTER = "ROOT_COVERLETTER"
    ROOT_RESUME = "ROOT_RESUME"
    ROOT_PORTFOLIO = "ROOT_PORTFOLIO"
    CUSTOM = "CUSTOM"


ROOT_FOLDERS = (
    ("자기소개서", FolderType.ROOT_COVERLETTER),
    ("이력서", FolderType.ROOT_RESUME),
    ("포트폴리오", FolderType.ROOT_PORTFOLIO),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def next_available_name(base: str, taken: set) -> str:
    """``base``, or ``base (2)``, ``base (3)``... whichever is free first."""
    if base not in taken:
        return base
    counter = 2
    while f"{base} ({counter})" in taken:
        counter += 1
    return f"{base} ({counter})"


def _public(record: Dict[str, Any]) -> Dict[str, Any]:
    """Repository record to API shape: ``_id`` becomes ``id``, datetimes ISO."""
    out = {}
    for key, value in record.items():
        if key == "_id":
            out["id"] = value
        elif isinstance(value, datetime):
            out[key] = value.isoformat()
        else:
            out[key] = value
    return out


class DraftKind(str, Enum):
    RESUME = "resume"
    COVER_LETTER = "cover_letter"


# kind -> (root folder, draft title)
DRAFT_TARGETS = {
    DraftKind.RESUME: ("이력서", "이력서_초안"),
    DraftKind.COVER_LETTER: ("자기소개서", "자기소개서_초안"),
}
CAREER_FOLDER_NAME = "경력기술서"

PROFILE_TEXT_FIELDS = (
    "name", "email", "phone", "school", "major", "current_company", "current_role",
)
PROFILE_NUMBER_FIELDS = ("graduation_year", "gpa", "gpa_max", "total_years")
PROJECT_TEXT_FIELDS = ("role", "problem", "action", "result")
PERIOD_PATTERN = re.compile(r"^(\d{4})[./-](\d{1,2})$")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def _to_number(value: Any) -> Optional[Union[int, float]]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def parse_month(text: Optional[str]) -> Optional[str]:
    """``2023.1``, ``2023-01`` or ``2023/01`` to ``2023.01``; anything else is None."""
    match = PERIOD_PATTERN.match((text or "").strip())
    if not match:
        return None
    month = int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return f"{match.group(1)}.{month:02d}"


def parse_period(period: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """``"2023.01 ~ 2023.06"`` to ``("2023.01", "2023.06")``."""
    if not period:
        return None, None
    start, _, end = period.partition("~")
    return parse_month(start), parse_month(end)


def normalize_profile(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Onboarding form values to the stored profile shape."""
    data = data or {}
    profile: Dict[str, Any] = {key: _clean(data.get(key)) for key in PROFILE_TEXT_FIELDS}
    profile.update({key: _to_number(data.get(key)) for key in PROFILE_NUMBER_FIELDS})
    profile["interests"] = to_list(data.get("interests"))
    profile["skills"] = to_list(data.get("skills"))
    profile["is_experienced"] = bool(data.get("is_experienced"))
    return profile


def normalize_projects(items: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Projects with parsed periods, newest start first (undated last)."""
    projects = []
    for item in items or []:
        start, end = parse_period(item.get("period"))
        project = {"name": _clean(item.get("name")) or DEFAULT_PROJECT_NAME}
        project.update({key: _clean(item.get(key)) for key in PROJECT_TEXT_FIELDS})
        project["start"] = start or parse_month(item.get("start"))
        project["end"] = end or parse_month(item.get("end"))
        project["tech_stack"] = to_list(item.get("tech_stack"))
        projects.append(project)
    return sorted(projects, key=lambda p: p["start"] or "", reverse=True)


class DocumentService:
    """Ownership-checked folder and document operations."""

    def __init__(
        self,
        folders: Optional[CollectionRepositoryInterface] = None,
        documents: Optional[CollectionRepositoryInterface] = None,
        profiles: Optional[CollectionRepositoryInterface] = None,
        drafter: Optional[AiRewriteService] = None,
    ):
        self.folders = folders or get_repository(FOLDERS)
        self.documents = documents or get_repository(DOCUMENTS)
        self.profiles = profiles or get_repository(PROFILES)
        self.drafter = drafter or AiRewriteService()

    # ========================================================================
    # Ownership checks
    # ========================================================================

    @staticmethod
    def _require_user(user_id: Optional[str]) -> str:
        if not user_id:
            raise AuthRequiredError()
        return user_id

    def _owned_folder(self, user_id: str, folder_id: str) -> Dict[str, Any]:
        folder = self.folders.find_one({"_id": folder_id})
        if folder is None:
            raise NotFoundError("폴더가 존재하지 않습니다.")
        if folder.get("owner_id") != user_id:
            raise OwnershipError("폴더에 대한 권한이 없습니다.")
        return folder

    def _owned_document(self, user_id: str, doc_id: str) -> Dict[str, Any]:
        doc = self.documents.find_one({"_id": doc_id})
        if doc is None:
            raise NotFoundError()
        if doc.get("owner_id") != user_id:
            raise OwnershipError()
        return doc

    # ========================================================================
    # Folders
    # ========================================================================

    def ensure_root_folders(self, user_id: str) -> List[Dict[str, Any]]:
        """Create any missing root folders. Idempotent."""
        user_id = self._require_user(user_id)
        existing = {
            f["name"] for f in self.folders.find({"owner_id": user_id, "parent_id": None})
        }
        created = []
        for name, folder_type in ROOT_FOLDERS:
            if name in existing:
                continue
            record = {
                "_id": _new_id(),
                "owner_id": user_id,
                "name": name,
                "type": folder_type.value,
                "parent_id": None,
                "created_at": _now(),
            }
            self.folders.insert_one(record)
            created.append(_public(record))
        if created:
            logger.info(f"Created {len(created)} root folder(s) for user {user_id}")
        return created

    def create_folder(
        self,
        user_id: str,
        name: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a folder, suffixing the name if a sibling already has it."""
        user_id = self._require_user(user_id)
        if parent_id:
            self._owned_folder(user_id, parent_id)

        base = (name or "").strip() or DEFAULT_FOLDER_NAME
        siblings = self.folders.find({"owner_id": user_id, "parent_id": parent_id or None})
        safe_name = next_available_name(base, {s["name"] for s in siblings})

        record = {
            "_id": _new_id(),
            "owner_id": user_id,
            "name": safe_name,
            "type": FolderType.CUSTOM.value,
            "parent_id": parent_id or None,
            "created_at": _now(),
        }
        self.folders.insert_one(record)
        logger.info(f"Created folder '{safe_name}' for user {user_id}")
        return _public(record)

    def rename_folder(self, user_id: str, folder_id: str, name: str) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        self._owned_folder(user_id, folder_id)
        safe_name = (name or "").strip() or DEFAULT_FOLDER_NAME
        self.folders.update_one({"_id": folder_id}, {"$set": {"name": safe_name}})
        return {"id": folder_id, "name": safe_name}

    def delete_folder(self, user_id: str, folder_id: str) -> Dict[str, int]:
        """Delete a folder with every subfolder and document beneath it."""
        user_id = self._require_user(user_id)
        self._owned_folder(user_id, folder_id)

        doomed = [folder_id]
        frontier = [folder_id]
        while frontier:
            children = self.folders.find({"owner_id": user_id, "parent_id": {"$in": frontier}})
            frontier = [c["_id"] for c in children]
            doomed.extend(frontier)

        docs = self.documents.delete_many({"owner_id": user_id, "folder_id": {"$in": doomed}})
        folders = self.folders.delete_many({"owner_id": user_id, "_id": {"$in": doomed}})
        logger.info(
            f"Deleted folder {folder_id}: {folders.deleted_count} folder(s), "
            f"{docs.deleted_count} document(s)"
        )
        return {"folders": folders.deleted_count, "documents": docs.deleted_count}

    def list_tree(self, user_id: str) -> List[Dict[str, Any]]:
        """Nested folder tree with document summaries (no content)."""
        user_id = self._require_user(user_id)
        folders = [_public(f) for f in self.folders.find({"owner_id": user_id}, sort=[("created_at", 1)])]
        docs = self.documents.find({"owner_id": user_id}, sort=[("updated_at", -1)])

        by_id = {}
        for folder in folders:
            folder["children"] = []
            folder["documents"] = []
            by_id[folder["id"]] = folder

        for doc in docs:
            folder = by_id.get(doc.get("folder_id"))
            if folder is not None:
                folder["documents"].append({
                    "id": doc["_id"],
                    "title": doc.get("title") or UNTITLED,
                    "company": doc.get("company"),
                    "role": doc.get("role"),
                    "updated_at": _public(doc).get("updated_at"),
                })

        roots = []
        for folder in folders:
            parent = by_id.get(folder.get("parent_id"))
            if parent is not None:
                parent["children"].append(folder)
            else:
                roots.append(folder)
        return roots

    # ========================================================================
    # Documents
    # ========================================================================

    def create_document(
        self,
        user_id: str,
        folder_id: str,
        title: Optional[str] = None,
        template_key: Optional[str] = None,
        company: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a document, optionally pre-filled from a template.

        The template is replayed through an editor surface, so the stored
        body is exactly what the editor would produce.
        """
        user_id = self._require_user(user_id)
        self._owned_folder(user_id, folder_id)

        html = ""
        if template_key:
            surface = EditorSurface(context={"company": company, "role": role})
            apply_template(surface, template_key)
            html = surface.html()

        now = _now()
        record = {
            "_id": _new_id(),
            "owner_id": user_id,
            "folder_id": folder_id,
            "title": (title or "").strip() or DEFAULT_DOCUMENT_TITLE,
            "content": wrap_html(html),
            "template_key": template_key,
            "company": (company or "").strip() or None,
            "role": (role or "").strip() or None,
            "status": None,
            "created_at": now,
            "updated_at": now,
        }
        self.documents.insert_one(record)
        logger.info(f"Created document {record['_id']} in folder {folder_id}")
        return _public(record)

    def get_document(self, user_id: str, doc_id: str) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        return _public(self._owned_document(user_id, doc_id))

    def get_document_html(self, user_id: str, doc_id: str) -> str:
        return block_html(self.get_document(user_id, doc_id).get("content"))

    def update_title(self, user_id: str, doc_id: str, title: str) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        self._owned_document(user_id, doc_id)
        safe_title = (title or "").strip() or UNTITLED
        now = _now()
        self.documents.update_one({"_id": doc_id}, {"$set": {"title": safe_title, "updated_at": now}})
        return {"id": doc_id, "title": safe_title, "updated_at": now.isoformat()}

    def update_content(self, user_id: str, doc_id: str, content: Any) -> Dict[str, Any]:
        """
        Replace the body. Accepts the envelope dict or a bare HTML string;
        the stored shape is always the single doc-block envelope.
        """
        user_id = self._require_user(user_id)
        self._owned_document(user_id, doc_id)
        if isinstance(content, str):
            envelope = wrap_html(content)
        elif isinstance(content, dict):
            envelope = wrap_html(block_html(content))
        else:
            raise ValidationError("문서 내용 형식이 올바르지 않습니다.")
        now = _now()
        self.documents.update_one({"_id": doc_id}, {"$set": {"content": envelope, "updated_at": now}})
        return {"id": doc_id, "updated_at": now.isoformat()}

    def update_metadata(self, user_id: str, doc_id: str, **fields: Optional[str]) -> Dict[str, Any]:
        """
        Update company/role tags. Only keys actually passed are written; an
        explicit None (or blank) clears the tag.
        """
        user_id = self._require_user(user_id)
        doc = self._owned_document(user_id, doc_id)

        unknown = set(fields) - set(METADATA_FIELDS)
        if unknown:
            raise ValidationError(f"알 수 없는 항목입니다: {', '.join(sorted(unknown))}")

        updates = {name: ((value or "").strip() or None) for name, value in fields.items()}
        if not updates:
            return {"id": doc_id, "company": doc.get("company"), "role": doc.get("role")}

        updates["updated_at"] = _now()
        self.documents.update_one({"_id": doc_id}, {"$set": updates})
        merged = {**doc, **updates}
        return {
            "id": doc_id,
            "company": merged.get("company"),
            "role": merged.get("role"),
            "updated_at": updates["updated_at"].isoformat(),
        }

    def move_document(self, user_id: str, doc_id: str, folder_id: str) -> Dict[str, Any]:
        user_id = self._require_user(user_id)
        self._owned_document(user_id, doc_id)
        self._owned_folder(user_id, folder_id)
        self.documents.update_one(
            {"_id": doc_id}, {"$set": {"folder_id": folder_id, "updated_at": _now()}}
        )
        return {"id": doc_id, "folder_id": folder_id}

    def delete_document(self, user_id: str, doc_id: str) -> None:
        user_id = self._require_user(user_id)
        self._owned_document(user_id, doc_id)
        self.documents.delete_one({"_id": doc_id})
        logger.info(f"Deleted document {doc_id}")

    # ========================================================================
    # Profile and generated drafts
    # ========================================================================

    def save_profile(
        self,
        user_id: str,
        profile: Optional[Dict[str, Any]],
        projects: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Store the onboarding profile, replacing its projects wholesale."""
        user_id = self._require_user(user_id)
        stored = {"profile": normalize_profile(profile), "projects": normalize_projects(projects)}
        self.profiles.update_one(
            {"_id": user_id},
            {"$set": {"owner_id": user_id, **stored, "updated_at": _now()}},
            upsert=True,
        )
        logger.info(f"Saved profile for user {user_id} ({len(stored['projects'])} project(s))")
        return stored

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        user_id = self._require_user(user_id)
        record = self.profiles.find_one({"_id": user_id})
        if record is None:
            return None
        return {"profile": record.get("profile") or {}, "projects": record.get("projects") or []}

    def initialize_user_documents(self, user_id: str) -> List[Dict[str, Any]]:
        """
        First-run setup from the stored profile: root folders, the career
        folder, and a resume and cover letter draft. Drafts that already
        exist are left untouched. Without a profile nothing happens.
        """
        user_id = self._require_user(user_id)
        stored = self.get_profile(user_id)
        if stored is None:
            return []

        self.ensure_root_folders(user_id)
        if self._root_folder(user_id, CAREER_FOLDER_NAME) is None:
            self.create_folder(user_id, CAREER_FOLDER_NAME)

        written = []
        for kind in DraftKind:
            folder_name, title = DRAFT_TARGETS[kind]
            folder = self._root_folder(user_id, folder_name)
            if self.documents.find_one({"owner_id": user_id, "folder_id": folder["_id"], "title": title}):
                continue
            written.append(self._write_draft(user_id, folder, kind, stored))
        return written

    def regenerate_document(
        self,
        user_id: str,
        kind: str,
        profile: Optional[Dict[str, Any]] = None,
        projects: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Rewrite the resume or cover letter draft in its root folder.

        Uses ``profile``/``projects`` when given, otherwise the stored
        profile. The model draft falls back to a local template.

        Raises:
            ValidationError: Unknown kind, or no profile to draft from
            NotFoundError: The root folder is missing
        """
        user_id = self._require_user(user_id)
        try:
            draft_kind = DraftKind(kind)
        except ValueError:
            raise ValidationError("초안 종류를 선택해주세요.") from None

        if profile is not None:
            stored = {"profile": normalize_profile(profile), "projects": normalize_projects(projects)}
        else:
            stored = self.get_profile(user_id)
            if stored is None:
                raise ValidationError("기초세팅 정보가 없습니다.")

        folder_name, _ = DRAFT_TARGETS[draft_kind]
        folder = self._root_folder(user_id, folder_name)
        if folder is None:
            raise NotFoundError(f"{folder_name} 루트 폴더가 없습니다.")
        return self._write_draft(user_id, folder, draft_kind, stored)

    def _root_folder(self, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        return self.folders.find_one({"owner_id": user_id, "parent_id": None, "name": name})

    def _write_draft(
        self,
        user_id: str,
        folder: Dict[str, Any],
        kind: DraftKind,
        stored: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Create or overwrite the draft document for ``kind`` in ``folder``."""
        profile, projects = stored["profile"], stored["projects"]
        if kind == DraftKind.RESUME:
            text = self.drafter.draft_resume(profile, projects, fallback=True)
        else:
            text = self.drafter.draft_cover_letter(profile, fallback=True)
        content = wrap_html(f"<pre>{escape_plain(text)}</pre>")

        _, title = DRAFT_TARGETS[kind]
        now = _now()
        existing = self.documents.find_one({"owner_id": user_id, "folder_id": folder["_id"], "title": title})
        if existing is not None:
            doc_id = existing["_id"]
            self.documents.update_one({"_id": doc_id}, {"$set": {"content": content, "updated_at": now}})
        else:
            doc_id = _new_id()
            self.documents.insert_one({
                "_id": doc_id,
                "owner_id": user_id,
                "folder_id": folder["_id"],
                "title": title,
                "content": content,
                "template_key": None,
                "company": None,
                "role": None,
                "status": None,
                "created_at": now,
                "updated_at": now,
            })
        logger.info(f"Wrote {kind.value} draft {doc_id} for user {user_id}")
        return {
            "id": doc_id,
            "folder_id": folder["_id"],
            "title": title,
            "created": existing is None,
        }
