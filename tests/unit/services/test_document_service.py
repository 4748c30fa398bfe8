"""
Unit tests for src/services/document_service.py

Runs against the in-memory repositories configured by tests/unit/conftest.py.
"""

import pytest
from unittest.mock import MagicMock

from src.common.error_handling import (
    AuthRequiredError,
    NotFoundError,
    OwnershipError,
    ValidationError,
)
from src.editor.envelope import block_html
from src.services.document_service import (
    DocumentService,
    FolderType,
    next_available_name,
    normalize_profile,
    normalize_projects,
    parse_month,
    parse_period,
)


@pytest.fixture
def service():
    return DocumentService()


@pytest.fixture
def root_folder(service):
    service.ensure_root_folders("alice")
    tree = service.list_tree("alice")
    return next(f for f in tree if f["type"] == FolderType.ROOT_RESUME.value)


class TestNextAvailableName:

    def test_free_name_is_kept(self):
        assert next_available_name("새 폴더", set()) == "새 폴더"

    def test_suffix_increments(self):
        taken = {"새 폴더", "새 폴더 (2)"}
        assert next_available_name("새 폴더", taken) == "새 폴더 (3)"


class TestFolders:

    def test_root_folders_are_idempotent(self, service):
        created = service.ensure_root_folders("alice")
        again = service.ensure_root_folders("alice")

        assert [f["name"] for f in created] == ["자기소개서", "이력서", "포트폴리오"]
        assert again == []
        assert len(service.list_tree("alice")) == 3

    def test_missing_user_requires_auth(self, service):
        with pytest.raises(AuthRequiredError):
            service.ensure_root_folders(None)

    def test_sibling_names_are_suffixed(self, service, root_folder):
        first = service.create_folder("alice", "기업별", parent_id=root_folder["id"])
        second = service.create_folder("alice", "기업별", parent_id=root_folder["id"])
        blank = service.create_folder("alice", "  ")

        assert first["name"] == "기업별"
        assert second["name"] == "기업별 (2)"
        assert blank["name"] == "새 폴더"

    def test_tree_nests_children(self, service, root_folder):
        child = service.create_folder("alice", "하위", parent_id=root_folder["id"])
        tree = service.list_tree("alice")

        resume = next(f for f in tree if f["id"] == root_folder["id"])
        assert [c["id"] for c in resume["children"]] == [child["id"]]

    def test_other_users_folder_is_forbidden(self, service, root_folder):
        with pytest.raises(OwnershipError) as exc_info:
            service.create_folder("mallory", "x", parent_id=root_folder["id"])
        assert exc_info.value.status == 403

    def test_rename_missing_folder(self, service):
        with pytest.raises(NotFoundError):
            service.rename_folder("alice", "nope", "x")

    def test_rename_blank_uses_default(self, service, root_folder):
        result = service.rename_folder("alice", root_folder["id"], " ")
        assert result["name"] == "새 폴더"

    def test_delete_cascades(self, service, root_folder):
        child = service.create_folder("alice", "하위", parent_id=root_folder["id"])
        grandchild = service.create_folder("alice", "손자", parent_id=child["id"])
        service.create_document("alice", grandchild["id"], title="deep")
        service.create_document("alice", root_folder["id"], title="top")

        result = service.delete_folder("alice", root_folder["id"])

        assert result == {"folders": 3, "documents": 2}
        assert all(f["id"] != root_folder["id"] for f in service.list_tree("alice"))


class TestDocuments:

    def test_create_blank_document(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])

        assert doc["title"] == "새 문서"
        assert doc["content"] == {"blocks": [{"type": "doc", "html": ""}]}
        assert doc["company"] is None

    def test_create_from_template_fills_context(self, service, root_folder):
        doc = service.create_document(
            "alice", root_folder["id"], title="지원서",
            template_key="cover_story", company="Acme", role="PM",
        )

        html = block_html(doc["content"])
        assert "Acme 채용 담당자님께," in html
        assert doc["template_key"] == "cover_story"

    def test_unknown_template_is_not_found(self, service, root_folder):
        with pytest.raises(NotFoundError):
            service.create_document("alice", root_folder["id"], template_key="nope")

    def test_get_document_checks_owner(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])

        with pytest.raises(OwnershipError):
            service.get_document("bob", doc["id"])
        with pytest.raises(NotFoundError):
            service.get_document("alice", "missing")

    def test_update_title_blank_becomes_untitled(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])
        result = service.update_title("alice", doc["id"], "   ")

        assert result["title"] == "제목 없음"
        assert service.get_document("alice", doc["id"])["title"] == "제목 없음"

    def test_update_content_accepts_string_and_envelope(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])

        service.update_content("alice", doc["id"], "<p>a</p>")
        assert service.get_document_html("alice", doc["id"]) == "<p>a</p>"

        service.update_content("alice", doc["id"], {"blocks": [{"type": "doc", "html": "<p>b</p>"}]})
        assert service.get_document_html("alice", doc["id"]) == "<p>b</p>"

    def test_update_content_rejects_other_shapes(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])
        with pytest.raises(ValidationError):
            service.update_content("alice", doc["id"], 42)

    def test_legacy_content_is_normalized(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])
        legacy = {"blocks": [{"type": "paragraph", "text": "옛 문서"}]}

        service.update_content("alice", doc["id"], legacy)

        stored = service.get_document("alice", doc["id"])["content"]
        assert stored == {"blocks": [{"type": "doc", "html": "<p>옛 문서</p>"}]}

    def test_metadata_only_writes_given_fields(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"], company="Acme", role="PM")

        result = service.update_metadata("alice", doc["id"], role="  ")

        assert result["company"] == "Acme"
        assert result["role"] is None

    def test_metadata_rejects_unknown_fields(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])
        with pytest.raises(ValidationError):
            service.update_metadata("alice", doc["id"], salary="1")

    def test_move_document(self, service, root_folder):
        other = service.create_folder("alice", "다른")
        doc = service.create_document("alice", root_folder["id"])

        service.move_document("alice", doc["id"], other["id"])

        assert service.get_document("alice", doc["id"])["folder_id"] == other["id"]

    def test_move_into_foreign_folder_forbidden(self, service, root_folder):
        service.ensure_root_folders("bob")
        bob_folder = service.list_tree("bob")[0]
        doc = service.create_document("alice", root_folder["id"])

        with pytest.raises(OwnershipError):
            service.move_document("alice", doc["id"], bob_folder["id"])

    def test_delete_document(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"])
        service.delete_document("alice", doc["id"])

        with pytest.raises(NotFoundError):
            service.get_document("alice", doc["id"])

    def test_tree_lists_document_summaries(self, service, root_folder):
        doc = service.create_document("alice", root_folder["id"], title="요약")
        tree = service.list_tree("alice")

        resume = next(f for f in tree if f["id"] == root_folder["id"])
        assert resume["documents"][0]["id"] == doc["id"]
        assert "content" not in resume["documents"][0]


class TestProfileParsing:

    def test_parse_month(self):
        assert parse_month("2023.1") == "2023.01"
        assert parse_month(" 2023-11 ") == "2023.11"
        assert parse_month("2023/13") is None
        assert parse_month("23.01") is None
        assert parse_month(None) is None

    def test_parse_period(self):
        assert parse_period("2023.01 ~ 2023.6") == ("2023.01", "2023.06")
        assert parse_period("2023.01 ~") == ("2023.01", None)
        assert parse_period("") == (None, None)

    def test_normalize_profile(self):
        profile = normalize_profile({
            "name": "  홍길동 ",
            "email": "",
            "gpa": "3.8",
            "graduation_year": "2024",
            "total_years": "abc",
            "skills": "Python, SQL",
            "is_experienced": 1,
        })

        assert profile["name"] == "홍길동"
        assert profile["email"] is None
        assert profile["gpa"] == 3.8
        assert profile["graduation_year"] == 2024
        assert profile["total_years"] is None
        assert profile["skills"] == ["Python", "SQL"]
        assert profile["interests"] == []
        assert profile["is_experienced"] is True

    def test_normalize_projects_orders_newest_first(self):
        projects = normalize_projects([
            {"name": "old", "period": "2021.03 ~ 2021.09"},
            {"name": "", "tech_stack": "Go"},
            {"name": "new", "start": "2024.2"},
        ])

        assert [p["name"] for p in projects] == ["new", "old", "프로젝트"]
        assert projects[0]["start"] == "2024.02"
        assert projects[1]["end"] == "2021.09"
        assert projects[2]["start"] is None
        assert projects[2]["tech_stack"] == ["Go"]


class TestGeneratedDrafts:

    @pytest.fixture
    def drafter(self):
        drafter = MagicMock()
        drafter.draft_resume.return_value = "이력서\n이름: 홍길동 <A&B>"
        drafter.draft_cover_letter.return_value = "자기소개서(초안)"
        return drafter

    @pytest.fixture
    def service(self, drafter):
        return DocumentService(drafter=drafter)

    def _drafts(self, service, user_id="alice"):
        return {d["title"]: d for d in service.documents.find({"owner_id": user_id})}

    def test_profile_round_trip(self, service):
        assert service.get_profile("alice") is None

        saved = service.save_profile("alice", {"name": "홍길동"}, [{"name": "검색", "period": "2023.01 ~ 2023.06"}])

        assert service.get_profile("alice") == saved
        assert saved["projects"][0]["start"] == "2023.01"

    def test_saving_again_replaces_projects(self, service):
        service.save_profile("alice", {"name": "홍길동"}, [{"name": "a"}, {"name": "b"}])
        service.save_profile("alice", {"name": "홍길동"}, [{"name": "c"}])

        assert [p["name"] for p in service.get_profile("alice")["projects"]] == ["c"]

    def test_initialize_without_profile_does_nothing(self, service):
        assert service.initialize_user_documents("alice") == []
        assert service.list_tree("alice") == []

    def test_initialize_creates_folders_and_drafts(self, service, drafter):
        service.save_profile("alice", {"name": "홍길동"}, [{"name": "검색"}])

        written = service.initialize_user_documents("alice")

        assert sorted(d["title"] for d in written) == ["이력서_초안", "자기소개서_초안"]
        assert all(d["created"] for d in written)
        names = {f["name"] for f in service.list_tree("alice")}
        assert names == {"자기소개서", "이력서", "포트폴리오", "경력기술서"}

        drafts = self._drafts(service)
        assert block_html(drafts["이력서_초안"]["content"]) == "<pre>이력서\n이름: 홍길동 &lt;A&amp;B&gt;</pre>"
        assert block_html(drafts["자기소개서_초안"]["content"]) == "<pre>자기소개서(초안)</pre>"

        profile, projects = drafter.draft_resume.call_args[0]
        assert profile["name"] == "홍길동"
        assert projects[0]["name"] == "검색"
        assert drafter.draft_resume.call_args[1] == {"fallback": True}
        assert drafter.draft_cover_letter.call_args[1] == {"fallback": True}

    def test_initialize_keeps_existing_drafts(self, service, drafter):
        service.save_profile("alice", {"name": "홍길동"})
        service.initialize_user_documents("alice")
        drafter.draft_resume.return_value = "다른 초안"

        assert service.initialize_user_documents("alice") == []
        assert "다른 초안" not in block_html(self._drafts(service)["이력서_초안"]["content"])
        assert len(service.folders.find({"owner_id": "alice", "name": "경력기술서"})) == 1

    def test_regenerate_overwrites_draft(self, service, drafter):
        service.save_profile("alice", {"name": "홍길동"})
        first = service.initialize_user_documents("alice")
        resume_id = next(d["id"] for d in first if d["title"] == "이력서_초안")
        drafter.draft_resume.return_value = "새 초안"

        result = service.regenerate_document("alice", "resume")

        assert result["id"] == resume_id
        assert result["created"] is False
        assert block_html(self._drafts(service)["이력서_초안"]["content"]) == "<pre>새 초안</pre>"

    def test_regenerate_with_given_profile_does_not_store_it(self, service, drafter):
        service.ensure_root_folders("alice")

        result = service.regenerate_document("alice", "cover_letter", {"name": "김철수", "skills": "Java"})

        assert result["created"] is True
        assert drafter.draft_cover_letter.call_args[0][0]["skills"] == ["Java"]
        assert service.get_profile("alice") is None

    def test_regenerate_unknown_kind(self, service):
        with pytest.raises(ValidationError, match="초안 종류"):
            service.regenerate_document("alice", "portfolio")

    def test_regenerate_without_profile(self, service):
        service.ensure_root_folders("alice")

        with pytest.raises(ValidationError, match="기초세팅 정보가 없습니다."):
            service.regenerate_document("alice", "resume")

    def test_regenerate_without_root_folder(self, service):
        service.save_profile("alice", {"name": "홍길동"})

        with pytest.raises(NotFoundError, match="이력서 루트 폴더가 없습니다."):
            service.regenerate_document("alice", "resume")
