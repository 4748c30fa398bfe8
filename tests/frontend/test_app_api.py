"""
Tests for the Flask JSON API in frontend/app.py.

Storage is the in-memory backend; the PDF service, the AI service and
company research are mocked where a route would reach the network.
"""

import json

import pytest
import requests
from unittest.mock import AsyncMock, MagicMock

from src.common.error_handling import AiRewriteError, QuotaBlockedError
from src.services.company_brief_service import CompanyBrief


class TestAuthentication:
    """Login, logout and the API guard."""

    def test_api_requires_login(self, client):
        response = client.get("/api/folders")

        assert response.status_code == 401
        assert response.get_json() == {"success": False, "error": "로그인이 필요합니다."}

    def test_page_redirects_to_login(self, client):
        response = client.get("/")

        assert response.status_code == 302
        assert "/login" in response.headers["Location"]

    def test_login_always_uses_single_account(self, client):
        response = client.post("/login", data={"password": "test-password", "username": "kim"})

        assert response.status_code == 302
        with client.session_transaction() as sess:
            assert sess["authenticated"] is True
            assert sess["user_id"] == "owner"

        folders = client.get("/api/folders").get_json()["folders"]
        assert sorted(f["name"] for f in folders) == sorted(["자기소개서", "이력서", "포트폴리오"])

    def test_wrong_password(self, client):
        response = client.post("/login", data={"password": "nope"})

        assert response.status_code == 401
        assert "비밀번호가 올바르지 않습니다." in response.get_data(as_text=True)

    def test_logout_clears_session(self, authenticated_client):
        authenticated_client.post("/logout")

        assert authenticated_client.get("/api/folders").status_code == 401


class TestHealth:

    def test_health_reports_unreachable_pdf_service(self, client, mocker):
        mocker.patch("app.requests.get", side_effect=requests.ConnectionError("refused"))

        data = client.get("/health").get_json()

        assert data["status"] == "degraded"
        assert data["services"]["pdf_service"] == "unreachable"

    def test_health_ok(self, client, mocker):
        mocker.patch("app.requests.get", return_value=MagicMock(status_code=200))

        assert client.get("/health").get_json()["status"] == "healthy"


class TestFolders:

    def test_create_rename_delete(self, authenticated_client, root_folder_id):
        created = authenticated_client.post(
            "/api/folders", json={"name": "기업별", "parent_id": root_folder_id}
        )
        assert created.status_code == 201
        folder_id = created.get_json()["folder"]["id"]

        renamed = authenticated_client.put(f"/api/folders/{folder_id}", json={"name": "2025 상반기"})
        assert renamed.get_json()["folder"]["name"] == "2025 상반기"

        deleted = authenticated_client.delete(f"/api/folders/{folder_id}")
        assert deleted.get_json()["deleted"] == {"folders": 1, "documents": 0}

    def test_rename_missing_folder_is_404(self, authenticated_client):
        response = authenticated_client.put("/api/folders/missing", json={"name": "x"})

        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_non_object_body_rejected(self, authenticated_client):
        response = authenticated_client.post("/api/folders", json=["a"])
        assert response.status_code == 400


class TestDocuments:

    def test_create_requires_folder(self, authenticated_client):
        response = authenticated_client.post("/api/documents", json={"title": "x"})

        assert response.status_code == 400
        assert response.get_json()["error"] == "폴더를 선택해주세요."

    def test_round_trip(self, authenticated_client, document):
        doc_id = document["id"]

        authenticated_client.put(f"/api/documents/{doc_id}/title", json={"title": "  "})
        authenticated_client.put(
            f"/api/documents/{doc_id}/content",
            json={"content": {"blocks": [{"type": "doc", "html": "<p>본문</p>"}]}},
        )
        meta = authenticated_client.put(f"/api/documents/{doc_id}/meta", json={"role": "PO"})

        assert meta.get_json()["role"] == "PO"
        stored = authenticated_client.get(f"/api/documents/{doc_id}").get_json()["document"]
        assert stored["title"] == "제목 없음"
        assert stored["content"] == {"blocks": [{"type": "doc", "html": "<p>본문</p>"}]}
        assert stored["company"] == "Acme"

    def test_content_missing(self, authenticated_client, document):
        response = authenticated_client.put(f"/api/documents/{document['id']}/content", json={})
        assert response.status_code == 400

    def test_other_user_is_forbidden(self, authenticated_client, document):
        with authenticated_client.session_transaction() as sess:
            sess["user_id"] = "mallory"

        response = authenticated_client.get(f"/api/documents/{document['id']}")
        assert response.status_code == 403

    def test_move_and_delete(self, authenticated_client, document):
        folder = authenticated_client.post("/api/folders", json={"name": "보관"}).get_json()["folder"]

        moved = authenticated_client.put(
            f"/api/documents/{document['id']}/move", json={"folder_id": folder["id"]}
        )
        assert moved.get_json()["folder_id"] == folder["id"]

        authenticated_client.delete(f"/api/documents/{document['id']}")
        assert authenticated_client.get(f"/api/documents/{document['id']}").status_code == 404


class TestInsert:

    def test_insert_template_uses_document_context(self, authenticated_client, document):
        response = authenticated_client.post(
            f"/api/documents/{document['id']}/insert", json={"template_key": "cover_story"}
        )

        assert response.status_code == 200
        assert "Acme 채용 담당자님께," in response.get_json()["html"]
        stored = authenticated_client.get(f"/api/documents/{document['id']}").get_json()["document"]
        assert "Acme 채용 담당자님께," in stored["content"]["blocks"][0]["html"]

    def test_insert_preset(self, authenticated_client, document):
        preset = authenticated_client.post(
            "/api/presets", json={"name": "인사", "html": "<p>안녕하세요</p>"}
        ).get_json()["preset"]

        response = authenticated_client.post(
            f"/api/documents/{document['id']}/insert", json={"preset_id": preset["id"]}
        )

        assert "안녕하세요" in response.get_json()["html"]

    def test_insert_requires_source(self, authenticated_client, document):
        response = authenticated_client.post(f"/api/documents/{document['id']}/insert", json={})
        assert response.status_code == 400

    def test_unknown_template(self, authenticated_client, document):
        response = authenticated_client.post(
            f"/api/documents/{document['id']}/insert", json={"template_key": "nope"}
        )
        assert response.status_code == 404


class TestDownload:

    def test_json_download(self, authenticated_client, document):
        response = authenticated_client.get(f"/api/documents/{document['id']}/download?type=json")

        assert response.status_code == 200
        assert response.headers["Content-Type"].startswith("application/json")
        assert response.headers["Content-Disposition"].startswith("attachment; filename=")
        assert response.headers["Cache-Control"] == "no-store"
        assert json.loads(response.get_data(as_text=True))["id"] == document["id"]

    def test_text_download(self, authenticated_client, document):
        response = authenticated_client.get(f"/api/documents/{document['id']}/download?type=txt")

        assert response.get_data(as_text=True).startswith("지원서\n")
        assert ".txt" in response.headers["Content-Disposition"]

    def test_unknown_type(self, authenticated_client, document):
        response = authenticated_client.get(f"/api/documents/{document['id']}/download?type=docx")
        assert response.status_code == 400

    def test_pdf_proxied_to_pdf_service(self, authenticated_client, document, mocker):
        mock_post = mocker.patch(
            "app.requests.post",
            return_value=MagicMock(status_code=200, content=b"%PDF-1.4 test"),
        )

        response = authenticated_client.get(f"/api/documents/{document['id']}/download")

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data == b"%PDF-1.4 test"
        url = mock_post.call_args[0][0]
        assert url.endswith("/document-to-pdf")
        payload = mock_post.call_args[1]["json"]
        assert payload["title"] == "지원서"
        assert payload["filename"].endswith(".pdf")

    def test_pdf_timeout(self, authenticated_client, document, mocker):
        mocker.patch("app.requests.post", side_effect=requests.Timeout())

        response = authenticated_client.get(f"/api/documents/{document['id']}/download?type=pdf")

        assert response.status_code == 504
        assert response.get_json()["success"] is False

    def test_pdf_service_unreachable(self, authenticated_client, document, mocker):
        mocker.patch("app.requests.post", side_effect=requests.ConnectionError("refused"))

        response = authenticated_client.get(f"/api/documents/{document['id']}/download")
        assert response.status_code == 503

    def test_pdf_service_error_passes_detail(self, authenticated_client, document, mocker):
        failed = MagicMock(status_code=500)
        failed.json.return_value = {"detail": "render failed"}
        mocker.patch("app.requests.post", return_value=failed)

        response = authenticated_client.get(f"/api/documents/{document['id']}/download")

        assert response.status_code == 500
        assert response.get_json()["detail"] == "render failed"


class TestPreview:

    def test_paginates_html(self, authenticated_client):
        response = authenticated_client.post(
            "/api/preview", json={"html": "<p>a</p><p>b</p>", "zoom": 3}
        )
        data = response.get_json()

        assert data["page_count"] == 1
        assert data["zoom"] == 2.0
        assert data["pages"][0]["blocks"] == [0, 1]
        assert "scale(" in data["html"]

    def test_default_zoom_is_fit_scale(self, authenticated_client):
        data = authenticated_client.post("/api/preview", json={"html": ""}).get_json()
        assert data["zoom"] == 0.8

    def test_bad_zoom(self, authenticated_client):
        response = authenticated_client.post("/api/preview", json={"html": "<p>a</p>", "zoom": "big"})
        assert response.status_code == 400

    def test_preview_stored_document(self, authenticated_client, document):
        response = authenticated_client.post("/api/preview", json={"doc_id": document["id"]})
        assert response.get_json()["success"] is True


class TestTemplatesAndPresets:

    def test_templates_grouped_and_filtered(self, authenticated_client):
        groups = authenticated_client.get("/api/templates?q=cover").get_json()["groups"]

        assert [g["group"] for g in groups] == ["자기소개서"]

    def test_preset_lifecycle(self, authenticated_client):
        created = authenticated_client.post("/api/presets", json={"name": "서명", "html": "<p>홍길동</p>"})
        assert created.status_code == 201
        preset_id = created.get_json()["preset"]["id"]

        presets = authenticated_client.get("/api/presets").get_json()["presets"]
        assert [p["id"] for p in presets] == [preset_id]

        authenticated_client.delete(f"/api/presets/{preset_id}")
        assert authenticated_client.get("/api/presets").get_json()["presets"] == []

    def test_empty_preset_rejected(self, authenticated_client):
        response = authenticated_client.post("/api/presets", json={"name": "x", "html": "<p> </p>"})

        assert response.status_code == 400
        assert response.get_json()["error"] == "선택된 내용이 없습니다."


class TestAi:

    @pytest.fixture
    def ai_service(self, mocker):
        service = MagicMock()
        service.rewrite.return_value = "다듬은 문장"
        mocker.patch("app.get_ai_service", return_value=service)
        return service

    def test_rewrite_without_brief(self, authenticated_client, ai_service):
        response = authenticated_client.post(
            "/api/ai/rewrite", json={"mode": "proofread", "text": "문장", "company": "Acme"}
        )

        assert response.get_json() == {"success": True, "result": "다듬은 문장"}
        assert ai_service.rewrite.call_args[1]["company_context"] is None

    def test_rewrite_with_company_brief(self, authenticated_client, ai_service):
        from app import get_brief_service
        get_brief_service()._save(CompanyBrief(company="Acme", values=["정직"]))

        authenticated_client.post(
            "/api/ai/rewrite", json={"mode": "proofread", "text": "문장", "company": "Acme"}
        )

        assert ai_service.rewrite.call_args[1]["company_context"] == "회사: Acme\n핵심 가치: 정직"

    def test_rewrite_failure_is_502(self, authenticated_client, ai_service):
        ai_service.rewrite.side_effect = AiRewriteError()

        response = authenticated_client.post("/api/ai/rewrite", json={"mode": "summarize", "text": "x"})

        assert response.status_code == 502

    def test_draft_resume(self, authenticated_client, ai_service):
        ai_service.draft_resume.return_value = "초안"

        response = authenticated_client.post(
            "/api/ai/draft", json={"kind": "resume", "profile": {"name": "홍길동"}, "projects": []}
        )

        assert response.get_json()["result"] == "초안"
        ai_service.draft_resume.assert_called_once_with({"name": "홍길동"}, [], fallback=True)

    def test_draft_unknown_kind(self, authenticated_client, ai_service):
        response = authenticated_client.post("/api/ai/draft", json={"kind": "poem"})
        assert response.status_code == 400



class TestOnboarding:

    @pytest.fixture
    def drafter(self, mocker):
        from app import get_document_service
        drafter = MagicMock()
        drafter.draft_resume.return_value = "이력서\n이름: 홍길동"
        drafter.draft_cover_letter.return_value = "자기소개서(초안)"
        mocker.patch.object(get_document_service(), "drafter", drafter)
        return drafter

    def test_get_without_profile(self, authenticated_client):
        assert authenticated_client.get("/api/onboarding").get_json() == {"success": True, "profile": None}

    def test_save_creates_drafts(self, authenticated_client, drafter):
        response = authenticated_client.post("/api/onboarding", json={
            "profile": {"name": " 홍길동 ", "skills": "Python, SQL"},
            "projects": [{"name": "검색", "period": "2023.1 ~ 2023.6"}],
        })

        data = response.get_json()
        assert data["profile"]["profile"]["name"] == "홍길동"
        assert data["profile"]["projects"][0]["start"] == "2023.01"
        assert sorted(d["title"] for d in data["drafts"]) == ["이력서_초안", "자기소개서_초안"]

        folders = authenticated_client.get("/api/folders").get_json()["folders"]
        assert "경력기술서" in {f["name"] for f in folders}
        assert authenticated_client.get("/api/onboarding").get_json()["profile"]["profile"]["skills"] == ["Python", "SQL"]

    def test_regenerate_overwrites_draft(self, authenticated_client, drafter):
        authenticated_client.post("/api/onboarding", json={"profile": {"name": "홍길동"}})
        drafter.draft_resume.return_value = "새 초안"

        response = authenticated_client.post("/api/documents/regenerate", json={"kind": "resume"})

        data = response.get_json()
        assert data["success"] is True
        assert data["created"] is False
        content = authenticated_client.get(f"/api/documents/{data['id']}").get_json()["document"]["content"]
        assert "새 초안" in json.dumps(content, ensure_ascii=False)

    def test_regenerate_without_profile(self, authenticated_client, drafter):
        response = authenticated_client.post("/api/documents/regenerate", json={"kind": "resume"})

        assert response.status_code == 400
        assert response.get_json()["error"] == "기초세팅 정보가 없습니다."

class TestCompanyBrief:

    def test_fetch_creates_empty_brief(self, authenticated_client):
        brief = authenticated_client.get("/api/company-brief?company=Acme&role=PM").get_json()["brief"]

        assert brief["company"] == "Acme"
        assert brief["role"] == "PM"
        assert brief["values"] == []

    def test_blank_company(self, authenticated_client):
        response = authenticated_client.get("/api/company-brief?company=")

        assert response.status_code == 400
        assert response.get_json()["error"] == "회사명을 입력해주세요."

    def test_recent(self, authenticated_client):
        authenticated_client.get("/api/company-brief?company=Acme")

        briefs = authenticated_client.get("/api/company-brief/recent?limit=5").get_json()["briefs"]
        assert [b["company"] for b in briefs] == ["Acme"]

    def test_refresh_runs_service(self, authenticated_client, mocker):
        service = MagicMock()
        service.refresh_brief = AsyncMock(return_value=CompanyBrief(company="Acme", values=["정직"]))
        mocker.patch("app.get_brief_service", return_value=service)

        response = authenticated_client.post(
            "/api/company-brief/refresh", json={"company": "Acme", "section": "news"}
        )

        assert response.get_json()["brief"]["values"] == ["정직"]
        kwargs = service.refresh_brief.call_args[1]
        assert kwargs["section"] == "news"
        assert kwargs["speed"] == "fast"
        assert kwargs["strict"] is True

    def test_refresh_quota_blocked(self, authenticated_client, mocker):
        service = MagicMock()
        service.refresh_brief = AsyncMock(side_effect=QuotaBlockedError())
        mocker.patch("app.get_brief_service", return_value=service)

        response = authenticated_client.post("/api/company-brief/refresh", json={"company": "Acme"})

        assert response.status_code == 429


class TestSalary:

    def test_salary_breakdown(self, authenticated_client):
        response = authenticated_client.post(
            "/api/salary", json={"amount": 70_000_000, "family": 2, "kids": 1}
        )
        breakdown = response.get_json()["breakdown"]

        assert breakdown["income_tax"] == 380_700
        assert breakdown["local_tax"] == 38_070

    def test_invalid_salary(self, authenticated_client):
        response = authenticated_client.post("/api/salary", json={"amount": "lots"})
        assert response.status_code == 400
