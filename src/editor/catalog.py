"""
Template and preset catalog.

Templates are static, ordered lists of insertion directives. Applying one
replays the directives against an EditorSurface, one insertion call per
directive, in order. Presets are user-captured HTML snippets inserted
verbatim through the same surface primitive.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from src.common.config import Config
from src.common.error_handling import NotFoundError, ValidationError
from src.common.repositories import PRESETS, CollectionRepositoryInterface, get_repository
from src.editor.actions import SurfaceEvent
from src.editor.blocks import BlockKind, Variant
from src.editor.markup import parse_fragment

logger = logging.getLogger(__name__)


class DirectiveKind(str, Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    BULLETS = "bullets"
    KEY_VALUE = "key_value"
    BLOCK = "block"


@dataclass(frozen=True)
class Directive:
    kind: DirectiveKind
    payload: Dict[str, Any] = field(default_factory=dict)


def heading(text: str, level: int = 2) -> Directive:
    return Directive(DirectiveKind.HEADING, {"level": level, "text": text})


def paragraph(text: str) -> Directive:
    return Directive(DirectiveKind.PARAGRAPH, {"text": text})


def bullets(*items: str, ordered: bool = False) -> Directive:
    return Directive(DirectiveKind.BULLETS, {"items": list(items), "ordered": ordered})


def key_value(*rows: Tuple[str, str]) -> Directive:
    return Directive(DirectiveKind.KEY_VALUE, {"rows": list(rows)})


def block(kind: BlockKind, variant: Optional[Variant] = None, **fields: Any) -> Directive:
    return Directive(DirectiveKind.BLOCK, {"kind": kind, "variant": variant, "fields": fields})


@dataclass(frozen=True)
class Template:
    key: str
    label: str
    description: str
    group: str
    tags: Tuple[str, ...]
    directives: Tuple[Directive, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "description": self.description,
            "group": self.group,
            "tags": list(self.tags),
        }


GROUP_RESUME = "이력서"
GROUP_COVER_LETTER = "자기소개서"
GROUP_PORTFOLIO = "포트폴리오"
GROUP_ORDER = (GROUP_RESUME, GROUP_COVER_LETTER, GROUP_PORTFOLIO)


TEMPLATES: Tuple[Template, ...] = (
    Template(
        key="resume_classic",
        label="Classic Resume",
        description="요약, 경력, 학력, 기술을 담은 기본 이력서",
        group=GROUP_RESUME,
        tags=("resume", "classic", "경력", "학력"),
        directives=(
            block(BlockKind.CONTACT),
            heading("Professional Summary"),
            paragraph("고객 여정 개선과 데이터 기반 실험으로 제품 전환율을 높여 온 {{role}}입니다."),
            heading("Experience"),
            block(BlockKind.EXPERIENCE),
            heading("Education"),
            block(BlockKind.EDUCATION, variant=Variant.TEXT),
            block(BlockKind.SKILLS),
        ),
    ),
    Template(
        key="resume_modern",
        label="Modern Resume",
        description="핵심 지표 중심의 간결한 이력서",
        group=GROUP_RESUME,
        tags=("resume", "modern", "metrics", "kpi"),
        directives=(
            heading("이름", level=1),
            paragraph("{{role}} | 서울 | email@example.com | 010-0000-0000"),
            heading("Snapshot"),
            bullets(
                "연간 ARR 120억 규모 제품 로드맵 총괄",
                "사용자 인터뷰 120회 이상 진행하며 핵심 페인포인트 도출",
            ),
            block(BlockKind.KPI),
            heading("Recent Experience"),
            block(BlockKind.EXPERIENCE, variant=Variant.TEXT),
        ),
    ),
    Template(
        key="cover_story",
        label="Narrative Cover Letter",
        description="STAR 구조의 서술형 자기소개서",
        group=GROUP_COVER_LETTER,
        tags=("cover", "story", "star"),
        directives=(
            paragraph("{{company}} 채용 담당자님께,"),
            paragraph("안녕하세요. {{company}} {{role}} 포지션에 지원하는 지원자입니다."),
            heading("STAR Story"),
            key_value(
                ("Situation", "주요 고객들이 온보딩 과정에서 이탈하는 문제가 있었습니다."),
                ("Task", "30일 내 전환율을 10% 이상 끌어올리는 목표를 맡았습니다."),
                ("Action", "사용자 인터뷰와 퍼널 분석으로 장애 요소를 찾고 맞춤형 튜토리얼을 도입했습니다."),
                ("Result", "6주 만에 전환율이 13%p 상승했습니다."),
            ),
            heading("Closing"),
            paragraph("이 경험을 바탕으로 {{company}}의 성장에 기여하겠습니다."),
        ),
    ),
    Template(
        key="cover_qna",
        label="Q&A Cover Letter",
        description="자주 나오는 문항별 답변형 자기소개서",
        group=GROUP_COVER_LETTER,
        tags=("cover", "qna", "문항"),
        directives=(
            heading("1. 지원 동기"),
            paragraph("{{company}}의 미션에 공감하여 지원했습니다."),
            heading("2. 강점"),
            paragraph("데이터 기반 실험 설계와 크로스 펑셔널 협업이 강점입니다."),
            heading("3. 협업 경험"),
            paragraph("엔지니어, 디자이너와 함께 8주간 스프린트를 운영했습니다."),
            heading("4. 입사 후 계획"),
            paragraph("첫 분기에는 {{role}}로서 핵심 지표 계측을 정비하겠습니다."),
        ),
    ),
    Template(
        key="portfolio_design",
        label="Design Case Study",
        description="문제, 과정, 결과 중심의 디자인 케이스 스터디",
        group=GROUP_PORTFOLIO,
        tags=("portfolio", "design", "case study"),
        directives=(
            heading("Overview"),
            paragraph("온보딩 경험을 재설계하여 첫 주차 활성 지표를 개선한 프로젝트입니다."),
            heading("Process"),
            bullets(
                "정성 인터뷰 20회와 행동 데이터 분석으로 문제 정의",
                "스토리보드와 저충실도 프로토타입으로 반복 검증",
                "디자인 시스템 정리 후 단계별 출시",
            ),
            block(BlockKind.PROJECT),
            heading("Outcome"),
            block(BlockKind.QUOTE),
        ),
    ),
    Template(
        key="portfolio_dev",
        label="Engineering Portfolio",
        description="기술 스택과 임팩트 중심의 개발 포트폴리오",
        group=GROUP_PORTFOLIO,
        tags=("portfolio", "developer", "engineering", "stack"),
        directives=(
            heading("Introduction"),
            paragraph("문서 자동화와 데이터 파이프라인을 설계하는 개발자입니다."),
            heading("Highlighted Project"),
            block(BlockKind.PROJECT),
            heading("Technical Stack"),
            block(BlockKind.SKILLS),
            block(BlockKind.LINKS),
        ),
    ),
)

TEMPLATE_MAP: Dict[str, Template] = {t.key: t for t in TEMPLATES}


def get_template(key: str) -> Template:
    try:
        return TEMPLATE_MAP[key]
    except KeyError:
        raise NotFoundError("템플릿을 찾을 수 없습니다.") from None


def search_templates(query: str = "") -> List[Template]:
    """Case-insensitive match on label, description, key and tags."""
    term = (query or "").strip().lower()
    if not term:
        return list(TEMPLATES)
    results = []
    for template in TEMPLATES:
        haystack = " ".join((template.label, template.description, template.key, *template.tags)).lower()
        if term in haystack:
            results.append(template)
    return results


def grouped_templates(query: str = "") -> List[Dict[str, Any]]:
    matches = search_templates(query)
    groups = []
    for name in GROUP_ORDER:
        members = [t.to_dict() for t in matches if t.group == name]
        if members:
            groups.append({"group": name, "templates": members})
    return groups


def apply_directive(surface, directive: Directive) -> SurfaceEvent:
    payload = directive.payload
    if directive.kind == DirectiveKind.HEADING:
        return surface.insert_heading(payload.get("level", 2), payload["text"])
    if directive.kind == DirectiveKind.PARAGRAPH:
        return surface.insert_paragraph(payload["text"])
    if directive.kind == DirectiveKind.BULLETS:
        return surface.insert_bullets(payload["items"], ordered=payload.get("ordered", False))
    if directive.kind == DirectiveKind.KEY_VALUE:
        return surface.insert_key_value_table(payload["rows"])
    return surface.insert_block(payload["kind"], payload.get("fields") or None, payload.get("variant"))


def apply_template(surface, key: str) -> int:
    """
    Replay a template's directives at the caret.

    Returns:
        Number of directives applied
    """
    template = get_template(key)
    for directive in template.directives:
        apply_directive(surface, directive)
    logger.info(f"Applied template '{key}' ({len(template.directives)} directives)")
    return len(template.directives)


# ============================================================================
# Presets
# ============================================================================

@dataclass
class Preset:
    id: str
    name: str
    html: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PresetStorage(ABC):
    """Where presets live."""

    @abstractmethod
    def load_all(self) -> List[Preset]:
        pass

    @abstractmethod
    def save(self, preset: Preset) -> None:
        pass

    @abstractmethod
    def delete(self, preset_id: str) -> bool:
        pass


class MemoryPresetStorage(PresetStorage):
    def __init__(self):
        self._presets: Dict[str, Preset] = {}

    def load_all(self) -> List[Preset]:
        return list(self._presets.values())

    def save(self, preset: Preset) -> None:
        self._presets[preset.id] = preset

    def delete(self, preset_id: str) -> bool:
        return self._presets.pop(preset_id, None) is not None


class JsonFilePresetStorage(PresetStorage):
    """Presets kept in a local JSON file, the whole list rewritten per change."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load_all(self) -> List[Preset]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Preset file {self.path} is corrupt, ignoring it: {e}")
            return []
        return [Preset(**item) for item in raw if isinstance(item, dict)]

    def _write(self, presets: List[Preset]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([p.to_dict() for p in presets], ensure_ascii=False, indent=2)
        self.path.write_text(payload, encoding="utf-8")

    def save(self, preset: Preset) -> None:
        with self._lock:
            presets = [p for p in self.load_all() if p.id != preset.id]
            presets.append(preset)
            self._write(presets)

    def delete(self, preset_id: str) -> bool:
        with self._lock:
            presets = self.load_all()
            remaining = [p for p in presets if p.id != preset_id]
            if len(remaining) == len(presets):
                return False
            self._write(remaining)
            return True


class RepositoryPresetStorage(PresetStorage):
    """Presets in the ``presets`` collection, scoped to one owner."""

    def __init__(self, owner_id: str, repository: Optional[CollectionRepositoryInterface] = None):
        self.owner_id = owner_id
        self.repository = repository or get_repository(PRESETS)

    def load_all(self) -> List[Preset]:
        docs = self.repository.find({"owner_id": self.owner_id}, sort=[("created_at", 1)])
        return [
            Preset(id=d["preset_id"], name=d["name"], html=d["html"], created_at=d["created_at"])
            for d in docs
        ]

    def save(self, preset: Preset) -> None:
        self.repository.update_one(
            {"owner_id": self.owner_id, "preset_id": preset.id},
            {"$set": {"name": preset.name, "html": preset.html, "created_at": preset.created_at}},
            upsert=True,
        )

    def delete(self, preset_id: str) -> bool:
        result = self.repository.delete_one({"owner_id": self.owner_id, "preset_id": preset_id})
        return result.deleted_count > 0


class PresetStore:
    """User presets: captured selections re-insertable at the caret."""

    def __init__(self, storage: Optional[PresetStorage] = None):
        if storage is None and Config.PRESET_STORE_PATH:
            storage = JsonFilePresetStorage(Config.PRESET_STORE_PATH)
        elif storage is None:
            storage = MemoryPresetStorage()
        self.storage = storage

    def capture(self, name: str, selection_html: str) -> Preset:
        """
        Store the selection's HTML verbatim.

        Raises:
            ValidationError: If the selection has no content
        """
        soup = parse_fragment(selection_html or "")
        if not soup.get_text().strip() and soup.find(["img", "hr", "table"]) is None:
            raise ValidationError("선택된 내용이 없습니다.")

        preset = Preset(
            id=uuid.uuid4().hex[:12],
            name=(name or "").strip() or "새 프리셋",
            html=selection_html,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.storage.save(preset)
        logger.info(f"Captured preset '{preset.name}' ({len(selection_html)} chars)")
        return preset

    def capture_from(self, surface, name: str) -> Preset:
        return self.capture(name, surface.selection_html())

    def list(self) -> List[Preset]:
        return self.storage.load_all()

    def get(self, preset_id: str) -> Preset:
        for preset in self.storage.load_all():
            if preset.id == preset_id:
                return preset
        raise NotFoundError("프리셋을 찾을 수 없습니다.")

    def insert(self, surface, preset_id: str) -> SurfaceEvent:
        return surface.insert_html(self.get(preset_id).html)

    def remove(self, preset_id: str) -> None:
        if not self.storage.delete(preset_id):
            raise NotFoundError("프리셋을 찾을 수 없습니다.")
