"""
Block document model.

A document body is an ordered list of top-level nodes. Structured content
sections are ``Block`` nodes tagged with a ``BlockKind``; everything else is
plain rich text (paragraphs, headings, lists, key/value tables) or raw HTML
kept verbatim.

Every block kind declares its field set once, in ``FIELD_SPECS``. Renderers,
readers and the default-field constructor are all driven from that table, so
the two variants of a block can never disagree about which fields exist.
"""

import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class BlockKind(str, Enum):
    """Structured section kinds."""
    SKILLS = "skills"
    EDUCATION = "education"
    EXPERIENCE = "experience"
    PROJECT = "project"
    KPI = "kpi"
    AWARDS = "awards"
    QUOTE = "quote"
    CONTACT = "contact"
    # Presentational sections (single renderer, no in-block actions)
    SUMMARY = "summary"
    SECTION_TITLE = "section_title"
    DIVIDER = "divider"
    CALLOUT = "callout"
    CERTIFICATION = "certification"
    LANGUAGE = "language"
    REFERENCE = "reference"
    TIMELINE = "timeline"
    LINKS = "links"
    SIGNATURE = "signature"


class Variant(str, Enum):
    CARD = "card"
    TEXT = "text"


class PageBreak(str, Enum):
    BEFORE = "before"
    AFTER = "after"


class FieldType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    CHIPS = "chips"
    BULLETS = "bullets"
    ITEMS = "items"


LIST_FIELD_TYPES = {FieldType.CHIPS, FieldType.BULLETS, FieldType.ITEMS}

VARIANT_KINDS = {BlockKind.EDUCATION, BlockKind.EXPERIENCE, BlockKind.PROJECT}

# Text used for items appended by the add-chip / add-bullet actions
NEW_ITEM_TEXT = "새 항목"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: FieldType
    default: Any = ""


FIELD_SPECS: Dict[BlockKind, Tuple[FieldSpec, ...]] = {
    BlockKind.SKILLS: (
        FieldSpec("title", FieldType.TEXT, "기술 스택"),
        FieldSpec("chips", FieldType.CHIPS, ("Python", "SQL", "Git")),
    ),
    BlockKind.EDUCATION: (
        FieldSpec("logo", FieldType.IMAGE, ""),
        FieldSpec("school", FieldType.TEXT, "학교명"),
        FieldSpec("major", FieldType.TEXT, "전공"),
        FieldSpec("period", FieldType.TEXT, "2016.03 - 2020.02"),
        FieldSpec("description", FieldType.TEXT, "주요 이수 과목 및 활동"),
    ),
    BlockKind.EXPERIENCE: (
        FieldSpec("logo", FieldType.IMAGE, ""),
        FieldSpec("company", FieldType.TEXT, "회사명"),
        FieldSpec("role", FieldType.TEXT, "직무 / 직급"),
        FieldSpec("period", FieldType.TEXT, "2020.03 - 현재"),
        FieldSpec("bullets", FieldType.BULLETS, (
            "담당 업무와 역할을 적어주세요",
            "정량적인 성과를 수치로 적어주세요",
            "사용한 기술과 협업 방식을 적어주세요",
        )),
    ),
    BlockKind.PROJECT: (
        FieldSpec("logo", FieldType.IMAGE, ""),
        FieldSpec("name", FieldType.TEXT, "프로젝트명"),
        FieldSpec("period", FieldType.TEXT, "2023.01 - 2023.06"),
        FieldSpec("summary", FieldType.TEXT, "프로젝트 한 줄 소개"),
        FieldSpec("chips", FieldType.CHIPS, ("React", "TypeScript")),
        FieldSpec("bullets", FieldType.BULLETS, (
            "문제 상황과 목표",
            "해결 과정과 결과",
        )),
    ),
    BlockKind.KPI: (
        FieldSpec("title", FieldType.TEXT, "핵심 성과"),
        FieldSpec("metrics", FieldType.ITEMS, ("+35% 전환율", "-20% 이탈률", "3x 처리량")),
    ),
    BlockKind.AWARDS: (
        FieldSpec("title", FieldType.TEXT, "수상 및 활동"),
        FieldSpec("chips", FieldType.CHIPS, ("우수상 (2023)",)),
    ),
    BlockKind.QUOTE: (
        FieldSpec("text", FieldType.TEXT, "나를 표현하는 한 문장을 적어주세요"),
        FieldSpec("author", FieldType.TEXT, "이름"),
    ),
    BlockKind.CONTACT: (
        FieldSpec("avatar", FieldType.IMAGE, ""),
        FieldSpec("name", FieldType.TEXT, "홍길동"),
        FieldSpec("headline", FieldType.TEXT, "직무 한 줄 소개"),
        FieldSpec("email", FieldType.TEXT, "email@example.com"),
        FieldSpec("phone", FieldType.TEXT, "010-0000-0000"),
        FieldSpec("link", FieldType.TEXT, "https://"),
    ),
    BlockKind.SUMMARY: (
        FieldSpec("title", FieldType.TEXT, "요약"),
        FieldSpec("body", FieldType.TEXT, "경력과 강점을 2~3문장으로 요약해주세요"),
    ),
    BlockKind.SECTION_TITLE: (
        FieldSpec("title", FieldType.TEXT, "섹션 제목"),
    ),
    BlockKind.DIVIDER: (),
    BlockKind.CALLOUT: (
        FieldSpec("body", FieldType.TEXT, "강조하고 싶은 내용을 적어주세요"),
    ),
    BlockKind.CERTIFICATION: (
        FieldSpec("name", FieldType.TEXT, "자격증명"),
        FieldSpec("issuer", FieldType.TEXT, "발급 기관"),
        FieldSpec("date", FieldType.TEXT, "2023.01"),
    ),
    BlockKind.LANGUAGE: (
        FieldSpec("language", FieldType.TEXT, "영어"),
        FieldSpec("level", FieldType.TEXT, "비즈니스 회화"),
        FieldSpec("score", FieldType.TEXT, "TOEIC 900"),
    ),
    BlockKind.REFERENCE: (
        FieldSpec("name", FieldType.TEXT, "추천인"),
        FieldSpec("relation", FieldType.TEXT, "관계"),
        FieldSpec("contact", FieldType.TEXT, "연락처"),
    ),
    BlockKind.TIMELINE: (
        FieldSpec("title", FieldType.TEXT, "타임라인"),
        FieldSpec("entries", FieldType.ITEMS, ("2020 입사", "2022 팀 리드")),
    ),
    BlockKind.LINKS: (
        FieldSpec("title", FieldType.TEXT, "링크"),
        FieldSpec("entries", FieldType.ITEMS, ("https://github.com/", "https://blog.example.com")),
    ),
    BlockKind.SIGNATURE: (
        FieldSpec("date", FieldType.TEXT, "2025년 1월 1일"),
        FieldSpec("name", FieldType.TEXT, "홍길동"),
    ),
}


def field_specs(kind: BlockKind) -> Tuple[FieldSpec, ...]:
    return FIELD_SPECS[BlockKind(kind)]


def field_spec(kind: BlockKind, name: str) -> FieldSpec:
    for spec in field_specs(kind):
        if spec.name == name:
            return spec
    raise KeyError(f"{BlockKind(kind).value} has no field '{name}'")


def default_fields(kind: BlockKind) -> Dict[str, Any]:
    """
    Fresh default field values for a block kind.

    Pure: every call returns new containers, so callers may mutate the result.
    """
    fields: Dict[str, Any] = {}
    for spec in field_specs(kind):
        if spec.type in LIST_FIELD_TYPES:
            fields[spec.name] = list(spec.default)
        else:
            fields[spec.name] = spec.default
    return fields


def merge_fields(kind: BlockKind, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Defaults overlaid with caller-supplied values.

    Unknown keys are rejected so typos surface early.
    """
    fields = default_fields(kind)
    for name, value in (overrides or {}).items():
        spec = field_spec(kind, name)
        if spec.type in LIST_FIELD_TYPES:
            fields[name] = [str(v).strip() for v in value]
        else:
            fields[name] = "" if value is None else str(value).strip()
    return fields


def new_uid() -> str:
    return uuid.uuid4().hex[:8]


# ============================================================================
# Document tree
# ============================================================================

TEXT_TAGS = ("p", "h1", "h2", "h3", "blockquote", "pre")
LIST_TAGS = ("ul", "ol", "todo")


@dataclass
class TextNode:
    """Paragraph-like node; ``html`` is its inline content."""
    tag: str = "p"
    html: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    page_break: Optional[PageBreak] = None


@dataclass
class ListItem:
    html: str = ""
    checked: bool = False


@dataclass
class ListNode:
    """Bulleted, numbered or checklist (``todo``) list."""
    tag: str = "ul"
    items: List[ListItem] = field(default_factory=list)
    attrs: Dict[str, str] = field(default_factory=dict)
    page_break: Optional[PageBreak] = None


@dataclass
class TableNode:
    """Two-column key/value table."""
    rows: List[Tuple[str, str]] = field(default_factory=list)
    page_break: Optional[PageBreak] = None


@dataclass
class RawNode:
    """Any other top-level element, kept as canonical HTML."""
    html: str = ""
    page_break: Optional[PageBreak] = None


@dataclass
class Block:
    """Structured section with named fields."""
    kind: BlockKind
    fields: Dict[str, Any] = field(default_factory=dict)
    variant: Optional[Variant] = None
    uid: str = field(default_factory=new_uid)
    page_break: Optional[PageBreak] = None

    def __post_init__(self):
        self.kind = BlockKind(self.kind)
        if self.kind in VARIANT_KINDS:
            self.variant = Variant(self.variant or Variant.CARD)
        else:
            self.variant = None
        if not self.fields:
            self.fields = default_fields(self.kind)

    @classmethod
    def create(
        cls,
        kind: BlockKind,
        fields: Optional[Dict[str, Any]] = None,
        variant: Optional[Variant] = None,
    ) -> "Block":
        return cls(kind=kind, fields=merge_fields(kind, fields), variant=variant)

    def copy(self) -> "Block":
        return copy.deepcopy(self)


Node = Union[TextNode, ListNode, TableNode, RawNode, Block]


@dataclass
class Document:
    nodes: List[Node] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def blocks(self) -> List[Block]:
        return [node for node in self.nodes if isinstance(node, Block)]

    def find_block(self, uid: str) -> Optional[int]:
        for index, node in enumerate(self.nodes):
            if isinstance(node, Block) and node.uid == uid:
                return index
        return None
