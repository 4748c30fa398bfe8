"""
Company Brief Service

Builds a short research brief for a target company (overview, values and
culture, hiring focus, application tips, recent news) from public pages and
Naver search results. Briefs are cached per company/role in the
``company_briefs`` collection and refreshed on demand, one section or all.

Evidence flow:
    1. Naver news search (cached 10 min)
    2. Candidate pages: guessed company domains, Naver web search hits,
       wiki/IR lookups and any URLs the user supplied (cached 30 min)
    3. Per-section corpus filtered by keyword, summarised by the LLM into
       JSON items; without an API key (or on failure) a sentence-split
       heuristic stands in

Usage:
    service = CompanyBriefService()
    brief = await service.refresh_brief("네이버", role="백엔드")
    prompt_context = brief.as_context()
"""

import asyncio
import json
import re
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.common.config import Config
from src.common.error_handling import ValidationError, guarded_operation
from src.common.logger import get_logger
from src.common.repositories import COMPANY_BRIEFS, CollectionRepositoryInterface, get_repository
from src.services.fetch_guard import FetchGuard, get_fetch_guard
from src.services.naver_client import NaverClient, fetch_text_from_url, host_from_url

logger = get_logger(__name__, component="company_brief")

PAGES_TTL_SECONDS = 30 * 60
NEWS_TTL_SECONDS = 10 * 60
MIN_PAGE_CHARS = 400
MAX_CANDIDATE_URLS = 24
MAX_ITEMS = 12
MAX_BASIC_BULLETS = 8

CANDIDATE_PATHS = (
    "/about", "/company", "/culture", "/values", "/mission", "/vision",
    "/careers", "/jobs", "/recruit",
)
CANDIDATE_TLDS = (".co.kr", ".com", ".kr")
REFERENCE_QUERIES = ("위키백과", "나무위키", "IR", "연차보고서", "기업보고서")


class BriefSection(str, Enum):
    BASIC = "basic"
    VALUES_CULTURE_TALENT = "values_culture_talent"
    HIRING_POINTS = "hiring_points"
    TIPS = "tips"
    NEWS = "news"


class SpeedMode(str, Enum):
    FAST = "fast"
    FULL = "full"


@dataclass(frozen=True)
class CollectionBudget:
    """Limits for one evidence pass."""
    deadline: float
    pool: int
    web_display: int
    fetch_timeout: float
    blog_display: int
    corpus_chars: int


BUDGETS = {
    SpeedMode.FAST: CollectionBudget(3.5, 5, 6, 1.6, 6, 6000),
    SpeedMode.FULL: CollectionBudget(8.0, 8, 12, 3.0, 10, 14000),
}


KEYWORDS = {
    BriefSection.BASIC: re.compile(r"(회사\s*소개|기업\s*소개|비전|미션|연혁|사업|제품|조직|개요)", re.I),
    BriefSection.VALUES_CULTURE_TALENT: re.compile(
        r"(핵심\s*가치|가치관|조직문화|문화|인재상|Values?|Culture|Mission|Vision)", re.I
    ),
    BriefSection.HIRING_POINTS: re.compile(r"(채용|모집|지원자격|자격요건|우대사항|담당업무|역할|요건)", re.I),
    BriefSection.TIPS: re.compile(r"(자소서|서류|포트폴리오|면접|면접\s*팁|interview|resume|cv)", re.I),
}

# Consumer-product copy that leaks into company pages
BLOCKLIST = re.compile(r"(구독|렌탈|요금|상담|결합\s*할인|쇼핑|쿠폰|배송|TV|A/S)", re.I)
SHOP_URL = re.compile(r"/(shop|store|coupon|event)/", re.I)
CAREER_URL = re.compile(r"jobs?|recruit|careers", re.I)
REFERENCE_HOST = re.compile(r"wikipedia\.org|namu\.wiki", re.I)
REPORT_URL = re.compile(r"dart\.fss\.or\.kr|/ir\.|/invest(or|or-relations)", re.I)


# ============================================================================
# Data
# ============================================================================

@dataclass
class NewsItem:
    title: str
    url: str = ""
    source: str = ""
    date: Optional[str] = None


@dataclass
class PageText:
    text: str
    url: str
    source: str


@dataclass
class Evidence:
    about_pages: List[PageText] = field(default_factory=list)
    career_pages: List[PageText] = field(default_factory=list)
    job_posts: List[PageText] = field(default_factory=list)
    reports: List[PageText] = field(default_factory=list)
    news: List[NewsItem] = field(default_factory=list)

    def add_page(self, bucket: str, text: str, url: str) -> bool:
        """Keep a page if it has enough text and isn't a shop page."""
        if not text or len(text) < MIN_PAGE_CHARS or SHOP_URL.search(url):
            return False
        getattr(self, bucket).append(PageText(text=text, url=url, source=host_from_url(url) or "web"))
        return True

    def cap(self) -> None:
        self.about_pages = self.about_pages[:3]
        self.career_pages = self.career_pages[:3]
        self.job_posts = self.job_posts[:3]
        self.reports = self.reports[:5]


@dataclass
class CompanyBrief:
    company: str
    role: Optional[str] = None
    blurb: str = ""
    bullets: List[str] = field(default_factory=list)
    values: List[str] = field(default_factory=list)
    culture: List[str] = field(default_factory=list)
    talent_traits: List[str] = field(default_factory=list)
    hiring_focus: List[str] = field(default_factory=list)
    resume_tips: List[str] = field(default_factory=list)
    interview_tips: List[str] = field(default_factory=list)
    recent: List[NewsItem] = field(default_factory=list)
    source_notes: List[str] = field(default_factory=list)
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    LIST_FIELDS = (
        "bullets", "values", "culture", "talent_traits",
        "hiring_focus", "resume_tips", "interview_tips",
    )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompanyBrief":
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        known["recent"] = [
            item if isinstance(item, NewsItem) else NewsItem(**item)
            for item in data.get("recent") or []
        ]
        return cls(**known)

    def has_sources(self) -> bool:
        return bool(self.source_notes or self.recent)

    def is_empty(self) -> bool:
        return not self.blurb and not any(getattr(self, name) for name in self.LIST_FIELDS)

    def as_context(self) -> str:
        """Plain-text digest appended to AI rewrite prompts."""
        lines = [f"회사: {self.company}"]
        if self.role:
            lines.append(f"직무: {self.role}")
        if self.blurb:
            lines.append(f"요약: {self.blurb}")
        labelled = (
            ("핵심 가치", self.values),
            ("조직문화", self.culture),
            ("인재상", self.talent_traits),
            ("채용 포인트", self.hiring_focus),
        )
        for label, items in labelled:
            if items:
                lines.append(f"{label}: {', '.join(items[:5])}")
        return "\n".join(lines)


def brief_key(company: str, role: Optional[str] = None) -> str:
    return f"{company.strip().lower()}::{(role or '').strip().lower()}"


# ============================================================================
# Text helpers
# ============================================================================

_SPLIT = re.compile(r"\n{2,}|(?<=\.)\s+(?=[가-힣A-Za-z])")
_QUOTES = "\"'“”‘’"


def split_paragraphs(text: str) -> List[str]:
    parts = _SPLIT.split((text or "").replace("\r", ""))
    return [p.strip() for p in parts if p and p.strip()]


def pick_relevant(text: str, pattern: re.Pattern) -> str:
    hits = [p for p in split_paragraphs(text) if pattern.search(p) and not BLOCKLIST.search(p)]
    return "\n".join(hits[:MAX_ITEMS])


def _flatten(pages: List[PageText], pattern: Optional[re.Pattern] = None) -> str:
    if pattern is None:
        texts = [p.text for p in pages]
    else:
        texts = [pick_relevant(p.text, pattern) for p in pages]
    return "\n\n".join(t for t in texts if t)


def post_clean(items: List[str]) -> List[str]:
    """Strip fences and quotes, drop blocklisted/too short/too long, dedupe."""
    out: List[str] = []
    for item in items or []:
        cleaned = re.sub(r"```json|```", "", str(item), flags=re.I)
        cleaned = re.sub(r"\s+", " ", cleaned.strip(_QUOTES + " \t\n")).strip()
        cleaned = cleaned.strip(_QUOTES).strip()
        if not cleaned or BLOCKLIST.search(cleaned) or not 4 <= len(cleaned) <= 180:
            continue
        if cleaned not in out:
            out.append(cleaned)
    return out[:MAX_ITEMS]


def fallback_items(corpus: str, max_items: int = 6) -> List[str]:
    """Sentences, else lines, else a single truncated chunk."""
    text = re.sub(r"\s+", " ", corpus or "").strip()
    if not text:
        return []
    sentences = [s for s in re.split(r"(?<=[.?!])\s+", text) if s][:max_items]
    if len(sentences) >= min(3, max_items):
        return sentences
    lines = [line.strip() for line in (corpus or "").split("\n") if line.strip()][:max_items]
    return lines or [text[:220]]


_FACT_PATTERNS = {
    "founded": re.compile(r"(설립|창립)\s*[:：]?\s*((?:19|20)\d{2})\s*년"),
    "hq": re.compile(r"(본사|주소)\s*[:：]?\s*([가-힣A-Za-z0-9·\-\s,]{3,40})"),
    "employees": re.compile(r"(임직원|직원|사원)\s*[:：]?\s*([0-9][0-9,.]{0,12})\s*명"),
    "revenue": re.compile(r"(매출|매출액)\s*[:：]?\s*([0-9][0-9,.]{0,12})\s*(조원|억원|원|KRW|₩|\$|달러)"),
    "industry": re.compile(r"(산업|업종|사업\s*분야)\s*[:：]?\s*([가-힣A-Za-z0-9·\-\s,/]{3,50})"),
}

FACT_LABELS = (
    ("founded", "설립"),
    ("hq", "본사"),
    ("industry", "사업분야"),
    ("employees", "직원수"),
    ("revenue", "매출"),
)


def extract_company_facts(text: str) -> Dict[str, str]:
    """Founding year, HQ, headcount, revenue and industry when stated."""
    flat = re.sub(r"\s+", " ", text or "")
    facts: Dict[str, str] = {}

    match = _FACT_PATTERNS["founded"].search(flat)
    if match:
        facts["founded"] = f"{match.group(2)}년"
    match = _FACT_PATTERNS["hq"].search(flat)
    if match:
        facts["hq"] = match.group(2).strip()
    match = _FACT_PATTERNS["employees"].search(flat)
    if match:
        digits = re.sub(r"\D", "", match.group(2))
        if digits:
            facts["employees"] = f"{int(digits):,}명"
    match = _FACT_PATTERNS["revenue"].search(flat)
    if match:
        facts["revenue"] = f"{match.group(2)}{match.group(3)}"
    match = _FACT_PATTERNS["industry"].search(flat)
    if match:
        facts["industry"] = match.group(2).strip()
    return facts


def collect_facts(bodies: List[str]) -> Dict[str, str]:
    """First value found for each fact across the bodies, in order."""
    merged: Dict[str, str] = {}
    for body in bodies:
        for key, value in extract_company_facts(body).items():
            merged.setdefault(key, value)
    return merged


def gather_sources(*groups) -> List[str]:
    sources: List[str] = []
    for group in groups:
        for item in group or []:
            label = item.source or item.url
            if label and label not in sources:
                sources.append(label)
    return sources


def merge_unique(a: List[str], b: List[str]) -> List[str]:
    merged: List[str] = []
    for item in list(a or []) + list(b or []):
        item = (item or "").strip()
        if item and item not in merged:
            merged.append(item)
    return merged


def guess_candidate_urls(company: str) -> List[str]:
    """Company homepage guesses crossed with common about/careers paths."""
    name = re.sub(r"\s+", " ", re.sub(r"[^a-zA-Z0-9가-힣.\s-]", " ", company)).strip()
    stems = [name, name.replace(" ", ""), name.replace(" ", "-"), name.replace(" ", "").lower()]
    roots: List[str] = []
    for stem in stems:
        for tld in CANDIDATE_TLDS:
            root = f"https://{stem}{tld}"
            if root not in roots:
                roots.append(root)
    return [root + path for root in roots for path in CANDIDATE_PATHS]


def sanitize_brief(brief: CompanyBrief, strict: bool) -> None:
    """Trim list items; in strict mode a brief without any source is emptied."""
    for name in CompanyBrief.LIST_FIELDS:
        setattr(brief, name, [s.strip() for s in getattr(brief, name) if s and s.strip()])
    if strict and not brief.has_sources():
        brief.blurb = ""
        for name in CompanyBrief.LIST_FIELDS:
            setattr(brief, name, [])


class TtlCache:
    """Tiny expiring map; entries older than their TTL read as missing."""

    def __init__(self, clock: Callable[[], float]):
        self.clock = clock
        self._entries: Dict[str, Tuple[float, float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, ttl, value = entry
        if self.clock() - stored_at >= ttl:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = (self.clock(), ttl, value)

    def clear(self) -> None:
        self._entries.clear()


# ============================================================================
# Service
# ============================================================================

class CompanyBriefService:
    """
    Args:
        repository: Brief store (default: company_briefs collection)
        naver: Naver search client (default: built from Config when keys exist)
        llm: Chat model for summaries (default: ChatOpenAI when a key exists)
        guard: Single-flight / quota guard (default: process guard)
        fetcher: ``async (url, timeout) -> text`` page loader
        clock: Monotonic clock for caches and budgets
    """

    def __init__(
        self,
        repository: Optional[CollectionRepositoryInterface] = None,
        naver: Optional[NaverClient] = None,
        llm: Optional[Any] = None,
        guard: Optional[FetchGuard] = None,
        fetcher: Optional[Callable[[str, float], Awaitable[str]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.repository = repository or get_repository(COMPANY_BRIEFS)
        self.guard = guard or get_fetch_guard()
        if naver is None and Config.naver_enabled():
            naver = NaverClient(guard=self.guard)
        self.naver = naver
        if llm is None and Config.OPENAI_API_KEY:
            llm = ChatOpenAI(
                model=Config.AI_MODEL,
                temperature=0,
                api_key=Config.OPENAI_API_KEY,
                model_kwargs={"response_format": {"type": "json_object"}},
            )
        self.llm = llm
        self.fetcher = fetcher or (lambda url, timeout: fetch_text_from_url(url, timeout=timeout))
        self.clock = clock or time.monotonic
        self.pages_cache = TtlCache(self.clock)
        self.news_cache = TtlCache(self.clock)

    # ========================================================================
    # Stored briefs
    # ========================================================================

    def _load(self, company: str, role: Optional[str]) -> Optional[CompanyBrief]:
        record = self.repository.find_one({"_id": brief_key(company, role)})
        if record is None:
            return None
        record.pop("_id", None)
        return CompanyBrief.from_dict(record)

    def _save(self, brief: CompanyBrief) -> None:
        self.repository.update_one(
            {"_id": brief_key(brief.company, brief.role)},
            {"$set": brief.to_dict()},
            upsert=True,
        )

    def fetch_brief(self, company: str, role: Optional[str] = None) -> CompanyBrief:
        """Stored brief, or a fresh empty one (persisted so it shows up in recents)."""
        company = (company or "").strip()
        if not company:
            raise ValidationError("회사명을 입력해주세요.")
        role = (role or "").strip() or None
        brief = self._load(company, role)
        if brief is None:
            brief = CompanyBrief(company=company, role=role)
            self._save(brief)
        return brief

    def list_recent(self, n: int = 8) -> List[CompanyBrief]:
        records = self.repository.find({}, sort=[("updated_at", -1)], limit=n)
        briefs = []
        for record in records:
            record.pop("_id", None)
            briefs.append(CompanyBrief.from_dict(record))
        return briefs

    async def refresh_brief(
        self,
        company: str,
        role: Optional[str] = None,
        section: Optional[str] = None,
        strict: bool = True,
        speed: str = SpeedMode.FAST.value,
        include_community: bool = False,
        manual_urls: Optional[List[str]] = None,
    ) -> CompanyBrief:
        """
        Re-collect evidence and rewrite one section (or all of them).

        Concurrent refreshes with identical parameters share one run.

        Raises:
            ValidationError: Blank company, unknown section or speed
            QuotaBlockedError: Naver quota is exhausted
        """
        try:
            target = BriefSection(section) if section else None
            mode = SpeedMode(speed)
        except ValueError:
            raise ValidationError("지원하지 않는 항목입니다.") from None

        current = self.fetch_brief(company, role)
        self.guard.ensure_not_blocked()

        flight_key = "::".join([
            "brief", brief_key(current.company, current.role),
            target.value if target else "all",
            "strict" if strict else "loose", mode.value,
            "community" if include_community else "web",
        ])

        async def run() -> CompanyBrief:
            evidence = await self.collect_evidence(
                current.company, current.role, mode, include_community, manual_urls or []
            )
            draft = CompanyBrief.from_dict(current.to_dict())
            await self._fill_sections(draft, evidence, target, strict, BUDGETS[mode])
            sanitize_brief(draft, strict)
            draft.updated_at = datetime.now(timezone.utc).isoformat()
            self._save(draft)
            logger.info(
                f"Refreshed brief for '{draft.company}' ({target.value if target else 'all'}): "
                f"{len(draft.source_notes)} source(s), {len(draft.recent)} news item(s)"
            )
            return draft

        result = await self.guard.once(flight_key, run)
        return CompanyBrief.from_dict(result.to_dict())

    async def _fill_sections(
        self,
        draft: CompanyBrief,
        ev: Evidence,
        target: Optional[BriefSection],
        strict: bool,
        budget: CollectionBudget,
    ) -> None:
        def wanted(section: BriefSection) -> bool:
            return target is None or target == section

        async def summarize(instruction: str, corpus: str) -> List[str]:
            return await self.summarize_items(instruction, corpus, strict, budget.corpus_chars)

        if wanted(BriefSection.BASIC):
            facts = collect_facts([p.text for p in ev.about_pages + ev.reports + ev.career_pages])
            heads = "\n".join(n.title for n in ev.news[:4])
            corpus = "\n\n".join([
                _flatten(ev.about_pages, KEYWORDS[BriefSection.BASIC]),
                _flatten(ev.reports),
                heads,
            ])
            bullets = await summarize("회사 핵심 요약을 최대 5개 불릿으로 작성", corpus)
            blurb = await summarize("두 문장으로 한 문단 요약", corpus)
            fact_bullets = [f"{label}: {facts[key]}" for key, label in FACT_LABELS if key in facts]
            draft.blurb = blurb[0] if blurb else ""
            draft.bullets = (fact_bullets + bullets)[:MAX_BASIC_BULLETS]
            draft.source_notes = merge_unique(
                draft.source_notes, gather_sources(ev.about_pages, ev.reports, ev.news)
            )

        if wanted(BriefSection.VALUES_CULTURE_TALENT):
            pattern = KEYWORDS[BriefSection.VALUES_CULTURE_TALENT]
            corpus = "\n\n".join([
                _flatten(ev.about_pages, pattern),
                _flatten(ev.career_pages, pattern),
                _flatten(ev.reports),
            ])
            draft.values = await summarize("‘핵심 가치’ 목록만 추출", corpus)
            draft.culture = await summarize("‘조직문화’ 항목만 추출", corpus)
            draft.talent_traits = await summarize("‘인재상’ 항목만 추출", corpus)
            draft.source_notes = merge_unique(
                draft.source_notes, gather_sources(ev.about_pages, ev.career_pages, ev.reports)
            )

        if wanted(BriefSection.HIRING_POINTS):
            pattern = KEYWORDS[BriefSection.HIRING_POINTS]
            corpus = "\n\n".join([
                _flatten(ev.career_pages, pattern),
                _flatten(ev.job_posts, pattern),
                _flatten(ev.reports),
            ])
            draft.hiring_focus = await summarize("채용에서 중요하게 보는 포인트만 추출", corpus)
            draft.source_notes = merge_unique(
                draft.source_notes, gather_sources(ev.job_posts, ev.career_pages, ev.reports)
            )

        if wanted(BriefSection.TIPS):
            pattern = KEYWORDS[BriefSection.TIPS]
            corpus = "\n\n".join([
                _flatten(ev.career_pages, pattern),
                _flatten(ev.job_posts, pattern),
                _flatten(ev.reports),
            ])
            draft.resume_tips = await summarize("서류 팁을 ‘- ’ 불릿으로", corpus)
            draft.interview_tips = await summarize("면접 팁을 ‘- ’ 불릿으로", corpus)
            draft.source_notes = merge_unique(
                draft.source_notes, gather_sources(ev.job_posts, ev.career_pages, ev.reports)
            )

        if wanted(BriefSection.NEWS):
            draft.recent = [n for n in ev.news if n.title and (n.url or n.source)]

    # ========================================================================
    # Summaries
    # ========================================================================

    async def summarize_items(
        self,
        instruction: str,
        corpus: str,
        strict: bool = True,
        max_chars: int = 6000,
    ) -> List[str]:
        """Extract a cleaned item list from ``corpus``; empty corpus gives []."""
        text = (corpus or "").strip()[:max_chars]
        if not text:
            return []
        if self.llm is None:
            return post_clean(fallback_items(text))
        items = await self._summarize_with_model(instruction, text, strict)
        if items is None:
            return post_clean(fallback_items(text))
        return post_clean(items)

    @guarded_operation("brief summary", component="company_brief")
    async def _summarize_with_model(self, instruction: str, text: str, strict: bool) -> List[str]:
        system = "\n".join([
            '한국어 정보 추출기. {"items":[string,...]} JSON만 반환.',
            "STRICT: 제공 텍스트에 명시된 사실만. 없으면 빈 배열."
            if strict
            else "LOOSE: 재서술 허용하되 텍스트 근거 범위 내.",
        ])
        user = f"# Instruction\n{instruction}\n\n# Text\n{text}"
        response = await self.llm.ainvoke([SystemMessage(content=system), HumanMessage(content=user)])
        return parse_items((response.content or "").strip())

    # ========================================================================
    # Evidence
    # ========================================================================

    async def collect_evidence(
        self,
        company: str,
        role: Optional[str] = None,
        speed: SpeedMode = SpeedMode.FAST,
        include_community: bool = False,
        manual_urls: Optional[List[str]] = None,
    ) -> Evidence:
        budget = BUDGETS[SpeedMode(speed)]
        pages_key = "::".join([brief_key(company, role), SpeedMode(speed).value, "C" if include_community else "N"])
        news_key = company.strip().lower()

        evidence = Evidence()
        cached_news = self.news_cache.get(news_key)
        if cached_news is None:
            cached_news = await self._search_news(company)
            self.news_cache.put(news_key, cached_news, NEWS_TTL_SECONDS)
        evidence.news = list(cached_news)

        cached_pages = self.pages_cache.get(pages_key)
        if cached_pages is not None:
            evidence.about_pages, evidence.career_pages, evidence.job_posts, evidence.reports = (
                list(bucket) for bucket in cached_pages
            )
            return evidence

        deadline = self.clock() + budget.deadline

        def time_left() -> float:
            return max(0.0, deadline - self.clock())

        web_urls = await self._search_web(
            f"{company} (회사 소개|핵심가치|조직문화|채용|careers|recruit)", budget.web_display
        )
        await self._collect_references(company, evidence, budget, time_left)

        candidates: List[str] = []
        for url in list(manual_urls or []) + guess_candidate_urls(company) + web_urls:
            if url and url not in candidates:
                candidates.append(url)
        await self._collect_pages(candidates[:MAX_CANDIDATE_URLS], evidence, budget, time_left)

        if include_community and time_left() > 0:
            for post in await self._search_blog(company, budget.blog_display):
                evidence.reports.append(PageText(**post))

        evidence.cap()
        self.pages_cache.put(
            pages_key,
            (evidence.about_pages, evidence.career_pages, evidence.job_posts, evidence.reports),
            PAGES_TTL_SECONDS,
        )
        return evidence

    async def _collect_references(self, company, evidence: Evidence, budget: CollectionBudget, time_left) -> None:
        """Wiki and IR pages: the most reliable source of basic facts."""
        seen = set()
        for suffix in REFERENCE_QUERIES:
            if time_left() <= 0:
                return
            for url in await self._search_web(f"{company} {suffix}", 3):
                if url in seen or time_left() <= 0:
                    continue
                seen.add(url)
                text = await self.fetcher(url, min(budget.fetch_timeout, time_left()))
                if not text:
                    continue
                host = host_from_url(url) or "web"
                bucket = "reports" if REPORT_URL.search(url) and not REFERENCE_HOST.search(host) else "about_pages"
                getattr(evidence, bucket).append(PageText(text=text, url=url, source=host))

    async def _collect_pages(self, urls: List[str], evidence: Evidence, budget: CollectionBudget, time_left) -> None:
        semaphore = asyncio.Semaphore(budget.pool)

        async def load(url: str) -> Tuple[str, str]:
            async with semaphore:
                if time_left() <= 0:
                    return url, ""
                return url, await self.fetcher(url, min(budget.fetch_timeout, time_left()))

        for url, text in await asyncio.gather(*(load(url) for url in urls)):
            bucket = "career_pages" if CAREER_URL.search(url) else "about_pages"
            evidence.add_page(bucket, text, url)

    @guarded_operation("news search", component="company_brief", fallback_value=[])
    async def _search_news(self, company: str) -> List[NewsItem]:
        if self.naver is None:
            return []
        return [NewsItem(**item) for item in await self.naver.search_news(company, display=15)]

    @guarded_operation("web search", component="company_brief", fallback_value=[])
    async def _search_web(self, query: str, display: int) -> List[str]:
        if self.naver is None:
            return []
        return await self.naver.search_web(query, display=display)

    @guarded_operation("blog search", component="company_brief", fallback_value=[])
    async def _search_blog(self, company: str, display: int) -> List[Dict[str, str]]:
        if self.naver is None:
            return []
        return await self.naver.search_blog(company, display=display)


def parse_items(content: str) -> List[str]:
    """``{"items": [...]}`` or a bare list; anything else is split by line."""
    try:
        data = json.loads(content or '{"items": []}')
    except json.JSONDecodeError:
        lines = [re.sub(r"^[-•]\s*", "", line).strip() for line in content.split("\n")]
        return [line for line in lines if line]
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        return [str(item) for item in data["items"]]
    if isinstance(data, list):
        return [str(item) for item in data]
    return []
