"""
AI Rewrite Service

Prompt-templated rewrites of a text selection (proofread, tone change,
summary, keyword extraction, translation, STAR expansion) plus full-draft
generation for resumes and cover letters.

The user's writing style profile is folded into the system prompt; an
optional company brief is appended to the user prompt so rewrites can lean
on the target company's values and hiring focus.

Usage:
    service = AiRewriteService()
    text = service.rewrite("proofread", selection_text, profile=StyleProfile(tone="간결"))
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from src.common.config import Config
from src.common.error_handling import AiRewriteError, ValidationError
from src.common.logger import get_logger

logger = get_logger(__name__, component="ai")

DEFAULT_TONE = "차분하고 전문적"
EMPTY_INPUT_MESSAGE = "먼저 문서를 선택해주세요."
RESUME_TEMPERATURE = 0.4
COVER_LETTER_TEMPERATURE = 0.5


class AiMode(str, Enum):
    PROOFREAD = "proofread"
    REWRITE_TONE = "rewrite_tone"
    SUMMARIZE = "summarize"
    KEYWORDS = "keywords"
    TRANSLATE_EN = "translate_en"
    TRANSLATE_KO = "translate_ko"
    EXPAND = "expand"


@dataclass
class StyleProfile:
    """Writing preferences captured during onboarding."""
    tone: Optional[str] = None
    prefer_numbers: bool = False
    sentence_max: Optional[int] = None
    skills: List[str] = field(default_factory=list)
    banned_words: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StyleProfile":
        data = data or {}
        style = data.get("style") or {}
        return cls(
            tone=data.get("tone"),
            prefer_numbers=bool(style.get("prefer_numbers", data.get("prefer_numbers", False))),
            sentence_max=style.get("sentence_max", data.get("sentence_max")),
            skills=to_list(data.get("skills")),
            banned_words=to_list(style.get("banned_words", data.get("banned_words"))),
        )


def to_list(value: Any) -> List[str]:
    """Accept a list or a comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v) for v in value if v]


def build_system_prompt(profile: Optional[StyleProfile] = None) -> str:
    lines = [
        "You are a meticulous Korean resume/cover-letter editor.",
        "- Keep the original meaning; avoid exaggeration.",
        "- Prefer clear, concise, professional Korean unless translation to English is requested.",
    ]
    if profile is None:
        return "\n".join(lines)

    if profile.tone:
        lines.append(f"- Preferred tone: {profile.tone}")
    if profile.prefer_numbers:
        lines.append("- Emphasize measurable outcomes and numbers.")
    if profile.sentence_max:
        lines.append(f"- Keep sentences roughly under {profile.sentence_max} words.")
    if profile.skills:
        lines.append(f"- Candidate skills: {', '.join(profile.skills)}")
    if profile.banned_words:
        lines.append(f"- Avoid these words: {', '.join(profile.banned_words)}")
    return "\n".join(lines)


def build_user_prompt(
    mode: AiMode,
    text: str,
    tone: Optional[str] = None,
    company_context: Optional[str] = None,
) -> str:
    mode = AiMode(mode)
    if mode == AiMode.PROOFREAD:
        prompt = f"다음 한국어 텍스트를 맞춤법/문법/가독성 중심으로 자연스럽게 다듬어줘. 의미는 유지하고 불필요한 과장은 금지.\n\n{text}"
    elif mode == AiMode.REWRITE_TONE:
        prompt = f'다음을 "{tone or DEFAULT_TONE}" 톤으로 재작성해줘. 분량은 비슷하게 유지:\n\n{text}'
    elif mode == AiMode.SUMMARIZE:
        prompt = f"다음을 2~3문장으로 요약하고, 핵심 bullet 3개를 함께 제시해줘:\n\n{text}"
    elif mode == AiMode.KEYWORDS:
        prompt = f"다음 텍스트에서 핵심 키워드(스킬/성과/지표)를 bullet로만 추출해줘:\n\n{text}"
    elif mode == AiMode.TRANSLATE_EN:
        prompt = f"다음을 자연스러운 비즈니스 영어로 번역해줘:\n\n{text}"
    elif mode == AiMode.TRANSLATE_KO:
        prompt = f"다음을 자연스러운 비즈니스 한국어로 번역해줘:\n\n{text}"
    else:
        prompt = "\n".join([
            "다음 문장을 상황·과정·결과를 포함한 구체적인 단락으로 확장해줘.",
            "STAR 구조(상황→과제→행동→결과)를 참고해서 자연스럽게 보충하고,",
            "불확실한 수치나 기간은 [대괄호]로 표시해줘.",
            "마지막엔 bullet 2~3개로 요약 포인트도 제시해줘.",
            f"원문:\n{text}",
        ])

    if company_context and company_context.strip():
        prompt += f"\n\n[회사 컨텍스트]\n{company_context.strip()}"
    return prompt


RESUME_SYSTEM_PROMPT = """너는 한국어 이력서/경력기술서 초안 작성 도우미야.
- 문어체, 간결한 불릿/섹션 구조.
- 회사/역할/기간/성과(수치) 중심.
- 과장/허위 금지, 입력이 없으면 생략."""

RESUME_FORMAT = """제목 없이 본문만. 섹션 예시:
[요약]
- 연차/역할/핵심역량

[학력]
- 학교 / 전공 / 졸업연도

[보유 기술]
- 기술, 도구

[경력]
- 회사 / 역할 (기간)
  - 성과 1 (수치)
  - 성과 2 (수치)

[프로젝트] (선택)
- 프로젝트명 (기간, 역할, 기술)
  - 문제/행동/성과 요약"""

COVER_LETTER_SYSTEM_PROMPT = """너는 한국어 자기소개서 초안 작성 도우미야.
- 3~4개 섹션(동기/역량/경험/포부), 800~1200자.
- 과장 금지, 입력 없으면 생략. 간결하고 구체적."""

COVER_LETTER_FORMAT = """[지원동기]
(관심 분야 연결)

[핵심역량]
(스킬/도구/방법론)

[경험/사례]
(STAR 1~2개, 수치 강조)

[포부]
(기여 포인트, 성장 계획)"""

PROFILE_KEYS = (
    "name", "email", "phone", "school", "major", "graduation_year",
    "current_company", "current_role", "total_years",
)

PROJECT_SUMMARY_FIELDS = (("problem", "문제"), ("action", "행동"), ("result", "성과"))


# ============================================================================
# Local drafts (no model)
# ============================================================================

def _education_line(profile: Dict[str, Any]) -> str:
    graduation = profile.get("graduation_year")
    parts = [profile.get("school"), profile.get("major"), f"{graduation} 졸업" if graduation else None]
    return " / ".join(str(p) for p in parts if p)


def _project_entry(project: Dict[str, Any]) -> str:
    role = f" ({project['role']})" if project.get("role") else ""
    period = f"{project.get('start') or ''} ~ {project.get('end') or ''}".strip()
    summary = " / ".join(
        f"{label}: {project[key]}" for key, label in PROJECT_SUMMARY_FIELDS if project.get(key)
    )
    lines = [f"- {project.get('name') or ''}{role}", f"  기간: {period}"]
    if summary:
        lines.append(f"  요약: {summary}")
    lines.append(f"  기술: {', '.join(to_list(project.get('tech_stack')))}")
    return "\n".join(lines)


def fallback_resume(profile: Dict[str, Any], projects: Optional[List[Dict[str, Any]]] = None) -> str:
    """Plain-text resume built from the profile alone."""
    if profile.get("current_company"):
        career = (
            f"{profile['current_company']} / {profile.get('current_role') or ''} "
            f"({profile.get('total_years') or 0}년)"
        )
    else:
        career = "신입"
    project_text = "\n".join(_project_entry(p) for p in projects or [])
    return "\n".join([
        "이력서",
        f"이름: {profile.get('name') or ''}",
        f"이메일: {profile.get('email') or ''}",
        f"연락처: {profile.get('phone') or ''}",
        "",
        "[학력]",
        f"- {_education_line(profile) or '-'}",
        "",
        "[보유 스킬]",
        f"- {', '.join(to_list(profile.get('skills'))) or '-'}",
        "",
        "[경력 요약]",
        f"- {career}",
        "",
        "[프로젝트]",
        project_text or "-",
    ]) + "\n"


def fallback_cover_letter(profile: Dict[str, Any]) -> str:
    """Plain-text cover letter skeleton built from the profile alone."""
    interests = ", ".join(to_list(profile.get("interests"))[:3]) or "관심 분야"
    skills = ", ".join(to_list(profile.get("skills"))) or "-"
    basis = profile.get("current_role") or profile.get("major") or "관련 역량"
    return "\n".join([
        "자기소개서(초안)",
        "",
        "[지원동기]",
        f"저는 {interests}에 강한 흥미를 갖고 있으며, {basis}을 바탕으로 성장해왔습니다.",
        "",
        "[강점/경험]",
        f"학력: {_education_line(profile) or '-'}",
        f"보유 스킬: {skills}",
        "",
        "[포부]",
        f"귀사와 함께 {interests}에서 임팩트를 만들고 싶습니다. 감사합니다.",
    ])


class AiRewriteService:
    """
    Runs rewrite and draft prompts against a chat model.

    Args:
        llm: Chat model to use for every call (tests pass a mock)
        model: Model name when building ChatOpenAI (default: Config.AI_MODEL)
        temperature: Rewrite temperature (default: Config.AI_TEMPERATURE)
    """

    def __init__(
        self,
        llm: Optional[Any] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ):
        self.model = model or Config.AI_MODEL
        self.temperature = Config.AI_TEMPERATURE if temperature is None else temperature
        self._llm = llm
        self._llms: Dict[float, Any] = {}

    def _get_llm(self, temperature: float):
        if self._llm is not None:
            return self._llm
        if temperature not in self._llms:
            self._llms[temperature] = ChatOpenAI(
                model=self.model,
                temperature=temperature,
                api_key=Config.OPENAI_API_KEY,
            )
            logger.info(f"ChatOpenAI initialized: {self.model} (temperature={temperature})")
        return self._llms[temperature]

    @retry(stop=stop_after_attempt(2), wait=wait_exponential(multiplier=1, min=2, max=10), reraise=True)
    def _invoke(self, system: str, user: str, temperature: float) -> str:
        messages = [SystemMessage(content=system), HumanMessage(content=user)]
        response = self._get_llm(temperature).invoke(messages)
        return (response.content or "").strip()

    def _run(self, system: str, user: str, temperature: float, operation: str) -> str:
        try:
            return self._invoke(system, user, temperature)
        except Exception as e:
            logger.error(f"{operation} failed: {type(e).__name__}: {e}")
            raise AiRewriteError() from e

    def _draft(self, system: str, user: str, temperature: float, operation: str, fallback_text: Optional[str]) -> str:
        """Model draft, or ``fallback_text`` when the model fails or answers empty."""
        if fallback_text is None:
            return self._run(system, user, temperature, operation)
        try:
            text = self._invoke(system, user, temperature)
        except Exception as e:
            logger.warning(f"{operation} failed, using local template: {type(e).__name__}: {e}")
            return fallback_text
        return text or fallback_text

    def rewrite(
        self,
        mode: str,
        text: str,
        tone: Optional[str] = None,
        profile: Optional[StyleProfile] = None,
        company_context: Optional[str] = None,
    ) -> str:
        """
        Rewrite a selection.

        Raises:
            ValidationError: Empty input or unknown mode
            AiRewriteError: The model call failed after retries
        """
        try:
            ai_mode = AiMode(mode)
        except ValueError:
            raise ValidationError(f"지원하지 않는 AI 작업입니다: {mode}") from None

        source = (text or "").strip()
        if not source:
            raise ValidationError(EMPTY_INPUT_MESSAGE)

        system = build_system_prompt(profile)
        user = build_user_prompt(ai_mode, source, tone=tone, company_context=company_context)
        logger.info(f"Running {ai_mode.value} on {len(source)} chars")
        return self._run(system, user, self.temperature, ai_mode.value)

    def draft_resume(
        self,
        profile: Dict[str, Any],
        projects: Optional[List[Dict[str, Any]]] = None,
        fallback: bool = False,
    ) -> str:
        """
        Full resume body draft from an onboarding profile and up to five projects.

        With ``fallback`` a failed or empty model answer yields the local
        template instead of raising AiRewriteError.
        """
        payload = {
            "task": "이력서 본문 초안 작성 (텍스트, 마크다운 허용)",
            "profile": {
                **{key: profile.get(key) for key in PROFILE_KEYS},
                "interests": ", ".join(to_list(profile.get("interests"))),
                "skills": ", ".join(to_list(profile.get("skills"))),
            },
            "projects": [
                {
                    "name": p.get("name"),
                    "role": p.get("role"),
                    "period": " ~ ".join(x for x in (p.get("start"), p.get("end")) if x),
                    "problem": p.get("problem"),
                    "action": p.get("action"),
                    "result": p.get("result"),
                    "tech_stack": ", ".join(to_list(p.get("tech_stack"))),
                }
                for p in (projects or [])[:5]
            ],
            "format": RESUME_FORMAT,
        }
        user = json.dumps(payload, ensure_ascii=False)
        local = fallback_resume(profile, projects) if fallback else None
        return self._draft(RESUME_SYSTEM_PROMPT, user, RESUME_TEMPERATURE, "draft_resume", local)

    def draft_cover_letter(
        self,
        profile: Dict[str, Any],
        company: Optional[str] = None,
        role: Optional[str] = None,
        fallback: bool = False,
    ) -> str:
        """Cover letter draft, targeted when company/role are given."""
        payload = {
            "task": "자기소개서 초안 작성",
            "profile": {
                **{key: profile.get(key) for key in PROFILE_KEYS if key not in ("email", "phone")},
                "interests": ", ".join(to_list(profile.get("interests"))),
                "skills": ", ".join(to_list(profile.get("skills"))),
            },
            "target": {"company": company, "role": role},
            "format": COVER_LETTER_FORMAT,
        }
        user = json.dumps(payload, ensure_ascii=False)
        local = fallback_cover_letter(profile) if fallback else None
        return self._draft(COVER_LETTER_SYSTEM_PROMPT, user, COVER_LETTER_TEMPERATURE, "draft_cover_letter", local)
