"""AI deal evaluation for SPAC acquisition targets.

The model is asked for five category scores on a 1-10 scale plus narrative
fields. Whatever comes back is normalised before use: category scores are
clamped, missing pieces receive defaults and the overall score falls back to
the weighted category sum.
"""
from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from spac_os.config import get_settings
from spac_os.log import get_logger
from spac_os.services.analysis_cache import AnalysisCache
from spac_os.services.common import utcnow
from spac_os.services.llm.orchestrator import LLMOrchestrator
from spac_os.services.llm.types import LLMRequest, LLMStage
from spac_os.services.score_history import ScoreInput

logger = get_logger(__name__)

CATEGORIES = ("management", "market", "financial", "operational", "transaction")

DEFAULT_WEIGHTS: Dict[str, float] = {
    "management": 0.25,
    "market": 0.25,
    "financial": 0.25,
    "operational": 0.15,
    "transaction": 0.10,
}

RECOMMENDATIONS = ("proceed", "negotiate", "pass", "more_diligence")

DEFAULT_CATEGORY_SCORE = 5.0
DEFAULT_CONFIDENCE = 0.7

SYSTEM_PROMPT = """You are a SPAC deal evaluation expert with extensive experience in M&A, private equity, and de-SPAC transactions.

Evaluate target companies across five dimensions:
- Management quality and track record
- Market opportunity and competitive position
- Financial health and growth trajectory
- Operational capabilities and scalability
- Transaction risk and deal structure

Provide objective, data-driven assessments, compare targets to successful de-SPAC benchmarks and identify key risks and opportunities.
Score each dimension on a 1-10 scale with clear justification."""

SCORE_PROMPT = """Evaluate the following target company for a SPAC acquisition:

**Target Information:**
{target_info}
{focus}
Return ONLY JSON in this shape:
{{
  "overallScore": 0-100,
  "categoryScores": {{
    "management": {{"score": 1-10, "justification": "...", "strengths": ["..."], "weaknesses": ["..."], "confidence": 0.0-1.0}},
    "market": {{"score": 1-10, "justification": "..."}},
    "financial": {{"score": 1-10, "justification": "..."}},
    "operational": {{"score": 1-10, "justification": "..."}},
    "transaction": {{"score": 1-10, "justification": "..."}}
  }},
  "investmentThesis": "...",
  "keyStrengths": ["..."],
  "keyRisks": ["..."],
  "opportunities": ["..."],
  "recommendation": "proceed|negotiate|pass|more_diligence",
  "recommendationRationale": "...",
  "nextSteps": ["..."],
  "confidenceLevel": 0.0-1.0
}}"""

THESIS_PROMPT = """Generate a comprehensive investment thesis for the following SPAC target:

{target_info}{score_context}

Return ONLY JSON in this shape:
{{
  "thesis": "Detailed 2-3 paragraph investment thesis",
  "summary": "One-line summary",
  "keyArguments": ["..."],
  "potentialReturns": "Expected return analysis",
  "timeHorizon": "Recommended investment period",
  "exitStrategies": ["..."]
}}"""


class DealScoreParseError(ValueError):
    """The model answered, but not with a usable JSON object."""


@dataclass
class ManagementMember:
    name: str
    title: str
    background: Optional[str] = None


@dataclass
class TargetInfo:
    name: str
    industry: str
    description: str
    sector: Optional[str] = None
    founded: Optional[int] = None
    headquarters: Optional[str] = None
    employees: Optional[int] = None
    revenue: Optional[float] = None
    revenue_growth: Optional[float] = None
    ebitda: Optional[float] = None
    ebitda_margin: Optional[float] = None
    gross_margin: Optional[float] = None
    enterprise_value: Optional[float] = None
    ev_revenue: Optional[float] = None
    ev_ebitda: Optional[float] = None
    tam: Optional[float] = None
    sam: Optional[float] = None
    market_growth: Optional[float] = None
    management_team: List[ManagementMember] = field(default_factory=list)
    competitors: List[str] = field(default_factory=list)
    investment_highlights: List[str] = field(default_factory=list)
    known_risks: List[str] = field(default_factory=list)
    additional_context: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> "TargetInfo":
        """Build from a target row or dict; unknown attributes are ignored."""
        def pick(name: str, default: Any = None) -> Any:
            if isinstance(record, Mapping):
                return record.get(name, default)
            return getattr(record, name, default)

        team = [
            member if isinstance(member, ManagementMember) else ManagementMember(**member)
            for member in (pick("management_team") or [])
        ]
        return cls(
            name=pick("name", ""),
            industry=pick("industry") or "Unknown",
            description=pick("description") or "",
            sector=pick("sector"),
            founded=pick("founded"),
            headquarters=pick("headquarters"),
            employees=pick("employees"),
            revenue=pick("revenue"),
            revenue_growth=pick("revenue_growth"),
            ebitda=pick("ebitda"),
            ebitda_margin=pick("ebitda_margin"),
            gross_margin=pick("gross_margin"),
            enterprise_value=pick("enterprise_value"),
            ev_revenue=pick("ev_revenue"),
            ev_ebitda=pick("ev_ebitda"),
            tam=pick("tam"),
            sam=pick("sam"),
            market_growth=pick("market_growth"),
            management_team=team,
            competitors=list(pick("competitors") or []),
            investment_highlights=list(pick("investment_highlights") or []),
            known_risks=list(pick("known_risks") or []),
            additional_context=pick("additional_context"),
        )


@dataclass
class CategoryScore:
    score: float
    justification: str = ""
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE


@dataclass
class DealScore:
    overall_score: int
    grade: str
    category_scores: Dict[str, CategoryScore]
    investment_thesis: str
    key_strengths: List[str]
    key_risks: List[str]
    opportunities: List[str]
    recommendation: str
    recommendation_rationale: str
    next_steps: List[str]
    confidence_level: float
    scored_at: datetime
    provider: Optional[str] = None
    model: Optional[str] = None

    def to_score_input(self) -> ScoreInput:
        return ScoreInput(
            overall_score=self.overall_score,
            management_score=self.category_scores["management"].score,
            market_score=self.category_scores["market"].score,
            financial_score=self.category_scores["financial"].score,
            operational_score=self.category_scores["operational"].score,
            transaction_score=self.category_scores["transaction"].score,
            thesis=self.investment_thesis or None,
        )

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["scored_at"] = self.scored_at.isoformat()
        return payload


def _millions(value: float) -> str:
    return f"${value / 1e6:.1f}M"


def format_target_info(target: TargetInfo) -> str:
    lines: List[str] = [
        f"**Company:** {target.name}",
        f"**Industry:** {target.industry}" + (f" / {target.sector}" if target.sector else ""),
        f"**Description:** {target.description}",
    ]
    if target.founded:
        lines.append(f"**Founded:** {target.founded}")
    if target.headquarters:
        lines.append(f"**Headquarters:** {target.headquarters}")
    if target.employees:
        lines.append(f"**Employees:** {target.employees:,}")

    if target.revenue or target.ebitda:
        lines.append("\n**Financial Metrics:**")
        if target.revenue:
            lines.append(f"- Revenue: {_millions(target.revenue)}")
        if target.revenue_growth:
            lines.append(f"- Revenue Growth: {target.revenue_growth}%")
        if target.ebitda:
            lines.append(f"- EBITDA: {_millions(target.ebitda)}")
        if target.ebitda_margin:
            lines.append(f"- EBITDA Margin: {target.ebitda_margin}%")
        if target.gross_margin:
            lines.append(f"- Gross Margin: {target.gross_margin}%")

    if target.enterprise_value or target.ev_revenue:
        lines.append("\n**Valuation:**")
        if target.enterprise_value:
            lines.append(f"- Enterprise Value: {_millions(target.enterprise_value)}")
        if target.ev_revenue:
            lines.append(f"- EV/Revenue: {target.ev_revenue:.1f}x")
        if target.ev_ebitda:
            lines.append(f"- EV/EBITDA: {target.ev_ebitda:.1f}x")

    if target.tam or target.market_growth:
        lines.append("\n**Market:**")
        if target.tam:
            lines.append(f"- TAM: ${target.tam / 1e9:.1f}B")
        if target.sam:
            lines.append(f"- SAM: ${target.sam / 1e9:.1f}B")
        if target.market_growth:
            lines.append(f"- Market Growth: {target.market_growth}%")

    if target.management_team:
        lines.append("\n**Management Team:**")
        for member in target.management_team[:5]:
            suffix = f": {member.background}" if member.background else ""
            lines.append(f"- {member.name}, {member.title}{suffix}")

    if target.competitors:
        lines.append(f"\n**Key Competitors:** {', '.join(target.competitors)}")
    if target.investment_highlights:
        lines.append("\n**Investment Highlights:**")
        lines.extend(f"- {item}" for item in target.investment_highlights)
    if target.known_risks:
        lines.append("\n**Known Risks:**")
        lines.extend(f"- {item}" for item in target.known_risks)
    if target.additional_context:
        lines.append(f"\n**Additional Context:** {target.additional_context}")
    return "\n".join(lines)


def parse_json_object(text: str) -> Dict[str, Any]:
    """Pull the first JSON object out of a model answer, fenced or not."""
    cleaned = str(text or "").strip()
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", cleaned)
    if fenced:
        cleaned = fenced.group(1)
    start_idx = cleaned.find("{")
    end_idx = cleaned.rfind("}") + 1
    if start_idx == -1 or end_idx <= start_idx:
        raise DealScoreParseError("No JSON object in model response")
    try:
        payload = json.loads(cleaned[start_idx:end_idx])
    except json.JSONDecodeError as exc:
        raise DealScoreParseError(f"Invalid JSON in model response: {exc}") from exc
    if not isinstance(payload, dict):
        raise DealScoreParseError("Model response JSON is not an object")
    return payload


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def normalize_category_score(raw: Any) -> CategoryScore:
    data = raw if isinstance(raw, Mapping) else {}
    # A zero or missing score means the model did not rate the category.
    score = _number(data.get("score")) or DEFAULT_CATEGORY_SCORE
    confidence = _number(data.get("confidence")) or DEFAULT_CONFIDENCE
    return CategoryScore(
        score=_clamp(score, 1.0, 10.0),
        justification=str(data.get("justification") or ""),
        strengths=_string_list(data.get("strengths")),
        weaknesses=_string_list(data.get("weaknesses")),
        confidence=_clamp(confidence, 0.0, 1.0),
    )


def resolve_weights(weights: Optional[Mapping[str, float]] = None) -> Dict[str, float]:
    resolved = dict(DEFAULT_WEIGHTS)
    for key, value in (weights or {}).items():
        if key not in DEFAULT_WEIGHTS:
            raise ValueError(f"Unknown scoring category: {key}")
        resolved[key] = float(value)
    return resolved


def weighted_overall_score(categories: Mapping[str, CategoryScore], weights: Mapping[str, float]) -> int:
    weighted = sum(categories[name].score * weights[name] for name in CATEGORIES)
    return int(round(weighted * 10))


def grade_for(score: float) -> str:
    if score >= 85:
        return "A"
    if score >= 70:
        return "B"
    if score >= 55:
        return "C"
    if score >= 40:
        return "D"
    return "F"


def normalize_recommendation(raw: Any) -> str:
    normalized = re.sub(r"[^a-z_]", "_", str(raw or "").strip().lower())
    return normalized if normalized in RECOMMENDATIONS else "more_diligence"


def normalize_deal_score(
    raw: Mapping[str, Any],
    weights: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
) -> DealScore:
    resolved = resolve_weights(weights)
    raw_categories = raw.get("categoryScores")
    raw_categories = raw_categories if isinstance(raw_categories, Mapping) else {}
    categories = {name: normalize_category_score(raw_categories.get(name)) for name in CATEGORIES}

    overall = _number(raw.get("overallScore"))
    if overall is None:
        overall_score = weighted_overall_score(categories, resolved)
    else:
        overall_score = int(round(_clamp(overall, 0.0, 100.0)))

    confidence = _number(raw.get("confidenceLevel"))
    return DealScore(
        overall_score=overall_score,
        grade=grade_for(overall_score),
        category_scores=categories,
        investment_thesis=str(raw.get("investmentThesis") or ""),
        key_strengths=_string_list(raw.get("keyStrengths")),
        key_risks=_string_list(raw.get("keyRisks")),
        opportunities=_string_list(raw.get("opportunities")),
        recommendation=normalize_recommendation(raw.get("recommendation")),
        recommendation_rationale=str(raw.get("recommendationRationale") or ""),
        next_steps=_string_list(raw.get("nextSteps")),
        confidence_level=_clamp(confidence, 0.0, 1.0) if confidence is not None else DEFAULT_CONFIDENCE,
        scored_at=now or utcnow(),
    )


def build_score_prompt(target: TargetInfo, focus_criteria: Optional[List[str]] = None) -> str:
    focus = ""
    if focus_criteria:
        focus = "\n**Focus Areas:**\n" + "\n".join(focus_criteria) + "\n"
    return SCORE_PROMPT.format(target_info=format_target_info(target), focus=focus)


def score_deal(
    target: TargetInfo,
    weights: Optional[Mapping[str, float]] = None,
    orchestrator: Optional[LLMOrchestrator] = None,
    focus_criteria: Optional[List[str]] = None,
    cache: Optional[AnalysisCache] = None,
) -> DealScore:
    """Score `target` with the configured LLM routes.

    Raises LLMOrchestrationError when every provider route fails and
    DealScoreParseError when the answer holds no JSON object.
    """
    resolved = resolve_weights(weights)
    prompt = build_score_prompt(target, focus_criteria)
    cache_key = json.dumps({"prompt": prompt, "weights": resolved}, sort_keys=True)
    if cache is not None:
        cached = cache.get_json("deal_score", cache_key)
        if isinstance(cached, dict):
            logger.info("Deal score for %s served from cache", target.name)
            return normalize_deal_score(cached, resolved)

    settings = get_settings()
    runner = orchestrator or LLMOrchestrator()
    response = runner.run_stage(
        LLMRequest(
            stage=LLMStage.deal_scoring,
            prompt=prompt,
            system=SYSTEM_PROMPT,
            timeout_seconds=settings.deal_scoring_timeout_seconds,
            expect_json=True,
            metadata={"target": target.name},
        )
    )
    raw = parse_json_object(response.text)
    if cache is not None:
        cache.set_json("deal_score", cache_key, raw, settings.analysis_cache_ttl_seconds)

    score = normalize_deal_score(raw, resolved)
    score.provider = response.provider
    score.model = response.model
    logger.info(
        "Scored %s: %s (%s) via %s:%s",
        target.name,
        score.overall_score,
        score.grade,
        response.provider,
        response.model,
    )
    return score


def generate_investment_thesis(
    target: TargetInfo,
    deal_score: Optional[DealScore] = None,
    orchestrator: Optional[LLMOrchestrator] = None,
) -> Dict[str, Any]:
    score_context = ""
    if deal_score is not None:
        score_context = (
            f"\n\nCurrent Deal Score: {deal_score.overall_score}/100 ({deal_score.grade})"
            f"\nKey Strengths: {', '.join(deal_score.key_strengths)}"
            f"\nKey Risks: {', '.join(deal_score.key_risks)}"
        )
    runner = orchestrator or LLMOrchestrator()
    response = runner.run_stage(
        LLMRequest(
            stage=LLMStage.investment_thesis,
            prompt=THESIS_PROMPT.format(target_info=format_target_info(target), score_context=score_context),
            system=SYSTEM_PROMPT,
            timeout_seconds=get_settings().deal_scoring_timeout_seconds,
            expect_json=True,
        )
    )
    raw = parse_json_object(response.text)
    return {
        "thesis": str(raw.get("thesis") or ""),
        "summary": str(raw.get("summary") or ""),
        "key_arguments": _string_list(raw.get("keyArguments")),
        "potential_returns": str(raw.get("potentialReturns") or ""),
        "time_horizon": str(raw.get("timeHorizon") or ""),
        "exit_strategies": _string_list(raw.get("exitStrategies")),
    }
