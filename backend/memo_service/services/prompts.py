"""Prompt templates for memo generation and the answer quality checks.

Contains system and user prompts for:
1. Research steps - market context and competitor research, best effort
2. Section generation - one call per memo section, in SECTION_ORDER
3. Investment Thesis - synthesis over all answers and prior sections
4. VC Quick Take - short verdict with readiness level
5. Consistency check and completeness scoring over questionnaire answers
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from memo_service.models.company import Answer, Company, QualityCriteria
from memo_service.services.content_sanitizer import to_safe_string, to_string_list

logger = logging.getLogger(__name__)


# ==============================================================================
# Section grouping
# ==============================================================================

SECTION_ORDER = [
    "Problem",
    "Solution",
    "Market",
    "Competition",
    "Team",
    "Business Model",
    "Traction",
    "Vision",
]

INVESTMENT_THESIS = "Investment Thesis"

# Exact question keys, checked before the prefix map
QUESTION_KEY_SECTIONS = {
    "problem_core": "Problem",
    "solution_core": "Solution",
    "target_customer": "Market",
    "competitive_moat": "Competition",
    "team_story": "Team",
    "business_model": "Business Model",
    "traction_proof": "Traction",
    "vision_ask": "Vision",
}

# First segment of a question key (before "_")
QUESTION_PREFIX_SECTIONS = {
    "problem": "Problem",
    "solution": "Solution",
    "market": "Market",
    "target": "Market",
    "competition": "Competition",
    "competitors": "Competition",
    "competitive": "Competition",
    "team": "Team",
    "founder": "Team",
    "business": "Business Model",
    "revenue": "Business Model",
    "pricing": "Business Model",
    "unit": "Business Model",
    "average": "Business Model",
    "traction": "Traction",
    "retention": "Traction",
    "current": "Traction",
    "key": "Traction",
    "vision": "Vision",
}

# Rendered through the financial context instead of as a raw answer
UNIT_ECONOMICS_JSON_KEY = "unit_economics_json"


def section_for_question(question_key: str) -> str:
    """Map a questionnaire key to the memo section it feeds."""
    if question_key in QUESTION_KEY_SECTIONS:
        return QUESTION_KEY_SECTIONS[question_key]
    prefix = question_key.split("_", 1)[0]
    return QUESTION_PREFIX_SECTIONS.get(prefix.lower(), prefix[:1].upper() + prefix[1:])


def group_answers_by_section(answers: list[Answer]) -> dict[str, dict[str, str]]:
    """Group answers as {section: {question_key: answer}}."""
    grouped: dict[str, dict[str, str]] = {}
    for answer in answers:
        if answer.question_key == UNIT_ECONOMICS_JSON_KEY or not answer.answer.strip():
            continue
        section = section_for_question(answer.question_key)
        grouped.setdefault(section, {})[answer.question_key] = answer.answer
    return grouped


# (metric key, label, unit prefix, unit suffix)
_FINANCIAL_FIELDS = [
    ("mrr", "MRR", "€", ""),
    ("arr", "ARR", "€", ""),
    ("acv", "ACV (Avg Contract Value)", "€", ""),
    ("totalCustomers", "Total Customers", "", ""),
    ("cac", "CAC", "€", ""),
    ("ltv", "LTV", "€", ""),
    ("ltvCacRatio", "LTV:CAC Ratio", "", ""),
    ("paybackPeriod", "Payback Period", "", " months"),
    ("monthlyChurn", "Monthly Churn", "", "%"),
    ("grossMargin", "Gross Margin", "", "%"),
    ("monthlyBurn", "Monthly Burn", "€", ""),
    ("runway", "Runway", "", " months"),
    ("monthlyGrowth", "Monthly Growth", "", "%"),
]


def build_financial_context(answers: list[Answer]) -> str:
    """Summarize the company's unit economics for section prompts.

    Prefers the structured ``unit_economics_json`` answer and falls back to
    the free-text unit economics, pricing and revenue answers.
    """
    by_key = {a.question_key: a.answer for a in answers}

    metrics: Optional[dict[str, Any]] = None
    raw_json = by_key.get(UNIT_ECONOMICS_JSON_KEY)
    if raw_json:
        try:
            parsed = json.loads(raw_json)
            if isinstance(parsed, dict):
                metrics = parsed
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse {UNIT_ECONOMICS_JSON_KEY}: {e}")

    unit_economics = by_key.get("unit_economics", "")
    pricing = by_key.get("pricing_model", "")
    revenue = by_key.get("revenue_model", "")

    if not (metrics or unit_economics or pricing or revenue):
        return ""

    lines = ["--- COMPANY FINANCIAL DATA (use for calculations) ---"]
    if metrics:
        for key, label, prefix, suffix in _FINANCIAL_FIELDS:
            value = metrics.get(key)
            if value not in (None, "", 0):
                lines.append(f"{label}: {prefix}{value}{suffix}")
    elif unit_economics:
        lines.append(f"Unit Economics: {unit_economics}")
    if pricing:
        lines.append(f"Pricing Model: {pricing}")
    if revenue:
        lines.append(f"Revenue Model: {revenue}")
    lines.append("--- END FINANCIAL DATA ---")
    return "\n".join(lines)


# ==============================================================================
# Research steps (market context, competitors)
# ==============================================================================

RESEARCH_SYSTEM_PROMPT = (
    "You are an expert VC analyst with deep knowledge of startup ecosystems, competitive landscapes "
    "and market dynamics across industries. You give honest, critical assessments. "
    "Return only valid JSON, no markdown formatting."
)


def _joined_answers(answers: list[Answer], prefix: str, key: str) -> str:
    """Non-blank answers whose key is ``key`` or starts with ``prefix``."""
    return "\n".join(
        a.answer.strip()
        for a in answers
        if a.answer.strip() and (a.question_key == key or a.question_key.startswith(prefix))
    )


def _first_answer(answers: list[Answer], keys: tuple[str, ...]) -> str:
    for answer in answers:
        if answer.question_key in keys and answer.answer.strip():
            return answer.answer.strip()
    return ""


def build_market_context_user_prompt(company: Company, answers: list[Answer]) -> str:
    """Build user prompt for market-context extraction."""
    return f"""Deduce the market this startup operates in from the founder's answers.

Company: {company.name} ({company.stage or 'early'} stage, {company.category or 'startup'})
Problem: {_joined_answers(answers, 'problem_', 'problem_core') or 'Not provided'}
Solution: {_joined_answers(answers, 'solution_', 'solution_core') or 'Not provided'}
Ideal customer: {_first_answer(answers, ('target_customer', 'market_icp')) or 'Not provided'}
Competition: {_joined_answers(answers, 'competition_', 'competitive_moat') or 'Not provided'}
Traction: {_joined_answers(answers, 'traction_', 'traction_proof') or 'Not provided'}

Return ONLY valid JSON with this structure:
{{
  "marketVertical": "primary market vertical",
  "marketSubSegment": "specific sub-segment",
  "estimatedTAM": "estimated total addressable market with a one-line basis",
  "buyerPersona": "who signs the contract",
  "competitorWeaknesses": "where incumbents fall short",
  "industryBenchmarks": {{
    "typicalCAC": "...",
    "typicalLTV": "...",
    "typicalGrowthRate": "...",
    "typicalMargins": "..."
  }},
  "marketDrivers": "forces growing or shrinking this market",
  "confidence": "high|medium|low"
}}"""


def format_market_context(context: Optional[dict[str, Any]]) -> str:
    """Render extracted market context for section prompts ("" when absent)."""
    if not context:
        return ""

    def field(value: Any, name: str) -> str:
        return to_safe_string(value, f"marketContext.{name}") or "N/A"

    benchmarks = context.get("industryBenchmarks")
    if not isinstance(benchmarks, dict):
        benchmarks = {}
    return "\n".join([
        "--- AI-DEDUCED MARKET INTELLIGENCE ---",
        f"Market Vertical: {field(context.get('marketVertical'), 'marketVertical')}",
        f"Market Sub-Segment: {field(context.get('marketSubSegment'), 'marketSubSegment')}",
        f"Estimated TAM: {field(context.get('estimatedTAM'), 'estimatedTAM')}",
        f"Buyer Persona: {field(context.get('buyerPersona'), 'buyerPersona')}",
        f"Competitor Weaknesses: {field(context.get('competitorWeaknesses'), 'competitorWeaknesses')}",
        "Industry Benchmarks:",
        f"  - Typical CAC: {field(benchmarks.get('typicalCAC'), 'typicalCAC')}",
        f"  - Typical LTV: {field(benchmarks.get('typicalLTV'), 'typicalLTV')}",
        f"  - Growth Rate: {field(benchmarks.get('typicalGrowthRate'), 'typicalGrowthRate')}",
        f"  - Margins: {field(benchmarks.get('typicalMargins'), 'typicalMargins')}",
        f"Market Drivers: {field(context.get('marketDrivers'), 'marketDrivers')}",
        f"Confidence Level: {field(context.get('confidence'), 'confidence')}",
        "",
        "This market intelligence is AI-estimated from the company's problem, solution and ICP. "
        'Use it to enrich the analysis and attribute it as "AI-estimated market data" when relevant.',
        "--- END MARKET INTELLIGENCE ---",
    ])


def build_competitor_research_user_prompt(
    company: Company,
    answers: list[Answer],
    market_context: Optional[dict[str, Any]] = None,
) -> str:
    """Build user prompt for competitor research."""
    industry = company.category or (
        to_safe_string((market_context or {}).get("marketVertical"), "marketContext.marketVertical")
    ) or "Technology"
    return f"""Research the competitive landscape for this startup. Be critical and honest: if the market is crowded or the positioning is weak, say so.

Company: {company.name}
Description: {company.description or 'Not provided'}
Problem: {_joined_answers(answers, 'problem_', 'problem_core') or 'Not provided'}
Solution: {_joined_answers(answers, 'solution_', 'solution_core') or 'Not provided'}
Industry: {industry}
Competitors named by the founder: {_joined_answers(answers, 'competition_', 'competitive_moat') or 'None specified'}

Use real company names from your knowledge of the market. Estimate or write "unknown" where figures are not known.

Return ONLY valid JSON with this structure:
{{
  "marketType": "Red Ocean|Blue Ocean|Emerging",
  "marketTypeRationale": "why",
  "incumbents": [{{"name": "", "description": "", "estimatedSize": "", "strengths": [], "weaknesses": [], "threatLevel": "High|Medium|Low"}}],
  "directCompetitors": [{{"name": "", "description": "", "funding": "", "strengths": [], "weaknesses": [], "differentiation": "", "threatLevel": "High|Medium|Low"}}],
  "adjacentSolutions": [{{"name": "", "description": "", "howTheyCompete": ""}}],
  "criticalAssessment": {{
    "founderClaimsValid": true,
    "reasoning": "",
    "majorConcerns": [],
    "potentialMoats": [],
    "recommendedBeachhead": "",
    "overallCompetitivePosition": "Strong|Moderate|Weak|Unclear",
    "honestVerdict": "2-3 sentence verdict"
  }}
}}"""


def _competitor_lines(value: Any, path: str, detail_keys: tuple[str, ...]) -> list[str]:
    lines = []
    for i, item in enumerate(value if isinstance(value, list) else []):
        if not isinstance(item, dict):
            continue
        name = to_safe_string(item.get("name"), f"{path}[{i}].name")
        if not name:
            continue
        lines.append(f"- {name}")
        for key in detail_keys:
            raw = item.get(key)
            text = (
                ", ".join(to_string_list(raw, f"{path}[{i}].{key}"))
                if isinstance(raw, list)
                else to_safe_string(raw, f"{path}[{i}].{key}")
            )
            if text:
                lines.append(f"  - {key}: {text}")
    return lines or ["None identified"]


def format_competitor_research(research: Optional[dict[str, Any]]) -> str:
    """Render competitor research for the Competition prompt ("" when absent)."""
    if not research:
        return ""

    assessment = research.get("criticalAssessment")
    if not isinstance(assessment, dict):
        assessment = {}
    claims_valid = assessment.get("founderClaimsValid")
    claims = "YES" if claims_valid is True else "NO" if claims_valid is False else "UNCLEAR"

    def text(value: Any, name: str) -> str:
        return to_safe_string(value, f"competitorResearch.{name}") or "N/A"

    def joined(value: Any, name: str) -> str:
        return "; ".join(to_string_list(value, f"competitorResearch.{name}")) or "None identified"

    return "\n".join([
        "--- AI-RESEARCHED COMPETITOR INTELLIGENCE ---",
        "Use these real company names and insights in the analysis.",
        f"Market Classification: {text(research.get('marketType'), 'marketType')}",
        f"Rationale: {text(research.get('marketTypeRationale'), 'marketTypeRationale')}",
        "",
        "INCUMBENTS:",
        *_competitor_lines(
            research.get("incumbents"), "incumbents",
            ("description", "estimatedSize", "strengths", "weaknesses", "threatLevel"),
        ),
        "",
        "DIRECT COMPETITORS:",
        *_competitor_lines(
            research.get("directCompetitors"), "directCompetitors",
            ("description", "funding", "strengths", "weaknesses", "differentiation", "threatLevel"),
        ),
        "",
        "ADJACENT SOLUTIONS:",
        *_competitor_lines(
            research.get("adjacentSolutions"), "adjacentSolutions", ("description", "howTheyCompete"),
        ),
        "",
        "CRITICAL ASSESSMENT:",
        f"- Founder Claims Valid: {claims}",
        f"- Reasoning: {text(assessment.get('reasoning'), 'reasoning')}",
        f"- Major Concerns: {joined(assessment.get('majorConcerns'), 'majorConcerns')}",
        f"- Potential Moats: {joined(assessment.get('potentialMoats'), 'potentialMoats')}",
        f"- Recommended Beachhead: {text(assessment.get('recommendedBeachhead'), 'recommendedBeachhead')}",
        f"- Overall Competitive Position: "
        f"{text(assessment.get('overallCompetitivePosition'), 'overallCompetitivePosition')}",
        f"- Honest Verdict: {text(assessment.get('honestVerdict'), 'honestVerdict')}",
        "",
        "If the assessment shows weak positioning, say so clearly. If the founder's claims do not hold, explain why.",
        "--- END COMPETITOR INTELLIGENCE ---",
    ])


# ==============================================================================
# Section Prompts
# ==============================================================================

SECTION_SYSTEM_PROMPT = """You are a senior VC investment analyst writing one section of an internal due diligence memo.

Assess the company objectively and teach the founder how an investor reads their answers.

Rules:
- Use only the founder's information and clearly labelled estimates ([AI-ESTIMATED])
- Distinguish VERIFIED, CLAIMED, INFERRED and MISSING data
- Be specific and concrete; no generic praise
- Return ONLY valid JSON, no markdown, no code fences"""

SECTION_JSON_SHAPE = """{
  "narrative": {
    "paragraphs": [{"text": "paragraph text", "emphasis": "high|medium|normal"}],
    "highlights": [{"metric": "90%", "label": "what the metric means"}],
    "keyPoints": ["key takeaway 1", "key takeaway 2"]
  },
  "vcReflection": {
    "analysis": "how an investor reads this section",
    "questions": [
      {"question": "investor question", "vcRationale": "why investors care", "whatToPrepare": "evidence to bring"}
    ],
    "benchmarking": "comparable companies and market history",
    "conclusion": "one-paragraph synthesis"
  }
}"""

SECTION_GUIDANCE = {
    "Problem": (
        "Open by classifying the problem as Hair on Fire, Hard Fact or Future Vision and say why. "
        "Cover today's workflow, what is broken, the quantified pain (show your math), who hurts most, and why now."
    ),
    "Solution": (
        "Open by naming the primary competitive power the solution builds (scale economies, network effects, "
        "counter-positioning, switching costs, branding, cornered resource, process power). "
        "Explain it in plain English, why this approach, the ROI, and the proof it works."
    ),
    "Market": (
        "Define the ideal customer profile precisely and include a bottoms-up calculation: "
        "customers needed for €10M, €50M and €100M ARR at the current ACV, and the implied market penetration."
    ),
    "Competition": (
        "Name incumbents, direct competitors and adjacent solutions. "
        "Judge honestly whether the founder's differentiation claims hold and what the defensible moat is."
    ),
    "Team": (
        "Assess founder-market fit, relevant track record, gaps in the team, and the key hires needed next."
    ),
    "Business Model": (
        "Assess pricing, unit economics (CAC, LTV, payback, gross margin) and whether the model reaches VC scale."
    ),
    "Traction": (
        "Separate vanity metrics from evidence of product-market fit: revenue, retention, growth rate, pipeline quality."
    ),
    "Vision": (
        "Assess the long-term vision, the size of the outcome if it works, and what this round must prove."
    ),
}


def format_answers(answers: dict[str, str]) -> str:
    """Render {question_key: answer} as labelled blocks."""
    return "\n\n".join(f"[{key}]\n{value}" for key, value in answers.items())


def format_criteria(criteria: list[QualityCriteria]) -> str:
    """Render the expected data elements for a section."""
    if not criteria:
        return ""
    required = sorted({e for c in criteria for e in c.required_elements})
    nice = sorted({e for c in criteria for e in c.nice_to_have})
    context = " ".join(c.vc_context for c in criteria if c.vc_context)
    return (
        "--- EXPECTED DATA ELEMENTS FOR THIS SECTION ---\n"
        f"Required Elements: {', '.join(required) or 'N/A'}\n"
        f"Nice-to-Have Elements: {', '.join(nice) or 'N/A'}\n"
        f"VC Context: {context or 'N/A'}\n"
        "Flag explicitly if any required element is missing from the founder's answers.\n"
        "--- END EXPECTED DATA ---"
    )


def _company_line(company: Company) -> str:
    return f"{company.name} is a {company.stage or 'early'} stage {company.category or 'startup'}."


def build_section_user_prompt(
    section_name: str,
    company: Company,
    answers: dict[str, str],
    financial_context: str = "",
    criteria: Optional[list[QualityCriteria]] = None,
    custom_prompt: Optional[str] = None,
    market_context: str = "",
    competitor_context: str = "",
) -> str:
    """Build user prompt for one memo section.

    Args:
        section_name: Memo section title.
        company: Company being assessed.
        answers: Founder answers grouped under this section.
        financial_context: Output of build_financial_context (may be empty).
        criteria: Quality criteria rows for questions in this section.
        custom_prompt: Override instructions from memo_prompts, if any.
        market_context: Output of format_market_context (may be empty).
        competitor_context: Output of format_competitor_research (may be empty).

    Returns:
        Formatted user prompt string.
    """
    instructions = custom_prompt or (
        f'Write the "{section_name}" section of the memo.\n\n'
        f"{SECTION_GUIDANCE.get(section_name, 'Assess this area of the business as an investor would.')}"
    )

    parts = [instructions, "---", f"Context: {_company_line(company)}"]
    if market_context:
        parts.append(market_context)
    if financial_context:
        parts.append(financial_context)
    if competitor_context:
        parts.append(competitor_context)
    criteria_text = format_criteria(criteria or [])
    if criteria_text:
        parts.append(criteria_text)
    parts.append(f"Raw information to analyze:\n{format_answers(answers)}")
    parts.append(f"Return ONLY valid JSON with this structure:\n{SECTION_JSON_SHAPE}")
    return "\n\n".join(parts)


# ==============================================================================
# Investment Thesis
# ==============================================================================

THESIS_GUIDANCE = """Synthesize everything above into the Investment Thesis, the final assessment section.

Cover: the core opportunity, proof of execution, what makes it scale, the biggest risks, what must be true for this to return the fund, and a recommendation."""


def build_thesis_user_prompt(
    company: Company,
    all_answers: dict[str, dict[str, str]],
    prior_sections: dict[str, dict[str, Any]],
    custom_prompt: Optional[str] = None,
) -> str:
    """Build user prompt for the Investment Thesis."""
    answers_text = "\n\n".join(
        f"## {section}\n{format_answers(answers)}" for section, answers in all_answers.items()
    )
    sections_text = "\n\n".join(
        f"### {title} ###\n{json.dumps(content, ensure_ascii=False)[:1500]}"
        for title, content in prior_sections.items()
    )
    return "\n\n".join([
        custom_prompt or THESIS_GUIDANCE,
        "---",
        f"Context: {_company_line(company)}",
        f"Company Description: {company.description or 'N/A'}",
        f"All Questionnaire Responses:\n{answers_text}",
        f"Previously Generated Memo Sections:\n{sections_text}",
        f"Return ONLY valid JSON with this structure:\n{SECTION_JSON_SHAPE}",
    ])


# ==============================================================================
# VC Quick Take
# ==============================================================================

QUICK_TAKE_SYSTEM_PROMPT = (
    "You are a direct, no-nonsense VC partner. Be provocative and specific. "
    "Lead with concerns, not enthusiasm. Return only valid JSON."
)


def build_quick_take_user_prompt(company: Company, sections: dict[str, dict[str, Any]]) -> str:
    """Build user prompt for the VC Quick Take."""
    sections_text = "\n\n".join(
        f"### {title} ###\n{json.dumps(content, ensure_ascii=False)[:800]}"
        for title, content in sections.items()
    )
    return f"""Give a rapid 30-second assessment of how investors will perceive this company, based on these memo sections:

{sections_text}

Company: {company.name} ({company.stage or 'early'} stage, {company.category or 'startup'})

Be concrete about blind spots and lead with the hard truth the founder needs to hear.

Return ONLY valid JSON with this exact structure:
{{
  "verdict": "one specific sentence capturing the core investment question",
  "concerns": ["specific concern 1", "specific concern 2", "specific concern 3"],
  "strengths": ["specific strength 1", "specific strength 2", "specific strength 3"],
  "readinessLevel": "LOW or MEDIUM or HIGH",
  "readinessRationale": "one sentence explaining the readiness level"
}}"""


# ==============================================================================
# Quality checks
# ==============================================================================

CONSISTENCY_SYSTEM_PROMPT = """You review a startup founder's questionnaire answers for contradictions.

Flag only real inconsistencies between two answers (numbers that do not match, conflicting claims about customers, stage, pricing or team). Do not flag style or missing information.

Return ONLY valid JSON:
{
  "flags": [
    {"severity": "warning|error", "field1": "question_key", "field2": "question_key", "description": "what conflicts", "suggestion": "how to fix it"}
  ]
}"""


def build_consistency_user_prompt(
    responses: dict[str, str],
    current_question_key: Optional[str] = None,
) -> str:
    """Build user prompt for the consistency check."""
    focus = (
        f"Pay particular attention to answers that conflict with [{current_question_key}].\n\n"
        if current_question_key
        else ""
    )
    return f"{focus}Answers:\n\n{format_answers(responses)}"


COMPLETENESS_SYSTEM_PROMPT = """You score how completely a founder's answer covers what investors expect.

Return ONLY valid JSON:
{
  "score": 0-100,
  "found": ["required elements present"],
  "missing": ["required elements absent"],
  "niceToHaveMissing": ["optional elements absent"],
  "suggestions": [
    {"element": "missing element", "prompt": "question that helps the founder add it", "example": "short example sentence"}
  ]
}
Give at most 3 suggestions, most important first."""


def build_completeness_user_prompt(answer: str, criteria: QualityCriteria) -> str:
    """Build user prompt for completeness scoring."""
    example = f"\nExample of a strong answer:\n{criteria.example_good_answer}\n" if criteria.example_good_answer else ""
    return f"""Question: {criteria.question_key}

Required elements: {', '.join(criteria.required_elements) or 'N/A'}
Nice-to-have elements: {', '.join(criteria.nice_to_have) or 'N/A'}
Why investors care: {criteria.vc_context or 'N/A'}
{example}
Founder's answer:
{answer}"""
