from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from survey_analytics.db.models import NON_ANSWERABLE, Survey, SurveyResponse, University
from survey_analytics.tools.stats import compute_stats


STYLE_GUIDES: Dict[str, str] = {
    "ko": """
[Writing Persona & Style Guide]
You are a Senior Data Analyst at a top-tier satisfaction research agency with 10+ years of experience.
Your report must be:
1. Highly Professional: use formal administrative/business Korean (e.g. '확인됨', '분석됨', '판단됨', '시급함'). Avoid conversational endings like '해요' or '입니다'.
2. Data-Driven: back every claim with the data (percentages, scores). Say "65% of students", not "many students".
3. Strategic: focus on the 'Why' and the 'So What'. Connect findings to institutional goals.
4. Structural: use bullet points and distinct sections for readability.
Write every text field in Korean.
""".strip(),
    "en": """
[Writing Persona & Style Guide]
You are a Senior Data Analyst at a top-tier satisfaction research agency with 10+ years of experience.
Your report must be:
1. Highly Professional: use formal business English.
2. Data-Driven: back every claim with the data.
3. Strategic: focus on actionable insights and institutional alignment.
Write every text field in English.
""".strip(),
}


def style_guide(language: str) -> str:
    return STYLE_GUIDES.get(language, STYLE_GUIDES["en"])


def flatten_responses(survey: Survey, responses: Sequence[SurveyResponse]) -> str:
    # One block of "Q: ... | A: ..." lines per response, blocks separated by '---'.
    blocks: List[str] = []
    for r in responses:
        lines = [
            f"Q: {q.text} | A: {r.answer_text(q.question_id)}"
            for q in survey.questions
            if q.type not in NON_ANSWERABLE
        ]
        blocks.append("\n".join(lines))
    return "\n---\n".join(blocks)


@dataclass(frozen=True)
class AnalysisContext:
    survey: Survey
    responses: Tuple[SurveyResponse, ...]
    language: str = "ko"
    university: Optional[University] = None

    def base_variables(self) -> Dict[str, Any]:
        stats = [
            {"index": s.index, "question": s.question, "mean": s.mean, "std_dev": s.std_dev, "count": s.count}
            for s in compute_stats(self.survey, self.responses)
        ]
        return {
            "style_guide": style_guide(self.language),
            "survey_title": self.survey.title,
            "survey_description": self.survey.description or "-",
            "response_count": len(self.responses),
            "stats": stats,
            "transcript": flatten_responses(self.survey, self.responses) or "(no responses)",
        }


def strings(value: Any, limit: Optional[int] = None) -> Tuple[str, ...]:
    items = tuple(str(v).strip() for v in (value or ()) if str(v).strip())
    return items[:limit] if limit is not None else items


def clamp(value: Any, low: float, high: float) -> float:
    return max(low, min(high, float(value)))
