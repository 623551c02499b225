# survey_analytics/agents/comprehensive_agent.py
from __future__ import annotations

from typing import Any, Dict

from survey_analytics.workflows.state import AnalysisMethod, ComprehensiveDiagnosis

from ._common import clamp, strings
from .base import ANALYSIS_CONTEXT_BLOCK, AnalysisAgent, summary_property


_STRING_LIST = {"type": "array", "items": {"type": "string"}}


class ComprehensiveAgent(AnalysisAgent):
    name = "comprehensive_agent"
    method = AnalysisMethod.COMPREHENSIVE
    prompt_file = "comprehensive.md"
    output_schema = {
        "type": "object",
        "properties": {
            "summary": summary_property(),
            "comprehensive_diagnosis": {
                "type": "string",
                "description": "In-depth analysis explaining the root causes of the results.",
            },
            "strengths": {**_STRING_LIST, "description": "Top 3 strengths, backed by data."},
            "weaknesses": {**_STRING_LIST, "description": "Top 3 weaknesses / pain points."},
            "improvement_strategies": {**_STRING_LIST, "description": "Concrete strategic action plan."},
            "key_themes": {**_STRING_LIST, "description": "Up to 5 major topics mentioned."},
            "sentiment_score": {"type": "number", "description": "Overall index, 0 to 100."},
            "recommendations": {**_STRING_LIST, "description": "Short bullet points."},
        },
        "required": [
            "summary",
            "comprehensive_diagnosis",
            "strengths",
            "weaknesses",
            "improvement_strategies",
            "key_themes",
            "sentiment_score",
        ],
        "additionalProperties": True,
    }

    default_prompt = """
Task: Perform a Comprehensive Satisfaction Diagnosis.
1. Executive Summary: a briefing for the University President.
2. Strengths: top 3 areas where the institution is excelling, backed by data.
3. Weaknesses / Pain Points: top 3 critical issues requiring immediate attention.
4. Detailed Diagnosis: a deeper dive into *why* the scores are the way they are, using open-ended feedback as evidence.
5. Strategic Action Plan: concrete, actionable steps to improve satisfaction scores in the next semester.
6. Sentiment Score: overall index (0-100).
7. Key Themes: up to 5 major topics mentioned.
""".strip() + "\n\n" + ANALYSIS_CONTEXT_BLOCK

    def _to_payload(self, payload: Dict[str, Any]) -> ComprehensiveDiagnosis:
        return ComprehensiveDiagnosis(
            diagnosis=str(payload.get("comprehensive_diagnosis") or "").strip(),
            strengths=strings(payload.get("strengths"), limit=3),
            weaknesses=strings(payload.get("weaknesses"), limit=3),
            improvement_strategies=strings(payload.get("improvement_strategies")),
            key_themes=strings(payload.get("key_themes"), limit=5),
            sentiment_score=int(round(clamp(payload.get("sentiment_score", 0), 0, 100))),
            recommendations=strings(payload.get("recommendations")),
        )
