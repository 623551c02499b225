# survey_analytics/agents/vision_agent.py
from __future__ import annotations

from typing import Any, Dict, Optional

from survey_analytics.app.errors import PreconditionFailed
from survey_analytics.db.models import University
from survey_analytics.workflows.state import AnalysisMethod, VisionAlignment

from ._common import AnalysisContext, clamp, strings
from .base import ANALYSIS_CONTEXT_BLOCK, AnalysisAgent, summary_property


VISION_MISSING = (
    "University vision statement is missing. Register the vision/mission statement "
    "of the survey's university to run the vision alignment analysis."
)


def require_vision(university: Optional[University]) -> str:
    vision = (university.vision or "").strip() if university is not None else ""
    if not vision:
        raise PreconditionFailed(VISION_MISSING)
    return vision


class VisionAgent(AnalysisAgent):
    name = "vision_agent"
    method = AnalysisMethod.VISION_ALIGNMENT
    prompt_file = "vision_alignment.md"
    output_schema = {
        "type": "object",
        "properties": {
            "summary": summary_property(),
            "vision_analysis": {
                "type": "object",
                "properties": {
                    "alignment_score": {"type": "number", "description": "0 to 100"},
                    "alignment_summary": {
                        "type": "string",
                        "description": "Detailed paragraph connecting the vision text to the survey data.",
                    },
                    "aligned_areas": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Areas where the vision is successfully met.",
                    },
                    "gap_areas": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Areas where there is a gap between vision and reality.",
                    },
                },
                "required": ["alignment_score", "alignment_summary", "aligned_areas", "gap_areas"],
            },
        },
        "required": ["summary", "vision_analysis"],
        "additionalProperties": True,
    }

    default_prompt = """
Task: Perform a Deep Strategic Vision Alignment Analysis.

Context: {{university_name}} has defined a Vision/Mission Statement. Measure how well the current survey results reflect this vision.

Target Vision/Mission:
"{{vision}}"

Analysis Steps:
1. Deconstruct Vision: break the vision statement down into core values or goals (e.g. "Global Leader", "Creative Talent", "Student Welfare").
2. Map Evidence: for each core value, scan the survey data (scores and comments) for evidence of alignment or misalignment.
3. Gap Analysis: identify specific discrepancies. If the vision says "Global Innovation" but students complain about "outdated facilities", that is a critical gap.
4. Scoring: calculate an Alignment Score (0-100) based on the evidence.

Output Requirements:
- Alignment Summary: a detailed, professional narrative. Reference specific keywords from the vision, connect them to specific survey findings and conclude whether the institution is "on track".
- Aligned Areas: survey topics where the results validate the vision.
- Gap Areas: survey topics where the results contradict the vision (areas for improvement).
""".strip() + "\n\n" + ANALYSIS_CONTEXT_BLOCK

    def _build_variables(self, context: AnalysisContext) -> Dict[str, Any]:
        variables = super()._build_variables(context)
        variables["vision"] = require_vision(context.university)
        variables["university_name"] = context.university.name if context.university else "The institution"
        return variables

    def _to_payload(self, payload: Dict[str, Any]) -> VisionAlignment:
        v = payload["vision_analysis"]
        return VisionAlignment(
            alignment_score=clamp(v["alignment_score"], 0, 100),
            alignment_summary=str(v["alignment_summary"]).strip(),
            aligned_areas=strings(v.get("aligned_areas")),
            gap_areas=strings(v.get("gap_areas")),
        )
