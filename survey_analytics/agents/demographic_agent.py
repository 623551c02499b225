# survey_analytics/agents/demographic_agent.py
from __future__ import annotations

from typing import Any, Dict

from survey_analytics.workflows.state import AnalysisMethod, DemographicInsights

from ._common import strings
from .base import ANALYSIS_CONTEXT_BLOCK, AnalysisAgent, summary_property


class DemographicAgent(AnalysisAgent):
    name = "demographic_agent"
    method = AnalysisMethod.DEMOGRAPHIC
    prompt_file = "demographic.md"
    output_schema = {
        "type": "object",
        "properties": {
            "summary": summary_property(),
            "demographic_insights": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["summary", "demographic_insights"],
        "additionalProperties": True,
    }

    default_prompt = """
Task: Analyze Respondent Characteristics and Segmentation.
Based on the data, identify key respondent personas or segments.
Describe their distinct behaviors or satisfaction levels, one insight per list entry.
""".strip() + "\n\n" + ANALYSIS_CONTEXT_BLOCK

    def _to_payload(self, payload: Dict[str, Any]) -> DemographicInsights:
        return DemographicInsights(insights=strings(payload.get("demographic_insights")))
