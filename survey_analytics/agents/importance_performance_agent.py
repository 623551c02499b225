# survey_analytics/agents/importance_performance_agent.py
from __future__ import annotations

from typing import Any, Dict

from survey_analytics.workflows.state import AnalysisMethod, ImportancePerformance, ImportancePerformancePoint

from ._common import clamp
from .base import ANALYSIS_CONTEXT_BLOCK, AnalysisAgent, summary_property


class ImportancePerformanceAgent(AnalysisAgent):
    name = "importance_performance_agent"
    method = AnalysisMethod.IMPORTANCE_PERFORMANCE
    prompt_file = "importance_performance.md"
    output_schema = {
        "type": "object",
        "properties": {
            "summary": summary_property(),
            "ipa_data": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "label": {"type": "string"},
                        "importance": {"type": "number", "description": "Value 1-5"},
                        "performance": {"type": "number", "description": "Value 1-5"},
                    },
                    "required": ["label", "importance", "performance"],
                },
            },
        },
        "required": ["summary", "ipa_data"],
        "additionalProperties": True,
    }

    default_prompt = """
Task: Perform a rigorous Importance-Performance Analysis (IPA).
1. Calculate the Performance (satisfaction) average (1-5) for each Likert item.
2. Infer the Importance (1-5) from the item's correlation with the overall positive sentiment found in open-ended answers, or explicit importance if available.
3. Classify each item into the 4 quadrants (midpoint 2.5 on both axes):
   - Keep Up (high importance, high performance)
   - Concentrate Here (high importance, low performance): priority fixes
   - Low Priority (low importance, low performance)
   - Possible Overkill (low importance, high performance)
Return one ipa_data entry per Likert item, labelled with a short form of the question.
""".strip() + "\n\n" + ANALYSIS_CONTEXT_BLOCK

    def _to_payload(self, payload: Dict[str, Any]) -> ImportancePerformance:
        return ImportancePerformance(
            points=tuple(
                ImportancePerformancePoint(
                    label=str(p["label"]),
                    importance=clamp(p["importance"], 1, 5),
                    performance=clamp(p["performance"], 1, 5),
                )
                for p in payload.get("ipa_data") or ()
            )
        )
