# survey_analytics/agents/correspondence_agent.py
from __future__ import annotations

from typing import Any, Dict

from survey_analytics.workflows.state import AnalysisMethod, Correspondence, CorrespondencePoint

from .base import ANALYSIS_CONTEXT_BLOCK, AnalysisAgent, summary_property


class CorrespondenceAgent(AnalysisAgent):
    name = "correspondence_agent"
    method = AnalysisMethod.CORRESPONDENCE
    prompt_file = "correspondence.md"
    output_schema = {
        "type": "object",
        "properties": {
            "summary": summary_property(),
            "mca_data": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "label": {"type": "string"},
                        "x": {"type": "number"},
                        "y": {"type": "number"},
                        "category": {"type": "string"},
                    },
                    "required": ["label", "x", "y", "category"],
                },
            },
        },
        "required": ["summary", "mca_data"],
        "additionalProperties": True,
    }

    default_prompt = """
Task: Perform a Multiple Correspondence Analysis (MCA) simulation.
Map relationships between different categorical answers (e.g. choosing 'Cafeteria' as a priority linked with a 'Dissatisfied' rating).
Identify 2D coordinates to visualize these clusters: answers that co-occur must sit close together.
Give every point the category (question or cluster name) it belongs to.
""".strip() + "\n\n" + ANALYSIS_CONTEXT_BLOCK

    def _to_payload(self, payload: Dict[str, Any]) -> Correspondence:
        return Correspondence(
            points=tuple(
                CorrespondencePoint(
                    label=str(p["label"]),
                    x=float(p["x"]),
                    y=float(p["y"]),
                    category=str(p["category"]),
                )
                for p in payload.get("mca_data") or ()
            )
        )
