# survey_analytics/agents/spread_agent.py
from __future__ import annotations

from typing import Any, Dict

from survey_analytics.app.logging import get_logger
from survey_analytics.tools.stats import likert_spread
from survey_analytics.workflows.state import AnalysisMethod, SpreadRow, StatisticalSpread

from ._common import AnalysisContext
from .base import ANALYSIS_CONTEXT_BLOCK, AnalysisAgent, summary_property


log = get_logger(__name__)


class SpreadAgent(AnalysisAgent):
    name = "spread_agent"
    method = AnalysisMethod.STATISTICAL_SPREAD
    prompt_file = "statistical_spread.md"
    output_schema = {
        "type": "object",
        "properties": {
            "summary": summary_property(),
            "box_plot_data": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "label": {"type": "string"},
                        "min": {"type": "number"},
                        "q1": {"type": "number"},
                        "median": {"type": "number"},
                        "q3": {"type": "number"},
                        "max": {"type": "number"},
                    },
                    "required": ["label", "min", "q1", "median", "q3", "max"],
                },
            },
        },
        "required": ["summary", "box_plot_data"],
        "additionalProperties": True,
    }

    default_prompt = """
Task: Perform a Statistical Variation Analysis (Box Plot Logic).
Identify the spread of responses to understand consensus vs. polarization.
- High variation means the issue is polarizing.
- Low variation with a low score means universal dissatisfaction.
For each Likert item give minimum, first quartile, median, third quartile and maximum on the 1-5 scale.
Observed five-number summaries:
{{observed_spread}}
""".strip() + "\n\n" + ANALYSIS_CONTEXT_BLOCK

    def _build_variables(self, context: AnalysisContext) -> Dict[str, Any]:
        variables = super()._build_variables(context)
        variables["observed_spread"] = likert_spread(context.survey, context.responses)
        return variables

    def _to_payload(self, payload: Dict[str, Any]) -> StatisticalSpread:
        rows = []
        for r in payload.get("box_plot_data") or ():
            lo, q1, med, q3, hi = (float(r[k]) for k in ("min", "q1", "median", "q3", "max"))
            if not lo <= q1 <= med <= q3 <= hi:
                log.warning("Dropping box plot row with unordered values", extra={"label": str(r["label"])})
                continue
            rows.append(SpreadRow(label=str(r["label"]), min=lo, q1=q1, median=med, q3=q3, max=hi))
        return StatisticalSpread(rows=tuple(rows))
