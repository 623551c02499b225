# survey_analytics/agents/base.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from survey_analytics.workflows.state import AnalysisMethod, AnalysisPayload

from ._common import AnalysisContext
from .utils import AgentError, GenerationClient, PromptNotFound, RetryPolicy, render_prompt


class BaseAgent:
    """
    Base class for every LLM-backed agent.

    An agent owns a prompt template (a `{{ variable }}` template, optionally
    overridden by `<prompts_dir>/<prompt_file>`) and the JSON Schema its
    answer must satisfy.
    """

    name: str = "base_agent"
    prompt_file: Optional[str] = None
    default_prompt: str = ""
    output_schema: Optional[Dict[str, Any]] = None

    def __init__(
        self,
        client: Optional[GenerationClient] = None,
        prompts_dir: Optional[str] = None,
        retry: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.prompts_dir = Path(prompts_dir) if prompts_dir else None
        self.retry = retry or RetryPolicy()

    async def invoke(self, context: Any) -> Dict[str, Any]:
        """Build the prompt, call the model (with transient retries) and return the validated JSON."""
        if self.client is None:
            raise AgentError(f"No generation client configured for agent '{self.name}'.")
        prompt = self.build_prompt(context)
        return await self.retry.call(self.client.generate, prompt, self.output_schema)

    def build_prompt(self, context: Any) -> str:
        template = self._load_prompt_template()
        return render_prompt(template, self._build_variables(context))

    # -------------------------
    # Internal hooks
    # -------------------------

    def _build_variables(self, context: Any) -> Dict[str, Any]:
        return {}

    def _load_prompt_template(self) -> str:
        if self.prompt_file and self.prompts_dir is not None:
            path = self.prompts_dir / self.prompt_file
            if path.is_file():
                return path.read_text(encoding="utf-8")

        if self.default_prompt.strip():
            return self.default_prompt

        raise PromptNotFound(f"No prompt_file/default_prompt defined for agent '{self.name}'.")


# Shared tail of every analysis prompt.
ANALYSIS_CONTEXT_BLOCK = """
{{style_guide}}

Context:
Survey Title: {{survey_title}}
Description: {{survey_description}}
Number of responses: {{response_count}}

Likert descriptive statistics (1-5 scale, population formulas):
{{stats}}

Responses Data:
{{transcript}}
""".strip()


def summary_property() -> Dict[str, Any]:
    return {
        "type": "string",
        "description": "Executive Summary. High-level overview of the most critical findings. Keep it under 200 words.",
    }


class AnalysisAgent(BaseAgent):
    """An agent implementing one analysis method; turns validated JSON into that method's payload."""

    method: AnalysisMethod

    def _build_variables(self, context: AnalysisContext) -> Dict[str, Any]:
        return context.base_variables()

    def parse(self, payload: Dict[str, Any]) -> Tuple[str, AnalysisPayload]:
        summary = str(payload.get("summary") or "").strip()
        return summary, self._to_payload(payload)

    def _to_payload(self, payload: Dict[str, Any]) -> AnalysisPayload:
        raise NotImplementedError
