# survey_analytics/agents/intro_writer_agent.py
from __future__ import annotations

from typing import Any, Dict

from survey_analytics.app.logging import get_logger

from .base import BaseAgent
from .question_writer_agent import QuestionBrief


log = get_logger(__name__)


class IntroWriterAgent(BaseAgent):
    name = "intro_writer_agent"
    prompt_file = "intro_writer.md"
    output_schema = {
        "type": "object",
        "properties": {"intro_message": {"type": "string"}},
        "required": ["intro_message"],
        "additionalProperties": True,
    }

    default_prompt = """
Write a warm, professional and encouraging welcome message for the start page of a university survey.

Survey Title: "{{topic}}"
Context/Goal: "{{description}}"

Requirements:
1. Keep it under 100 words.
2. Explain why their opinion matters.
3. Mention it will take only a few minutes.
4. Assure anonymity if relevant.
5. {{language_instruction}}
""".strip()

    def _build_variables(self, brief: QuestionBrief) -> Dict[str, Any]:
        return {
            "topic": brief.topic,
            "description": brief.description,
            "language_instruction": (
                "Write the message in polite and encouraging Korean (honorifics)."
                if brief.language == "ko"
                else "Write the message in professional and welcoming English."
            ),
        }

    async def generate(self, brief: QuestionBrief) -> str:
        """Welcome message for the survey start screen; empty string when generation fails."""
        try:
            payload = await self.invoke(brief)
        except Exception:
            log.warning("Intro message generation failed", exc_info=True, extra={"topic": brief.topic})
            return ""
        return str(payload.get("intro_message") or "").strip()
