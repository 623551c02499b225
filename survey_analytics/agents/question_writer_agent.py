# survey_analytics/agents/question_writer_agent.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List
from uuid import uuid4

from survey_analytics.app.logging import get_logger
from survey_analytics.db.models import Question, QuestionType

from .base import BaseAgent


log = get_logger(__name__)

_GENERATED_TYPES = [
    QuestionType.LIKERT.value,
    QuestionType.OPEN_ENDED.value,
    QuestionType.MULTIPLE_CHOICE.value,
    QuestionType.MULTIPLE_SELECT.value,
    QuestionType.SECTION.value,
]


@dataclass(frozen=True)
class QuestionBrief:
    topic: str
    description: str = ""
    language: str = "ko"
    count: int = 7


class QuestionWriterAgent(BaseAgent):
    name = "question_writer_agent"
    prompt_file = "question_writer.md"
    output_schema = {
        "type": "object",
        "properties": {
            "questions": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string", "description": "The question or section header text"},
                        "type": {"type": "string", "enum": _GENERATED_TYPES},
                        "options": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Options for choice questions, empty otherwise",
                        },
                    },
                    "required": ["text", "type"],
                },
            }
        },
        "required": ["questions"],
        "additionalProperties": True,
    }

    default_prompt = """
Generate a list of exactly {{count}} high-quality university survey questions for the topic: "{{topic}}".
Use the following context/description to tailor the questions: "{{description}}".

Include a mix of:
1. Likert scale (1-5) questions (majority)
2. Open-ended questions (1 or 2 at the end)
3. Multiple choice or multiple select questions if relevant
4. A SECTION entry where a logical grouping makes sense (e.g. 'Demographics' or 'Satisfaction')

{{language_instruction}}
""".strip()

    def _build_variables(self, brief: QuestionBrief) -> Dict[str, Any]:
        return {
            "count": brief.count,
            "topic": brief.topic,
            "description": brief.description,
            "language_instruction": (
                "Write the questions in Korean." if brief.language == "ko" else "Write the questions in English."
            ),
        }

    async def generate(self, brief: QuestionBrief) -> List[Question]:
        """Draft questions for a new survey; an empty list when generation fails."""
        try:
            payload = await self.invoke(brief)
        except Exception:
            log.warning("Question generation failed", exc_info=True, extra={"topic": brief.topic})
            return []

        questions: List[Question] = []
        for item in payload.get("questions") or ():
            qtype = QuestionType(item["type"])
            options = tuple(str(o) for o in item.get("options") or ())
            if qtype not in (QuestionType.MULTIPLE_CHOICE, QuestionType.MULTIPLE_SELECT):
                options = ()
            questions.append(
                Question(question_id=uuid4().hex[:9], text=str(item["text"]).strip(), type=qtype, options=options)
            )
        return questions
