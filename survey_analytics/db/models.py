# models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from survey_analytics.workflows.state import AnalysisResult, utc_now_iso


Answer = Union[int, float, str, List[str]]
SurveyStatus = Literal["DRAFT", "ACTIVE", "COMPLETED"]
SurveySource = Literal["INTERNAL", "EXTERNAL"]


class QuestionType(str, Enum):
    LIKERT = "LIKERT"  # 1-5 scale
    OPEN_ENDED = "OPEN_ENDED"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"  # single select
    MULTIPLE_SELECT = "MULTIPLE_SELECT"  # multi select
    SECTION = "SECTION"
    INFO_MESSAGE = "INFO_MESSAGE"


# Question types that never carry an answer.
NON_ANSWERABLE = frozenset({QuestionType.SECTION, QuestionType.INFO_MESSAGE})


@dataclass(frozen=True)
class University:
    university_id: str
    name: str
    region: str = ""
    member_count: int = 0
    vision: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "university_id": self.university_id,
            "name": self.name,
            "region": self.region,
            "member_count": self.member_count,
            "vision": self.vision,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "University":
        return University(
            university_id=str(d["university_id"]),
            name=str(d.get("name", "")),
            region=str(d.get("region") or ""),
            member_count=int(d.get("member_count") or 0),
            vision=d.get("vision"),
        )


@dataclass(frozen=True)
class Question:
    question_id: str
    text: str
    type: QuestionType
    options: Tuple[str, ...] = ()
    image_url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", QuestionType(self.type))
        object.__setattr__(self, "options", tuple(self.options or ()))

    @property
    def is_likert(self) -> bool:
        return self.type is QuestionType.LIKERT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "text": self.text,
            "type": self.type.value,
            "options": list(self.options),
            "image_url": self.image_url,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Question":
        return Question(
            question_id=str(d["question_id"]),
            text=str(d.get("text", "")),
            type=QuestionType(d.get("type", QuestionType.OPEN_ENDED.value)),
            options=tuple(d.get("options") or ()),
            image_url=d.get("image_url"),
        )


@dataclass(frozen=True)
class Survey:
    survey_id: str
    title: str
    description: str = ""
    questions: Tuple[Question, ...] = ()
    # Most recently created first.
    analysis_history: Tuple[AnalysisResult, ...] = ()
    university_id: Optional[str] = None
    status: SurveyStatus = "ACTIVE"
    source: SurveySource = "INTERNAL"
    created_at: str = field(default_factory=utc_now_iso)
    intro_message: Optional[str] = None
    closing_message: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "questions", tuple(self.questions))
        object.__setattr__(self, "analysis_history", tuple(self.analysis_history))

    @property
    def likert_questions(self) -> List[Question]:
        return [q for q in self.questions if q.is_likert]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "survey_id": self.survey_id,
            "title": self.title,
            "description": self.description,
            "questions": [q.to_dict() for q in self.questions],
            "analysis_history": [r.to_dict() for r in self.analysis_history],
            "university_id": self.university_id,
            "status": self.status,
            "source": self.source,
            "created_at": self.created_at,
            "intro_message": self.intro_message,
            "closing_message": self.closing_message,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Survey":
        return Survey(
            survey_id=str(d["survey_id"]),
            title=str(d.get("title", "")),
            description=str(d.get("description") or ""),
            questions=tuple(Question.from_dict(q) for q in d.get("questions") or ()),
            analysis_history=tuple(AnalysisResult.from_dict(r) for r in d.get("analysis_history") or ()),
            university_id=d.get("university_id"),
            status=d.get("status") or "ACTIVE",
            source=d.get("source") or "INTERNAL",
            created_at=str(d.get("created_at") or utc_now_iso()),
            intro_message=d.get("intro_message"),
            closing_message=d.get("closing_message"),
        )


@dataclass(frozen=True)
class SurveyResponse:
    response_id: str
    survey_id: str
    answers: Mapping[str, Answer] = field(default_factory=dict)
    submitted_at: str = field(default_factory=utc_now_iso)

    def answer_text(self, question_id: str) -> str:
        val = self.answers.get(question_id)
        if isinstance(val, list):
            return ", ".join(str(v) for v in val)
        if val is None:
            return ""
        return str(val)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response_id": self.response_id,
            "survey_id": self.survey_id,
            "answers": dict(self.answers),
            "submitted_at": self.submitted_at,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SurveyResponse":
        return SurveyResponse(
            response_id=str(d["response_id"]),
            survey_id=str(d["survey_id"]),
            answers=dict(d.get("answers") or {}),
            submitted_at=str(d.get("submitted_at") or utc_now_iso()),
        )
