# survey_analytics/db/importer.py
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pandas as pd

from survey_analytics.app.errors import ImporterError
from survey_analytics.app.logging import get_logger

from .models import Question, QuestionType, Survey, SurveyResponse
from .repository import SQLiteRepository


log = get_logger(__name__)

_LIKERT_VALUE = re.compile(r"^[1-5]$")

EXTERNAL_DESCRIPTION = "Imported from external CSV data."


@dataclass(frozen=True)
class ImportResult:
    survey_id: str
    title: str
    inserted_responses: int
    registered_questions: int
    likert_questions: int


class ExternalSurveyImporter:
    """Turns a CSV of answers (one row per respondent, one column per question) into an EXTERNAL survey."""

    def __init__(self, repo: SQLiteRepository):
        self.repo = repo

    def import_csv(
        self,
        file_path: str,
        university_id: Optional[str] = None,
        encoding: Optional[str] = None,
    ) -> ImportResult:
        try:
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False, encoding=encoding or "utf-8-sig")
        except Exception as e:
            raise ImporterError(f"Failed to read CSV: {e}") from e

        return self._import_dataframe(df, title_stem=Path(file_path).stem, university_id=university_id)

    def _import_dataframe(self, df: pd.DataFrame, title_stem: str, university_id: Optional[str]) -> ImportResult:
        if df is None or df.empty or len(df.columns) == 0:
            raise ImporterError("CSV must have at least a header row and one data row.")

        df = df.copy()
        df.columns = [str(c).strip() for c in df.columns]
        df = df.apply(lambda s: s.astype(str).str.strip())

        questions: List[Question] = []
        for index, column in enumerate(df.columns):
            qtype = QuestionType.LIKERT if self._looks_like_likert(df[column]) else QuestionType.OPEN_ENDED
            questions.append(Question(question_id=f"q{index}", text=column, type=qtype))

        survey = Survey(
            survey_id=uuid4().hex[:9],
            title=f"[External] {title_stem}",
            description=EXTERNAL_DESCRIPTION,
            questions=tuple(questions),
            university_id=university_id,
            status="COMPLETED",
            source="EXTERNAL",
        )

        responses = []
        for record in df.to_dict(orient="records"):
            answers = self._row_answers(questions, record)
            if not answers:
                continue
            responses.append(SurveyResponse(response_id=uuid4().hex[:9], survey_id=survey.survey_id, answers=answers))

        self.repo.update_survey(survey)
        inserted = self.repo.insert_responses_batch(responses)

        result = ImportResult(
            survey_id=survey.survey_id,
            title=survey.title,
            inserted_responses=inserted,
            registered_questions=len(questions),
            likert_questions=sum(1 for q in questions if q.is_likert),
        )
        log.info("External survey imported", extra={"survey_id": result.survey_id, "responses": inserted})
        return result

    def _looks_like_likert(self, s: pd.Series) -> bool:
        non_empty = [v for v in s.tolist() if v != ""]
        return bool(non_empty) and all(_LIKERT_VALUE.match(v) for v in non_empty)

    def _row_answers(self, questions: List[Question], record: Dict[str, Any]) -> Dict[str, Any]:
        answers: Dict[str, Any] = {}
        for q in questions:
            val = record.get(q.text, "")
            if val == "":
                continue
            answers[q.question_id] = int(val) if q.is_likert else val
        return answers
