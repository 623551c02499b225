from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from survey_analytics.db.models import Survey, SurveyResponse, University
from survey_analytics.workflows.history import latest_for
from survey_analytics.workflows.state import AnalysisMethod, AnalysisResult, ComprehensiveDiagnosis


# Fixed quadrant boundary on both IPA axes (1-5 scale).
QUADRANT_MIDPOINT = 2.5


@dataclass(frozen=True)
class QuestionStats:
    question_id: str
    question: str
    mean: float
    std_dev: float
    count: int
    index: int  # 1-based position among Likert questions

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Quadrant(str, Enum):
    KEEP_UP = "KEEP_UP"  # high importance, high performance
    CONCENTRATE_HERE = "CONCENTRATE_HERE"  # high importance, low performance
    LOW_PRIORITY = "LOW_PRIORITY"  # low importance, low performance
    POSSIBLE_OVERKILL = "POSSIBLE_OVERKILL"  # low importance, high performance


def _numeric_answers(responses: Sequence[SurveyResponse], question_id: str) -> List[float]:
    values: List[float] = []
    for r in responses:
        val = r.answers.get(question_id)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            values.append(float(val))
    return values


def compute_stats(survey: Survey, responses: Sequence[SurveyResponse]) -> List[QuestionStats]:
    """
    Descriptive statistics for every Likert question, in survey order.

    Population mean and standard deviation (divide by N), rounded to two
    decimals. Questions with no numeric answer report zeros. Neither argument
    is mutated.
    """
    rows: List[QuestionStats] = []
    index = 0
    for q in survey.questions:
        if not q.is_likert:
            continue
        index += 1
        values = _numeric_answers(responses, q.question_id)
        if not values:
            rows.append(QuestionStats(q.question_id, q.text, 0.0, 0.0, 0, index))
            continue

        arr = np.asarray(values, dtype=float)
        rows.append(
            QuestionStats(
                question_id=q.question_id,
                question=q.text,
                mean=round(float(arr.mean()), 2),
                std_dev=round(float(arr.std(ddof=0)), 2),
                count=int(arr.size),
                index=index,
            )
        )
    return rows


def likert_spread(survey: Survey, responses: Sequence[SurveyResponse]) -> List[Dict[str, Any]]:
    # Observed five-number summary per Likert question (skips unanswered questions).
    out: List[Dict[str, Any]] = []
    for q in survey.likert_questions:
        values = _numeric_answers(responses, q.question_id)
        if not values:
            continue
        q0, q1, q2, q3, q4 = np.percentile(np.asarray(values, dtype=float), [0, 25, 50, 75, 100])
        out.append({
            "label": q.text,
            "min": round(float(q0), 2),
            "q1": round(float(q1), 2),
            "median": round(float(q2), 2),
            "q3": round(float(q3), 2),
            "max": round(float(q4), 2),
        })
    return out


def fallback_score(survey: Survey, responses: Sequence[SurveyResponse]) -> float:
    # (mean / 5) * 100 over every numeric Likert answer; 0 when there is none.
    values: List[float] = []
    for q in survey.likert_questions:
        values.extend(_numeric_answers(responses, q.question_id))
    if not values:
        return 0.0
    return float(np.mean(values)) / 5 * 100


def survey_score(survey: Survey, responses: Sequence[SurveyResponse]) -> int:
    # Sentiment index of a completed comprehensive analysis, otherwise the Likert fallback.
    latest = latest_for(survey, AnalysisMethod.COMPREHENSIVE)
    if latest is not None and latest.is_completed and isinstance(latest.payload, ComprehensiveDiagnosis):
        return int(round(latest.payload.sentiment_score))
    return int(round(fallback_score(survey, responses)))


def classify_quadrant(importance: float, performance: float) -> Quadrant:
    high_importance = importance > QUADRANT_MIDPOINT
    high_performance = performance > QUADRANT_MIDPOINT
    if high_importance and high_performance:
        return Quadrant.KEEP_UP
    if high_importance:
        return Quadrant.CONCENTRATE_HERE
    if high_performance:
        return Quadrant.POSSIBLE_OVERKILL
    return Quadrant.LOW_PRIORITY


@dataclass(frozen=True)
class SurveyOverview:
    survey_id: str
    title: str
    score: int
    responses: int
    methods_performed: List[AnalysisMethod]
    last_analysis: Optional[AnalysisResult]
    university_name: Optional[str]
    created_at: str
    source: str


def survey_overview(
    surveys: Sequence[Survey],
    responses: Sequence[SurveyResponse],
    universities: Sequence[University] = (),
    university_id: Optional[str] = None,
) -> List[SurveyOverview]:
    """Score card per survey, newest first."""
    names = {u.university_id: u.name for u in universities}
    rows: List[SurveyOverview] = []
    for s in surveys:
        if university_id and s.university_id != university_id:
            continue
        s_responses = [r for r in responses if r.survey_id == s.survey_id]
        methods: List[AnalysisMethod] = []
        for h in s.analysis_history:
            if h.method not in methods:
                methods.append(h.method)
        rows.append(
            SurveyOverview(
                survey_id=s.survey_id,
                title=s.title,
                score=survey_score(s, s_responses),
                responses=len(s_responses),
                methods_performed=methods,
                last_analysis=s.analysis_history[0] if s.analysis_history else None,
                university_name=names.get(s.university_id) if s.university_id else None,
                created_at=s.created_at,
                source=s.source,
            )
        )
    rows.sort(key=lambda r: r.created_at, reverse=True)
    return rows
