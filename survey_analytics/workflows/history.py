# survey_analytics/workflows/history.py
"""
Analysis history reconciliation.

A survey's `analysis_history` is ordered most-recently-created first and
holds at most one record per analysis method. It is only changed through
the functions below, each of which returns a new `Survey` (the caller writes
it back with a whole-object `update_survey`).

Every analysis request is identified by a `RequestToken`. A background
result is written back only while its token still occupies a slot in the
history; once a newer request for the same method has superseded it, the
late result is dropped.
"""
from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, replace
from typing import Optional
from uuid import uuid4

from survey_analytics.db.models import Survey
from survey_analytics.workflows.state import AnalysisMethod, AnalysisResult, AnalysisStatus


_SEQ = itertools.count(1)
_SEQ_LOCK = threading.Lock()


@dataclass(frozen=True)
class RequestToken:
    seq: int
    request_id: str

    def matches(self, record: Optional[AnalysisResult]) -> bool:
        return record is not None and record.result_id == self.request_id


def issue_token() -> RequestToken:
    # Sequence numbers increase monotonically within the process.
    with _SEQ_LOCK:
        seq = next(_SEQ)
    return RequestToken(seq=seq, request_id=uuid4().hex[:12])


def find(survey: Survey, result_id: Optional[str]) -> Optional[AnalysisResult]:
    if not result_id:
        return None
    for record in survey.analysis_history:
        if record.result_id == result_id:
            return record
    return None


def latest_for(survey: Survey, method: AnalysisMethod) -> Optional[AnalysisResult]:
    for record in survey.analysis_history:
        if record.method is method:
            return record
    return None


def is_current(survey: Survey, token: RequestToken) -> bool:
    return find(survey, token.request_id) is not None


def _supersede(survey: Survey, record: AnalysisResult) -> Survey:
    # Drop every record of the same method and put the new one first.
    kept = tuple(r for r in survey.analysis_history if r.method is not record.method)
    return replace(survey, analysis_history=(record,) + kept)


def insert_pending(survey: Survey, record: AnalysisResult) -> Survey:
    if record.status is not AnalysisStatus.PENDING:
        raise ValueError(f"insert_pending expects a PENDING record, got {record.status.value}.")
    return _supersede(survey, record)


def insert_failed(survey: Survey, record: AnalysisResult) -> Survey:
    # Used for failures detected before any request is issued (missing preconditions).
    if record.status is not AnalysisStatus.FAILED:
        raise ValueError(f"insert_failed expects a FAILED record, got {record.status.value}.")
    return _supersede(survey, record)


def finalize(survey: Survey, token: RequestToken, result: AnalysisResult) -> Survey:
    """
    Replace the record issued under `token` with its outcome, keeping its
    position, identity and creation time. Returns `survey` itself when the
    token no longer appears in the history.
    """
    history = list(survey.analysis_history)
    for i, record in enumerate(history):
        if token.matches(record):
            history[i] = replace(result, result_id=record.result_id, created_at=record.created_at)
            return replace(survey, analysis_history=tuple(history))
    return survey
