# survey_analytics/workflows/slots.py
"""
Per-survey analysis slots.

Each (survey, method) pair has one slot whose state is derived from the
survey's analysis history:

    EMPTY -> PENDING -> COMPLETED | FAILED
    FAILED -> PENDING     (invoke or retry)
    COMPLETED -> PENDING  (retry only)

Entering PENDING is written to the store before the background dispatch is
scheduled; leaving it triggers a second, reconciling write through
`history.finalize`.
"""
from __future__ import annotations

import asyncio
from dataclasses import replace
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from survey_analytics.agents.dispatcher import AnalysisDispatcher
from survey_analytics.app.errors import DataNotSufficient
from survey_analytics.app.logging import get_logger
from survey_analytics.db.models import Survey, SurveyResponse, University
from survey_analytics.db.repository import SQLiteRepository
from survey_analytics.workflows.history import (
    RequestToken,
    finalize,
    find,
    insert_failed,
    insert_pending,
    issue_token,
    is_current,
    latest_for,
)
from survey_analytics.workflows.state import AnalysisMethod, AnalysisResult, AnalysisStatus
from survey_analytics.workflows.view import AnalysisView, project


log = get_logger(__name__)

NO_RESPONSES = "No responses to analyze."


class SlotStatus(str, Enum):
    EMPTY = "EMPTY"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def slot_status(survey: Survey, method: AnalysisMethod) -> SlotStatus:
    record = latest_for(survey, AnalysisMethod(method))
    if record is None:
        return SlotStatus.EMPTY
    return SlotStatus(record.status.value)


class AnalysisSession:
    """
    One viewer's analysis panel for a survey.

    The session owns the displayed-record pointer and the records it issued
    itself; the survey history stays in the store and is re-read before
    every write.
    """

    def __init__(
        self,
        survey_id: str,
        store: SQLiteRepository,
        dispatcher: AnalysisDispatcher,
        language: str = "ko",
    ):
        self.survey_id = survey_id
        self.store = store
        self.dispatcher = dispatcher
        self.language = language
        self.displayed_id: Optional[str] = None
        self._opened = False
        self._local: Dict[str, AnalysisResult] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def survey(self) -> Survey:
        return self.store.require_survey(self.survey_id)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def view(self) -> AnalysisView:
        return project(self.survey, self.displayed_id, self._local)

    def displayed(self) -> Optional[AnalysisResult]:
        return self.view().record

    def open(self) -> AnalysisView:
        """First view of the survey; auto-runs COMPREHENSIVE once when there is data but no history."""
        if self._opened:
            return self.view()
        survey = self.survey
        if survey.analysis_history:
            self.displayed_id = survey.analysis_history[0].result_id
        elif self.store.get_responses(self.survey_id):
            log.info("Auto-starting comprehensive analysis", extra={"survey_id": self.survey_id})
            self.invoke(AnalysisMethod.COMPREHENSIVE)
        self._opened = True
        return self.view()

    def select(self, result_id: Optional[str]) -> AnalysisView:
        survey = self.survey
        self.displayed_id = result_id
        self._prune(survey)
        return project(survey, result_id, self._local)

    def invoke(self, method: AnalysisMethod) -> AnalysisResult:
        """Show `method`'s current record, starting a new analysis only when none exists or it failed."""
        method = AnalysisMethod(method)
        survey = self.survey
        existing = self._resolved(latest_for(survey, method))
        if existing is not None and not existing.is_failed:
            self.displayed_id = existing.result_id
            return existing
        return self._start(survey, method)

    def retry(self, record: Optional[AnalysisResult] = None) -> AnalysisResult:
        """Recompute `record`'s method (default: the displayed record) whatever its status."""
        record = record or self.displayed()
        if record is None:
            raise ValueError("There is no analysis to retry.")
        return self._start(self.survey, record.method)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # -------------------------
    # Internal
    # -------------------------

    def _resolved(self, record: Optional[AnalysisResult]) -> Optional[AnalysisResult]:
        # A stored PENDING record this session already resolved locally (reconcile write failed).
        if record is None or not record.is_pending:
            return record
        local = self._local.get(record.result_id)
        return local if local is not None and not local.is_pending else record

    def _prune(self, survey: Survey) -> None:
        # Records that made it into history are read from the store from now on.
        for result_id in [k for k in self._local if k != self.displayed_id and find(survey, k) is not None]:
            del self._local[result_id]

    def _show(self, record: AnalysisResult, survey: Survey) -> None:
        self._local[record.result_id] = record
        self.displayed_id = record.result_id
        self._prune(survey)

    def _start(self, survey: Survey, method: AnalysisMethod) -> AnalysisResult:
        loop = asyncio.get_running_loop()
        responses = tuple(self.store.get_responses(self.survey_id))
        if not responses:
            raise DataNotSufficient(NO_RESPONSES)

        university = self.store.get_university(survey.university_id)
        failed = self.dispatcher.check_preconditions(method, university)
        if failed is not None:
            updated = insert_failed(survey, failed)
            self.store.update_survey(updated)
            self._show(failed, updated)
            return failed

        token = issue_token()
        pending = AnalysisResult(result_id=token.request_id, method=method, status=AnalysisStatus.PENDING)
        updated = insert_pending(survey, pending)
        self.store.update_survey(updated)
        self._show(pending, updated)
        log.info(
            "Analysis requested",
            extra={"survey_id": survey.survey_id, "method": method.value, "result_id": token.request_id, "seq": token.seq},
        )

        task = loop.create_task(self._run(survey, responses, university, pending, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return pending

    async def _run(
        self,
        survey: Survey,
        responses: Tuple[SurveyResponse, ...],
        university: Optional[University],
        pending: AnalysisResult,
        token: RequestToken,
    ) -> None:
        result = await self.dispatcher.dispatch(
            survey,
            responses,
            pending.method,
            language=self.language,
            university=university,
            result_id=token.request_id,
        )
        # The session keeps its own copy even when history has moved on.
        self._local[token.request_id] = replace(result, result_id=pending.result_id, created_at=pending.created_at)

        try:
            current = self.store.get_survey(self.survey_id)
            if current is None:
                log.warning("Survey disappeared before analysis finished", extra={"survey_id": self.survey_id})
                return
            if not is_current(current, token):
                log.info(
                    "Dropping superseded analysis result",
                    extra={"survey_id": self.survey_id, "method": pending.method.value, "seq": token.seq},
                )
                return
            updated = finalize(current, token, result)
            self.store.update_survey(updated)
        except Exception as e:
            log.error(
                "Could not record analysis result",
                exc_info=True,
                extra={"survey_id": self.survey_id, "method": pending.method.value, "seq": token.seq},
            )
            self._local[token.request_id] = AnalysisResult(
                result_id=pending.result_id,
                method=pending.method,
                status=AnalysisStatus.FAILED,
                summary=f"Could not save analysis. {e}",
                created_at=pending.created_at,
            )
            return
        self._prune(updated)
