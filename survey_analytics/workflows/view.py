# survey_analytics/workflows/view.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from survey_analytics.db.models import Survey
from survey_analytics.workflows.history import find
from survey_analytics.workflows.state import AnalysisMethod, AnalysisResult, AnalysisStatus


@dataclass(frozen=True)
class AnalysisView:
    """What the analysis panel renders right now."""

    record: Optional[AnalysisResult] = None
    # True when the displayed record is no longer part of the survey's history.
    detached: bool = False

    @property
    def method(self) -> Optional[AnalysisMethod]:
        return self.record.method if self.record is not None else None

    @property
    def status(self) -> Optional[AnalysisStatus]:
        return self.record.status if self.record is not None else None

    @property
    def can_export(self) -> bool:
        return self.record is not None and not self.record.is_pending

    @property
    def can_regenerate(self) -> bool:
        return self.record is not None and not self.record.is_pending


def project(
    survey: Survey,
    displayed_id: Optional[str],
    local_records: Optional[Mapping[str, AnalysisResult]] = None,
) -> AnalysisView:
    record = find(survey, displayed_id)
    local = (local_records or {}).get(displayed_id) if displayed_id else None
    if record is not None:
        # The session resolved it but the store still says PENDING.
        if record.is_pending and local is not None and not local.is_pending:
            return AnalysisView(record=local, detached=True)
        return AnalysisView(record=record)
    if local is not None:
        return AnalysisView(record=local, detached=True)
    return AnalysisView()
