# survey_analytics/db/exporter.py
from __future__ import annotations

import csv
from pathlib import Path

import pandas as pd

from survey_analytics.app.logging import get_logger

from .repository import SQLiteRepository


log = get_logger(__name__)

# Excel only detects UTF-8 when the file starts with a BOM.
CSV_ENCODING = "utf-8-sig"

TIME_COLUMN = "Submitted At"


def responses_frame(repo: SQLiteRepository, survey_id: str) -> pd.DataFrame:
    df = repo.fetch_wide_dataframe(survey_id)
    df = df.drop(columns=["response_id"]).rename(columns={"submitted_at": TIME_COLUMN})
    return df.fillna("")


def questions_frame(repo: SQLiteRepository, survey_id: str) -> pd.DataFrame:
    survey = repo.require_survey(survey_id)
    return pd.DataFrame(
        [{"Question": q.text, "Type": q.type.value, "Options": ", ".join(q.options)} for q in survey.questions],
        columns=["Question", "Type", "Options"],
    )


def export_responses_csv(repo: SQLiteRepository, survey_id: str, path: str) -> int:
    """Write one row per response (submission time first, then one column per question). Returns the row count."""
    df = responses_frame(repo, survey_id)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding=CSV_ENCODING, quoting=csv.QUOTE_ALL)
    log.info("Responses exported", extra={"survey_id": survey_id, "path": str(path), "rows": len(df)})
    return len(df)


def export_questions_csv(repo: SQLiteRepository, survey_id: str, path: str) -> int:
    df = questions_frame(repo, survey_id)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding=CSV_ENCODING, quoting=csv.QUOTE_ALL)
    return len(df)
