# repository.py
from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from survey_analytics.app.errors import SurveyNotFound
from survey_analytics.app.logging import get_logger
from survey_analytics.workflows.state import AnalysisResult, utc_now_iso

from .connection import connect, db_session
from .models import NON_ANSWERABLE, Question, Survey, SurveyResponse, University


SCHEMA_SQL_PATH = Path(__file__).resolve().parent / "schema.sql"

log = get_logger(__name__)


class SQLiteRepository:
    """
    Survey, response and university store.

    Surveys are written as whole objects (questions and analysis history are
    stored as JSON columns), so every `update_survey` replaces the previous
    row atomically.
    """

    def __init__(self, db_path: str, schema_sql_path: Optional[str] = None):
        self.db_path = db_path
        if schema_sql_path is not None:
            self.init_schema_from_sql(Path(schema_sql_path).read_text(encoding="utf-8"))

    def init_schema(self) -> None:
        self.init_schema_from_sql(SCHEMA_SQL_PATH.read_text(encoding="utf-8"))

    def init_schema_from_sql(self, schema_sql: str) -> None:
        # Execute schema SQL in a single transaction.
        conn = connect(self.db_path)
        try:
            conn.executescript(schema_sql)
            conn.commit()
        finally:
            conn.close()

    # -------------------------
    # Universities
    # -------------------------
    def upsert_university(self, u: University) -> None:
        conn = connect(self.db_path)
        try:
            self._write_university(conn, u)
            conn.commit()
        finally:
            conn.close()

    def get_university(self, university_id: Optional[str]) -> Optional[University]:
        if not university_id:
            return None
        conn = connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT university_id, name, region, member_count, vision FROM universities WHERE university_id = ?",
                (university_id,),
            ).fetchone()
            return University.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def list_universities(self) -> List[University]:
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT university_id, name, region, member_count, vision FROM universities ORDER BY name ASC"
            ).fetchall()
            return [University.from_dict(dict(r)) for r in rows]
        finally:
            conn.close()

    # -------------------------
    # Surveys
    # -------------------------
    def update_survey(self, survey: Survey) -> None:
        # Whole-object replacement; never a partial patch.
        conn = connect(self.db_path)
        try:
            self._write_survey(conn, survey)
            conn.commit()
        finally:
            conn.close()

    def get_survey(self, survey_id: str) -> Optional[Survey]:
        conn = connect(self.db_path)
        try:
            row = conn.execute("SELECT * FROM surveys WHERE survey_id = ?", (survey_id,)).fetchone()
            return self._row_to_survey(row) if row else None
        finally:
            conn.close()

    def require_survey(self, survey_id: str) -> Survey:
        survey = self.get_survey(survey_id)
        if survey is None:
            raise SurveyNotFound(f"Survey not found: {survey_id}")
        return survey

    def list_surveys(self, university_id: Optional[str] = None) -> List[Survey]:
        conn = connect(self.db_path)
        try:
            if university_id:
                rows = conn.execute(
                    "SELECT * FROM surveys WHERE university_id = ? ORDER BY created_at DESC",
                    (university_id,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM surveys ORDER BY created_at DESC").fetchall()
            return [self._row_to_survey(r) for r in rows]
        finally:
            conn.close()

    def delete_survey(self, survey_id: str) -> None:
        conn = connect(self.db_path)
        try:
            conn.execute("DELETE FROM surveys WHERE survey_id = ?", (survey_id,))
            conn.commit()
        finally:
            conn.close()

    # -------------------------
    # Responses
    # -------------------------
    def insert_response(self, response: SurveyResponse) -> str:
        self.insert_responses_batch([response])
        return response.response_id

    def insert_responses_batch(self, responses: Iterable[SurveyResponse]) -> int:
        rows = [
            (r.response_id, r.survey_id, r.submitted_at, json.dumps(dict(r.answers), ensure_ascii=False))
            for r in responses
        ]
        if not rows:
            return 0
        conn = connect(self.db_path)
        try:
            conn.executemany(
                """
                INSERT INTO responses(response_id, survey_id, submitted_at, answers_json)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(response_id) DO UPDATE SET
                  submitted_at=excluded.submitted_at,
                  answers_json=excluded.answers_json
                """,
                rows,
            )
            conn.commit()
            return len(rows)
        finally:
            conn.close()

    def get_responses(self, survey_id: str) -> List[SurveyResponse]:
        conn = connect(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT response_id, survey_id, submitted_at, answers_json
                FROM responses
                WHERE survey_id = ?
                ORDER BY submitted_at ASC, rowid ASC
                """,
                (survey_id,),
            ).fetchall()
            return [
                SurveyResponse(
                    response_id=r["response_id"],
                    survey_id=r["survey_id"],
                    submitted_at=r["submitted_at"],
                    answers=json.loads(r["answers_json"] or "{}"),
                )
                for r in rows
            ]
        finally:
            conn.close()

    def list_responses(self) -> List[SurveyResponse]:
        out: List[SurveyResponse] = []
        for s in self.list_surveys():
            out.extend(self.get_responses(s.survey_id))
        return out

    def fetch_wide_dataframe(self, survey_id: str) -> pd.DataFrame:
        # One row per response, one column per answerable question (keyed by question text).
        survey = self.require_survey(survey_id)
        questions = [q for q in survey.questions if q.type not in NON_ANSWERABLE]
        responses = self.get_responses(survey_id)

        columns = ["response_id", "submitted_at"] + [q.text for q in questions]
        if not responses:
            return pd.DataFrame(columns=columns)

        data = []
        for r in responses:
            row: Dict[str, Any] = {"response_id": r.response_id, "submitted_at": r.submitted_at}
            for q in questions:
                val = r.answers.get(q.question_id)
                row[q.text] = r.answer_text(q.question_id) if isinstance(val, list) else val
            data.append(row)
        return pd.DataFrame(data, columns=columns)

    # -------------------------
    # Backup / restore (local JSON file)
    # -------------------------
    def export_backup(self, path: str) -> Dict[str, int]:
        surveys = self.list_surveys()
        responses = [r for s in surveys for r in self.get_responses(s.survey_id)]
        universities = self.list_universities()
        data = {
            "surveys": [s.to_dict() for s in surveys],
            "responses": [r.to_dict() for r in responses],
            "universities": [u.to_dict() for u in universities],
            "backup_date": utc_now_iso(),
        }
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        counts = {"surveys": len(surveys), "responses": len(responses), "universities": len(universities)}
        log.info("Backup written", extra={"path": str(path), **counts})
        return counts

    def restore_backup(self, path: str) -> Dict[str, int]:
        # Replaces every stored survey, response and university.
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        surveys = [Survey.from_dict(s) for s in data.get("surveys") or []]
        responses = [SurveyResponse.from_dict(r) for r in data.get("responses") or []]
        universities = [University.from_dict(u) for u in data.get("universities") or []]
        known = {s.survey_id for s in surveys}

        with db_session(self.db_path) as conn:
            conn.execute("DELETE FROM responses")
            conn.execute("DELETE FROM surveys")
            conn.execute("DELETE FROM universities")
            for u in universities:
                self._write_university(conn, u)
            for s in surveys:
                self._write_survey(conn, s)
            conn.executemany(
                "INSERT INTO responses(response_id, survey_id, submitted_at, answers_json) VALUES (?, ?, ?, ?)",
                [
                    (r.response_id, r.survey_id, r.submitted_at, json.dumps(dict(r.answers), ensure_ascii=False))
                    for r in responses
                    if r.survey_id in known
                ],
            )

        counts = {
            "surveys": len(surveys),
            "responses": sum(1 for r in responses if r.survey_id in known),
            "universities": len(universities),
        }
        log.info("Backup restored", extra={"path": str(path), **counts})
        return counts

    # -------------------------
    # Row mapping
    # -------------------------
    def _write_university(self, conn: sqlite3.Connection, u: University) -> None:
        conn.execute(
            """
            INSERT INTO universities(university_id, name, region, member_count, vision)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(university_id) DO UPDATE SET
              name=excluded.name,
              region=excluded.region,
              member_count=excluded.member_count,
              vision=excluded.vision
            """,
            (u.university_id, u.name, u.region, u.member_count, u.vision),
        )

    def _write_survey(self, conn: sqlite3.Connection, s: Survey) -> None:
        conn.execute(
            """
            INSERT INTO surveys(
              survey_id, university_id, title, description, status, source, created_at,
              intro_message, closing_message, questions_json, history_json, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(survey_id) DO UPDATE SET
              university_id=excluded.university_id,
              title=excluded.title,
              description=excluded.description,
              status=excluded.status,
              source=excluded.source,
              created_at=excluded.created_at,
              intro_message=excluded.intro_message,
              closing_message=excluded.closing_message,
              questions_json=excluded.questions_json,
              history_json=excluded.history_json,
              updated_at=datetime('now')
            """,
            (
                s.survey_id,
                s.university_id,
                s.title,
                s.description,
                s.status,
                s.source,
                s.created_at,
                s.intro_message,
                s.closing_message,
                json.dumps([q.to_dict() for q in s.questions], ensure_ascii=False),
                json.dumps([r.to_dict() for r in s.analysis_history], ensure_ascii=False),
            ),
        )

    def _row_to_survey(self, row: sqlite3.Row) -> Survey:
        return Survey(
            survey_id=row["survey_id"],
            university_id=row["university_id"],
            title=row["title"],
            description=row["description"] or "",
            status=row["status"],
            source=row["source"],
            created_at=row["created_at"],
            intro_message=row["intro_message"],
            closing_message=row["closing_message"],
            questions=tuple(Question.from_dict(q) for q in json.loads(row["questions_json"] or "[]")),
            analysis_history=tuple(AnalysisResult.from_dict(r) for r in json.loads(row["history_json"] or "[]")),
        )
