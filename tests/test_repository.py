from dataclasses import replace

import pytest

from survey_analytics.app.errors import SurveyNotFound
from survey_analytics.db.models import Survey, SurveyResponse, University
from survey_analytics.db.repository import SQLiteRepository
from survey_analytics.workflows.state import (
    AnalysisMethod,
    AnalysisResult,
    AnalysisStatus,
    ImportancePerformance,
    ImportancePerformancePoint,
)


def test_survey_is_stored_as_whole_object(stored, survey):
    record = AnalysisResult(
        "a1",
        AnalysisMethod.IMPORTANCE_PERFORMANCE,
        AnalysisStatus.COMPLETED,
        summary="ok",
        payload=ImportancePerformance(points=(ImportancePerformancePoint("Campus facilities", 3.0, 4.2),)),
    )
    stored.update_survey(replace(survey, analysis_history=(record,), intro_message="Welcome"))

    loaded = stored.require_survey("s1")

    assert loaded.questions == survey.questions
    assert loaded.analysis_history == (record,)
    assert loaded.intro_message == "Welcome"


def test_missing_survey(repo):
    assert repo.get_survey("nope") is None
    with pytest.raises(SurveyNotFound):
        repo.require_survey("nope")


def test_list_surveys_newest_first_and_by_university(repo, survey):
    repo.update_survey(survey)
    repo.update_survey(Survey(survey_id="s2", title="Later", university_id="u2", created_at="2025-01-01T00:00:00Z"))

    assert [s.survey_id for s in repo.list_surveys()] == ["s2", "s1"]
    assert [s.survey_id for s in repo.list_surveys(university_id="u1")] == ["s1"]


def test_responses_in_submission_order(stored):
    responses = stored.get_responses("s1")

    assert [r.response_id for r in responses] == ["r0", "r1", "r2", "r3", "r4"]
    assert responses[1].answers["q4"] == ["Library", "Gym"]


def test_insert_response_returns_id(stored):
    rid = stored.insert_response(SurveyResponse("r9", "s1", answers={"q1": 1}, submitted_at="2024-04-01T00:00:00Z"))

    assert rid == "r9"
    assert len(stored.get_responses("s1")) == 6


def test_universities(repo, university):
    repo.upsert_university(university)
    repo.upsert_university(replace(university, vision=None))

    assert repo.get_university("u1").vision is None
    assert repo.get_university(None) is None
    assert [u.name for u in repo.list_universities()] == ["Hanbit University"]


def test_delete_survey_removes_responses(stored):
    stored.delete_survey("s1")

    assert stored.get_survey("s1") is None
    assert stored.get_responses("s1") == []


def test_wide_dataframe(stored):
    df = stored.fetch_wide_dataframe("s1")

    assert list(df.columns) == [
        "response_id",
        "submitted_at",
        "Campus facilities",
        "Teaching quality",
        "Comments",
        "Services used",
    ]
    assert df["Campus facilities"].tolist() == [4, 5, 3, 4, 5]
    assert df["Services used"].iloc[1] == "Library, Gym"


def test_backup_and_restore(stored, tmp_path):
    path = tmp_path / "backup" / "data.json"

    counts = stored.export_backup(str(path))
    assert counts == {"surveys": 1, "responses": 5, "universities": 1}

    other = SQLiteRepository(str(tmp_path / "other.db"))
    other.init_schema()
    other.update_survey(Survey(survey_id="old", title="Replaced"))
    restored = other.restore_backup(str(path))

    assert restored == counts
    assert other.get_survey("old") is None
    assert other.require_survey("s1") == stored.require_survey("s1")
    assert other.get_responses("s1") == stored.get_responses("s1")
    assert other.get_university("u1") == stored.get_university("u1")
