import json
import logging

import pytest

from survey_analytics.app.config import Settings
from survey_analytics.app.logging import JsonFormatter, RequestIdFilter, clear_request_id, set_request_id


ENV_KEYS = (
    "APP_DB_PATH",
    "APP_PROMPTS_DIR",
    "APP_LOG_LEVEL",
    "APP_LOG_JSON",
    "APP_MODEL_ANALYSIS",
    "APP_MODEL_BUILDER",
    "APP_LLM_BASE_URL",
    "APP_LLM_TEMPERATURE",
    "OPENAI_API_KEY",
    "APP_LANGUAGE",
    "APP_RETRY_MAX",
    "APP_RETRY_INITIAL_DELAY",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_settings_defaults(clean_env, tmp_path):
    settings = Settings.from_env()

    assert settings.db_path == "data/app.db"
    assert (tmp_path / "data").is_dir()
    assert settings.language == "ko"
    assert settings.retry_max == 3
    assert settings.retry_initial_delay == 2.0
    assert settings.log_json is True
    assert settings.openai_api_key is None


def test_settings_from_environment(clean_env, tmp_path):
    clean_env.setenv("APP_DB_PATH", str(tmp_path / "db" / "survey.db"))
    clean_env.setenv("APP_LANGUAGE", "EN")
    clean_env.setenv("APP_RETRY_MAX", "1")
    clean_env.setenv("APP_RETRY_INITIAL_DELAY", "0.5")
    clean_env.setenv("APP_LOG_JSON", "no")
    clean_env.setenv("APP_MODEL_ANALYSIS", "gpt-test")
    clean_env.setenv("APP_LLM_TEMPERATURE", "not-a-number")

    settings = Settings.from_env()

    assert (tmp_path / "db").is_dir()
    assert settings.language == "en"
    assert settings.retry_max == 1
    assert settings.retry_initial_delay == 0.5
    assert settings.log_json is False
    assert settings.analysis_model == "gpt-test"
    assert settings.temperature == 0.0


def test_unsupported_language_falls_back_to_korean(clean_env):
    clean_env.setenv("APP_LANGUAGE", "fr")

    assert Settings.from_env().language == "ko"


def make_record(**extra):
    record = logging.LogRecord("survey_analytics.test", logging.INFO, __file__, 1, "Analysis %s", ("done",), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_formatter_includes_request_id_and_extras():
    set_request_id("req-42")
    try:
        record = make_record(survey_id="s1", method="COMPREHENSIVE")
        RequestIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        clear_request_id()

    assert payload["msg"] == "Analysis done"
    assert payload["request_id"] == "req-42"
    assert payload["survey_id"] == "s1"
    assert payload["method"] == "COMPREHENSIVE"
    assert payload["level"] == "INFO"


def test_json_formatter_stringifies_unserializable_extras():
    record = make_record(path=object())
    RequestIdFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["request_id"] is None
    assert payload["path"].startswith("<object object")
