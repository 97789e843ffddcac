import logging

import pytest

from linxio_automation.core.config import Settings, get_app_env, validate_runtime_settings
from linxio_automation.core.db import engine_options
from linxio_automation.core.pagination import clamp_page_size, page_window


def test_defaults_and_job_topic():
    cfg = Settings(mqtt_topic_prefix="acme")
    assert cfg.automation_job_topic == "acme/automation/jobs"
    assert cfg.automation_record_missing_rules is False
    assert cfg.automation_execution_timeout_sec == 30.0


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("AUTOMATION_EXECUTION_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("AUTOMATION_RECORD_MISSING_RULES", "true")
    cfg = Settings()
    assert cfg.automation_execution_timeout_sec == 2.5
    assert cfg.automation_record_missing_rules is True


def test_validate_runtime_settings_clamps_bad_values(monkeypatch, caplog):
    monkeypatch.setenv("LINXIO_ENV", "dev")
    caplog.set_level(logging.WARNING)
    cfg = Settings(event_notifier="carrier-pigeon", automation_job_max_attempts=0, create_task_max_attempts=-1)
    validate_runtime_settings(cfg)
    assert cfg.event_notifier == "log"
    assert cfg.automation_job_max_attempts == 1
    assert cfg.create_task_max_attempts == 1


def test_prod_rejects_sqlite(monkeypatch):
    monkeypatch.setenv("LINXIO_ENV", "prod")
    assert get_app_env() == "prod"
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        validate_runtime_settings(Settings(database_url="sqlite+pysqlite:///:memory:"))


def test_unknown_env_defaults_to_dev(monkeypatch):
    monkeypatch.setenv("LINXIO_ENV", "staging")
    assert get_app_env() == "dev"


def test_page_size_is_capped(monkeypatch):
    monkeypatch.setenv("API_MAX_PAGE_SIZE", "5")
    assert clamp_page_size(100) == 5
    assert clamp_page_size(3) == 3
    assert clamp_page_size(0) == 1


def test_page_window_offset_and_bad_cap(monkeypatch):
    monkeypatch.setenv("API_MAX_PAGE_SIZE", "abc")
    window = page_window(3, 500)
    assert window.size == 200
    assert window.offset == 400
    assert page_window(0, 10).offset == 0


def test_engine_options_pool_only_for_server_databases():
    assert engine_options(Settings(database_url="sqlite+pysqlite:///:memory:")) == {
        "connect_args": {"check_same_thread": False}
    }
    opts = engine_options(Settings(database_url="postgresql+psycopg2://u:p@db/linxio", db_pool_size=9))
    assert opts["pool_size"] == 9
    assert opts["pool_pre_ping"] is True
