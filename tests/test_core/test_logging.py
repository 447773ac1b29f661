"""Tests for loguru setup and the delivery trail."""

import json
import sys
import uuid

import pytest
from loguru import logger

from notifier.config import Settings
from notifier.core import logging as app_logging
from notifier.core.logging import _delivery_filter, _health_log_filter, delivery_log_path


class _Level:
    def __init__(self, no: int) -> None:
        self.no = no


@pytest.fixture
def restore_loguru():
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestFilters:
    def test_health_logs_hidden_above_debug(self):
        assert _health_log_filter({"message": "GET /health 200", "level": _Level(20)}) is False
        assert _health_log_filter({"message": "GET /health 200", "level": _Level(10)}) is True
        assert _health_log_filter({"message": "worker_started", "level": _Level(20)}) is True

    def test_delivery_filter_keeps_job_events_only(self):
        assert _delivery_filter({"message": "notification_sent"}) is True
        assert _delivery_filter({"message": "stale_jobs_reclaimed"}) is True
        assert _delivery_filter({"message": "worker_started"}) is False
        assert _delivery_filter({"message": "session_ready"}) is False


class TestSetupLogging:
    def test_delivery_events_written_as_json_lines(self, tmp_path, monkeypatch, restore_loguru):
        monkeypatch.setattr(app_logging, "get_settings", lambda: Settings(log_dir=str(tmp_path)))
        job_id = uuid.uuid4()

        app_logging.setup_logging()
        log = app_logging.get_logger("notifier.services.worker")
        log.bind(job_id=str(job_id), recipient="6281234567890").info("notification_sent")
        log.info("worker_batch_completed")
        logger.remove()

        lines = delivery_log_path(str(tmp_path)).read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])["record"]
        assert record["message"] == "notification_sent"
        assert record["extra"]["job_id"] == str(job_id)
        assert record["extra"]["recipient"] == "6281234567890"

    def test_no_file_without_log_dir(self, tmp_path, monkeypatch, restore_loguru):
        monkeypatch.setattr(app_logging, "get_settings", lambda: Settings(log_dir=""))
        monkeypatch.chdir(tmp_path)

        app_logging.setup_logging()
        app_logging.get_logger(__name__).info("notification_sent")
        logger.remove()

        assert list(tmp_path.iterdir()) == []
