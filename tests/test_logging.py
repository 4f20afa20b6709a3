"""Tests for logging setup and export progress tracking."""

import io
import json
import logging

import pytest

from gaussian_capture.utils.logging import ProgressTracker, get_logger, setup_logging
from gaussian_capture.validation import ValidationReport, WarningCode


def test_json_logs_carry_run_name():
    stream = io.StringIO()
    setup_logging(level=logging.INFO, run_name="orbit-01", json_logs=True, stream=stream)

    get_logger("export").info("hello")

    record = json.loads(stream.getvalue().strip())
    assert record["severity"] == "INFO"
    assert record["message"] == "hello"
    assert record["logger"] == "gaussian_capture.export"
    assert record["run_name"] == "orbit-01"


def test_console_logs_respect_level():
    stream = io.StringIO()
    setup_logging(level=logging.WARNING, stream=stream)

    get_logger("colmap").info("quiet")
    get_logger("colmap").warning("loud")

    output = stream.getvalue()
    assert "quiet" not in output
    assert "WARNING" in output and "loud" in output


def test_report_log_emits_each_warning():
    stream = io.StringIO()
    setup_logging(level=logging.INFO, stream=stream)
    report = ValidationReport()
    report.warn(WarningCode.SMALL_RADIUS, "too close")
    report.fail(WarningCode.NO_VIEWPOINTS, "nothing to do")

    report.log(get_logger("config"), "config")

    assert "config: too close" in stream.getvalue()
    assert "config: nothing to do" in stream.getvalue()
    assert not report.valid
    assert report.to_dict()["warnings"][1] == {"code": "no_viewpoints", "message": "nothing to do"}


class TestProgressTracker:
    """Tests for stage tracking."""

    def test_stages_are_recorded(self, tmp_path):
        tracker = ProgressTracker(run_name="test")
        with tracker.stage("sparse_model", total_items=4):
            tracker.update(3)
            tracker.log_metric("cameras", 1)

        report = tracker.generate_report()
        assert report["success"]
        assert report["stages"][0]["items_processed"] == 3
        assert report["stages"][0]["metadata"] == {"cameras": 1}

        path = tracker.save_report(tmp_path / "report.json")
        assert json.loads(path.read_text())["run_name"] == "test"

    def test_errors_are_recorded_and_raised(self):
        tracker = ProgressTracker(run_name="test")
        with pytest.raises(OSError):
            with tracker.stage("metadata"):
                raise OSError("disk full")

        report = tracker.generate_report()
        assert not report["success"]
        assert report["stages"][0]["errors"] == ["disk full"]

    def test_log_error_attaches_to_open_stage(self):
        tracker = ProgressTracker(run_name="test")
        with tracker.stage("depth"):
            tracker.log_error("bad buffer", ValueError("shape (0, 0)"))
        tracker.log_error("outside any stage")

        report = tracker.generate_report()
        assert report["stages"][0]["errors"] == ["bad buffer: shape (0, 0)"]
        assert not report["success"]
