"""Tests for the command-line interface."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from hyperlocal_demo import __version__
from hyperlocal_demo.cli import app, format_status
from hyperlocal_demo.core.controller import CaptureProgress
from hyperlocal_demo.schemas import InputMode, Phase, WorkflowState

from conftest import make_payload_text


runner = CliRunner()


@pytest.fixture
def storage(tmp_path):
    return str(tmp_path / "storage.json")


@pytest.fixture
def payload_file(tmp_path):
    path = tmp_path / "payload.json"
    path.write_text(make_payload_text(locationId="cli-loc"), encoding="utf-8")
    return path


def invoke(*args):
    return runner.invoke(app, list(args))


class TestFormatStatus:
    """Tests for status line formatting."""

    def test_capturing(self):
        state = WorkflowState(phase=Phase.CAPTURING, attempt=2)

        line = format_status(state, CaptureProgress(captured_count=7, preview_urls=[]))

        assert line.startswith("[002] camera")
        assert "Capturing... 7 frames" in line

    def test_estimating_payload(self):
        state = WorkflowState(phase=Phase.ESTIMATING, mode=InputMode.PAYLOAD, attempt=1)

        line = format_status(state, CaptureProgress(captured_count=0, preview_urls=[]))

        assert "payload" in line
        assert "Estimating" in line


class TestRunCommand:
    """Tests for the run command."""

    def test_payload_run(self, storage, payload_file):
        result = invoke(
            "run", "--mode", "payload", "--payload-file", str(payload_file),
            "--storage", storage, "--quiet",
        )

        assert result.exit_code == 0, result.output
        assert '"type": "success"' in result.output
        assert "cli-loc" in result.output

    def test_camera_run_with_logs(self, storage, tmp_path):
        out_dir = tmp_path / "logs"

        result = invoke(
            "run", "--mode", "camera", "--storage", storage,
            "--frame-interval", "0", "--output", str(out_dir),
        )

        assert result.exit_code == 0, result.output
        assert "Capturing" in result.output
        assert "Done" in result.output

        run_logs = list(out_dir.glob("*/run.jsonl"))
        assert len(run_logs) == 1
        records = [json.loads(line) for line in run_logs[0].read_text().splitlines()]
        assert [r["to_phase"] for r in records] == ["capturing", "estimating", "done"]
        assert records[-1]["result_type"] == "success"
        assert list(out_dir.glob("*/events.jsonl"))

    def test_not_ready(self, storage):
        invoke("config", "set", "--no-mock", "--location-id", "", "--storage", storage)

        result = invoke("run", "--storage", storage)

        assert result.exit_code == 1
        assert "Not ready" in result.output

    def test_rejected_payload_not_ready(self, storage, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{\"locationId\": \"x\"}")

        result = invoke("run", "--mode", "payload", "--payload-file", str(bad), "--storage", storage)

        assert result.exit_code == 1
        assert "Not ready" in result.output


class TestConfigCommands:
    """Tests for config show/set/reset."""

    def test_show_defaults(self, storage):
        result = invoke("config", "show", "--storage", storage)

        assert result.exit_code == 0
        assert "ProdPublic" in result.output
        assert "-33.8688" in result.output

    def test_set_persists(self, storage):
        result = invoke(
            "config", "set", "--no-mock", "--location-id", "loc-x",
            "--environment", "DevPreview", "--lat", "1.5", "--lng", "2.5",
            "--storage", storage,
        )
        assert result.exit_code == 0, result.output

        shown = invoke("config", "show", "--storage", storage).output

        assert "loc-x" in shown
        assert "DevPreview (1)" in shown
        assert "1.5" in shown

    def test_set_unknown_environment(self, storage):
        result = invoke("config", "set", "--environment", "Staging", "--storage", storage)

        assert result.exit_code != 0

    def test_gps_unavailable_keeps_coordinates(self, storage):
        result = invoke(
            "config", "set", "--no-mock", "--location-id", "loc",
            "--lat", "3", "--lng", "4", "--gps-auto", "--storage", storage,
        )

        assert result.exit_code == 0
        assert "GPS unavailable" in result.output

    def test_reset(self, storage):
        invoke("config", "set", "--location-id", "loc-x", "--storage", storage)

        result = invoke("config", "reset", "--storage", storage)

        assert result.exit_code == 0
        assert "(blank)" in result.output


class TestPayloadCommands:
    """Tests for payload show/set/template/validate."""

    def test_show_template_by_default(self, storage):
        result = invoke("payload", "show", "--storage", storage)

        assert result.exit_code == 0
        assert "your-location-id" in result.output

    def test_template(self):
        result = invoke("payload", "template")

        assert result.exit_code == 0
        assert json.loads(result.output)["environment"] == 4

    def test_set_then_validate(self, storage, payload_file):
        assert invoke("payload", "set", str(payload_file), "--storage", storage).exit_code == 0

        result = invoke("payload", "validate", "--storage", storage)

        assert result.exit_code == 0
        assert "Accepted: locationId=cli-loc" in result.output
        assert "images=1" in result.output

    def test_validate_rejects(self, tmp_path, storage):
        bad = tmp_path / "bad.json"
        bad.write_text(make_payload_text(images=["nope"]))

        result = invoke("payload", "validate", "--file", str(bad), "--storage", storage)

        assert result.exit_code == 1
        assert "Rejected: images[0]" in result.output

    def test_set_invalid_still_stored(self, tmp_path, storage):
        bad = tmp_path / "bad.json"
        bad.write_text("{ draft")

        result = invoke("payload", "set", str(bad), "--storage", storage)

        assert result.exit_code == 0
        assert invoke("payload", "show", "--storage", storage).output.strip() == "{ draft"


def test_version():
    result = invoke("version")

    assert result.exit_code == 0
    assert __version__ in result.output
