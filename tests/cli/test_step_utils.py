from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import pytest

from onapsis_scan.cli.services.step_utils import StepUtilsBundle
from onapsis_scan.scanner.errors import CommandError


def test_getcwd_and_file_access(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "data.bin").write_bytes(b"\x00\x01")
    utils = StepUtilsBundle()

    assert utils.getcwd() == os.getcwd()
    assert utils.file_exists(tmp_path / "data.bin")
    assert not utils.file_exists(tmp_path / "missing.bin")
    assert not utils.file_exists(tmp_path)
    with utils.open(tmp_path / "data.bin") as handle:
        assert handle.read() == b"\x00\x01"


def test_run_executable_routes_output_to_log(caplog):
    utils = StepUtilsBundle()
    script = "import sys; print('hello'); print('careful', file=sys.stderr)"

    with caplog.at_level(logging.INFO):
        assert utils.run_executable(sys.executable, "-c", script) == 0

    messages = [(record.levelno, record.getMessage()) for record in caplog.records]
    assert (logging.INFO, "hello") in messages
    assert (logging.WARNING, "careful") in messages


def test_run_executable_failure():
    with pytest.raises(CommandError) as excinfo:
        StepUtilsBundle().run_executable(sys.executable, "-c", "raise SystemExit(3)")

    assert excinfo.value.returncode == 3
    assert excinfo.value.code == "COMMAND_FAILED"


def test_run_executable_missing_binary():
    with pytest.raises(CommandError, match="failed to run"):
        StepUtilsBundle().run_executable("definitely-not-a-real-binary-xyz")


def test_emit_telemetry_logs_payload(caplog):
    with caplog.at_level(logging.DEBUG, logger="onapsis_scan.telemetry"):
        StepUtilsBundle().emit_telemetry({"step": "onapsisExecuteScan", "outcome": "success"})

    record = caplog.records[-1]
    assert record.name == "onapsis_scan.telemetry"
    assert json.loads(record.getMessage()) == {"outcome": "success", "step": "onapsisExecuteScan"}
