"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import uvicorn

import main
from web import api
from web.session_manager import SessionManager


def test_without_web_flag_prints_configuration(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = tmp_path / "dialogue_config.json"

    main.main(["--config", str(config_path)])

    assert config_path.exists()
    out = capsys.readouterr().out
    assert "store:  memory" in out
    assert "5 turns, 15 challenges, 5 rebuttals" in out


def test_web_flag_configures_manager_and_runs_uvicorn(
    tmp_path: Path, seed_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls: list[dict[str, Any]] = []

    def fake_run(app, **kwargs) -> None:
        calls.append({"app": app, **kwargs})

    manager = SessionManager()
    monkeypatch.setattr(api, "session_manager", manager)
    monkeypatch.setattr(uvicorn, "run", fake_run)

    config_path = tmp_path / "dialogue_config.json"
    config = main.get_default_config(config_path)
    config.store.seed_file = str(seed_file)
    config.system.log_level = "WARNING"
    config.save_to_file(config_path)

    main.main(["--web", "--config", str(config_path), "--port", "9123"])

    (call,) = calls
    assert call["app"] is api.app
    assert (call["host"], call["port"], call["log_level"]) == ("0.0.0.0", 9123, "warning")
    assert manager.configured
    assert manager.store is not None and manager.store.store_name == "memory"
