"""Tests for the command line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from livesync import __main__ as cli
from livesync.config import SyncConfig


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_structured_logging", lambda **kwargs: None)


class TestMain:
    def test_missing_config_file(self, temp_dir: Path) -> None:
        assert cli.main(["--config", str(temp_dir / "missing.yaml")]) == 2

    def test_runs_with_yaml_config(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        settings = temp_dir / "settings.yaml"
        settings.write_text(
            yaml.dump({"sync": {"state_uri": "uri", "watch_dir": str(temp_dir / "live")}})
        )
        calls: list[tuple[SyncConfig, Path | None]] = []

        async def fake_run(config: SyncConfig, settings_path: Path | None = None) -> None:
            calls.append((config, settings_path))

        monkeypatch.setattr(cli, "run", fake_run)

        assert cli.main(["--config", str(settings), "--log-level", "DEBUG"]) == 0
        assert calls[0][0].state_uri == "uri"
        assert calls[0][1] == settings

    def test_environment_config(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LIVESYNC_STATE_URI", raising=False)
        monkeypatch.delenv("LIVESYNC_WATCH_DIR", raising=False)
        assert cli.main([]) == 2

    def test_rejects_unknown_log_level(self) -> None:
        with pytest.raises(SystemExit):
            cli.main(["--log-level", "LOUD"])
