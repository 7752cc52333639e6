"""Tests for termhost.config.TerminalConfig."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from termhost.config import FALLBACK_SHELL, TerminalConfig

_ENV_VARS = (
    "TERMHOST_SHELL",
    "TERMHOST_INACTIVITY_TIMEOUT",
    "TERMHOST_MAX_BUFFER_LINES",
    "TERMHOST_MAX_BUFFER_BYTES",
    "TERMHOST_EXIT_GRACE_PERIOD",
    "TERMHOST_COLS",
    "TERMHOST_ROWS",
    "TERMHOST_TERM",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # Keep load_dotenv() away from any .env in the working tree
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_values(self) -> None:
        cfg = TerminalConfig()
        assert cfg.default_shell is None
        assert cfg.inactivity_timeout == 600.0
        assert cfg.max_buffer_lines == 10_000
        assert cfg.max_buffer_bytes == 10 * 1024 * 1024
        assert cfg.exit_grace_period == 5.0
        assert (cfg.default_cols, cfg.default_rows) == (80, 24)
        assert cfg.term_name == "xterm-256color"
        assert cfg.read_chunk_size == 4096

    @pytest.mark.parametrize(
        "field", ["inactivity_timeout", "max_buffer_lines", "max_buffer_bytes", "exit_grace_period", "default_cols"]
    )
    def test_rejects_non_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            TerminalConfig(**{field: 0})


class TestResolveShell:
    def test_configured_shell_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHELL", "/bin/zsh")
        assert TerminalConfig(default_shell="/bin/sh").resolve_shell() == "/bin/sh"

    def test_falls_back_to_env_shell(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHELL", "/bin/zsh")
        assert TerminalConfig().resolve_shell() == "/bin/zsh"

    def test_hardcoded_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHELL", raising=False)
        assert TerminalConfig().resolve_shell() == FALLBACK_SHELL == "bash"


class TestLoad:
    def test_load_defaults(self) -> None:
        assert TerminalConfig.load() == TerminalConfig()

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "termhost.json"
        path.write_text(json.dumps({"max_buffer_lines": 500, "default_cols": 120}))
        cfg = TerminalConfig.load(str(path))
        assert cfg.max_buffer_lines == 500
        assert cfg.default_cols == 120

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg = TerminalConfig.load(str(tmp_path / "nope.json"))
        assert cfg == TerminalConfig()

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "termhost.json"
        path.write_text(json.dumps({"inactivity_timeout": 30}))
        monkeypatch.setenv("TERMHOST_INACTIVITY_TIMEOUT", "90.5")
        monkeypatch.setenv("TERMHOST_SHELL", "/bin/sh")
        monkeypatch.setenv("TERMHOST_ROWS", "50")
        cfg = TerminalConfig.load(str(path))
        assert cfg.inactivity_timeout == 90.5
        assert cfg.default_shell == "/bin/sh"
        assert cfg.default_rows == 50

    def test_invalid_env_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMHOST_MAX_BUFFER_LINES", "lots")
        with pytest.raises(ValidationError):
            TerminalConfig.load()
