"""Configuration: Pydantic model for terminal session settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

FALLBACK_SHELL = "bash"

# Env var -> field name; pydantic coerces the string values
_ENV_OVERRIDES: dict[str, str] = {
    "TERMHOST_SHELL": "default_shell",
    "TERMHOST_INACTIVITY_TIMEOUT": "inactivity_timeout",
    "TERMHOST_MAX_BUFFER_LINES": "max_buffer_lines",
    "TERMHOST_MAX_BUFFER_BYTES": "max_buffer_bytes",
    "TERMHOST_EXIT_GRACE_PERIOD": "exit_grace_period",
    "TERMHOST_COLS": "default_cols",
    "TERMHOST_ROWS": "default_rows",
    "TERMHOST_TERM": "term_name",
}


class TerminalConfig(BaseModel):
    """Terminal session manager configuration.

    Durations are in seconds.
    """

    default_shell: str | None = Field(
        default=None,
        description="Shell to spawn when a request names none. Falls back to $SHELL, then bash.",
    )
    inactivity_timeout: float = Field(
        default=600.0, gt=0, description="Idle time before a session is reclaimed"
    )
    max_buffer_lines: int = Field(
        default=10_000, gt=0, description="Maximum lines kept per session"
    )
    max_buffer_bytes: int = Field(
        default=10 * 1024 * 1024, gt=0, description="Maximum buffered bytes per session"
    )
    exit_grace_period: float = Field(
        default=5.0,
        gt=0,
        description="How long an exited session stays readable before it is purged",
    )
    default_cols: int = Field(default=80, gt=0)
    default_rows: int = Field(default=24, gt=0)
    term_name: str = Field(default="xterm-256color", description="TERM for spawned processes")
    terminate_timeout: float = Field(
        default=2.0,
        gt=0,
        description="Wait after SIGHUP before an idle session's process is force-killed",
    )
    read_chunk_size: int = Field(default=4096, gt=0, description="Bytes per read from the PTY master")

    def resolve_shell(self) -> str:
        """Configured shell, else $SHELL, else bash."""
        return self.default_shell or os.environ.get("SHELL") or FALLBACK_SHELL

    @classmethod
    def load(cls, config_path: str | None = None) -> TerminalConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TERMHOST_SHELL               - Default shell command
            TERMHOST_INACTIVITY_TIMEOUT  - Idle timeout in seconds
            TERMHOST_MAX_BUFFER_LINES    - Buffer line cap per session
            TERMHOST_MAX_BUFFER_BYTES    - Buffer size cap per session
            TERMHOST_EXIT_GRACE_PERIOD   - Seconds an exited session stays readable
            TERMHOST_COLS / TERMHOST_ROWS - Default terminal size
            TERMHOST_TERM                - TERM for spawned processes
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        for env_var, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                config_data[field_name] = value

        return cls.model_validate(config_data)
