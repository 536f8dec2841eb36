"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for openflows. Reads from .env automatically."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Model backend (OpenCode-compatible server)
    opencode_url: str = "http://127.0.0.1:4199"
    opencode_timeout_seconds: float = 600.0

    # "<provider>/<model>", e.g. "anthropic/claude-sonnet-4-5" or "minimax/MiniMax-M2.1"
    default_model: str = "minimax/MiniMax-M2.1"

    # ── Collaboration platform ────────────────────────────────────────
    # GitHub personal access token (PAT) or the Actions GITHUB_TOKEN.
    github_token: str = ""
    github_api_url: str = "https://api.github.com"

    # Working tree the agent operates on. Empty means the process CWD.
    target_repo_path: str = ""

    @field_validator("target_repo_path")
    @classmethod
    def _resolve_repo(cls, value: str) -> str:
        if value:
            return str(Path(value).expanduser().resolve())
        return value

    # Git
    git_author_name: str = "github-actions[bot]"
    git_author_email: str = "github-actions[bot]@users.noreply.github.com"

    # ── Package registry ──────────────────────────────────────────────
    # "npm" or "bun"; selects the CLI used for version bump / pack / publish.
    package_manager: str = "npm"

    # Set by CI runners (CI=true). Enables --provenance on publish.
    ci: bool = False

    command_timeout_seconds: int = 120

    # ── Retry / backoff ───────────────────────────────────────────────
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0

    # ── Session orchestration ─────────────────────────────────────────
    # Time the event consumer keeps running after the prompt call returns,
    # so that in-flight "completed" events are still delivered.
    session_grace_seconds: float = 0.5
    session_queue_size: int = 64

    max_output_chars: int = 12_000

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/openflows.log"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Singleton accessor."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
