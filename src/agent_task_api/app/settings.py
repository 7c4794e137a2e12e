"""Application settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "agent-task-api"
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=0, le=65535)
    log_level: str = "INFO"
    claude_executable_path: str = "claude"
    default_timeout_s: float = Field(default=300.0, gt=0)
    max_concurrent_tasks: int = Field(default=5, ge=1)
    temp_dir: Path = Path("temp")
    enable_auth: bool = False
    api_key: str = ""
    rate_limit_per_minute: int = Field(default=60, ge=0)
    repo_service_url: str = "http://localhost:8510"
    repo_base_branch: str = "main"
    repo_timeout_s: float = Field(default=60.0, gt=0)
    health_check_timeout_s: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="TASK_API_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_temp_dir(self) -> Path:
        return self.temp_dir.expanduser().resolve()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
