"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "agent-pipeline"
    app_env: str = "dev"
    app_debug: bool = False

    execution_port: int = Field(default=3001, ge=1, le=65535)
    execution_browser: str = "chrome"
    execution_headless: bool = False
    execution_vision: bool = False
    execution_user_data_dir: str | None = None
    execution_executable_path: str | None = None
    execution_base_url: str | None = None
    execution_timeout_s: float = Field(default=60.0, ge=0.1)
    execution_stop_grace_s: float = Field(default=5.0, ge=0.0)
    execution_command: list[str] = Field(default_factory=lambda: ["npx", "@playwright/mcp"])
    execution_install_check_command: list[str] = Field(
        default_factory=lambda: ["npx", "--no-install", "playwright", "--version"]
    )
    execution_autostart: bool = True

    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=8192, ge=1)
    llm_api_key: str = ""

    max_retained_tasks: int = Field(default=1000, ge=1)
    register_default_tools: bool = True
    stream_keepalive_s: float = Field(default=15.0, gt=0.0)

    model_config = SettingsConfigDict(
        env_prefix="AGENT_PIPELINE_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_llm_api_key(self) -> str:
        return self.llm_api_key or os.getenv("OPENAI_API_KEY", "") or os.getenv("GEMINI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
