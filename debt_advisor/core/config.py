"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Debt Advice Assistant", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    sqlite_path: Path = Field(
        default=Path("db/conversations.db"),
        description="Transcript DB path.",
    )
    script_path: Path = Field(
        default=DATA_DIR / "script.json",
        description="Scripted conversation steps (JSON).",
    )
    faq_path: Path = Field(
        default=DATA_DIR / "faqs.json",
        description="FAQ knowledge base (JSON).",
    )

    max_reask_attempts: int = Field(
        default=3,
        ge=1,
        description="Re-asks allowed for a slot before it is degraded and the script moves on.",
    )
    min_answer_length: int = Field(
        default=3,
        ge=1,
        description="Minimum stripped length for concern/issue/free-text answers.",
    )
    resync_window: int = Field(
        default=10,
        ge=2,
        description="Trailing transcript turns scanned when resynchronising the step.",
    )
    resync_needle_length: int = Field(
        default=45,
        ge=10,
        description="Normalised prompt prefix length used as a step fingerprint.",
    )
    faq_score_threshold: int = Field(default=18, ge=1, description="Minimum FAQ match score.")

    frontend_origin: AnyHttpUrl | None = Field(
        default=None,
        description="Allowed frontend origin (CORS). If omitted, defaults to localhost dev server.",
    )
    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins for multi-client deployments.",
    )

    openrouter_api_key: str | None = Field(
        default=None,
        description="Optional OpenRouter API key for generated re-prompts.",
    )
    openrouter_model: str = Field(
        default="openai/gpt-4o-mini",
        description="OpenRouter model used for short, simple messages.",
    )
    openrouter_complex_model: str = Field(
        default="openai/gpt-4o",
        description="OpenRouter model used for long or legally complex messages.",
    )
    openrouter_referer: str | None = Field(
        default=None,
        description="Referer header required by OpenRouter (your app URL).",
    )
    openrouter_title: str | None = Field(
        default="Debt Advice Assistant",
        description="Title header sent to OpenRouter.",
    )
    generator_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Upper bound on a single generator call.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the full list of allowed CORS origins."""

        origins: list[str] = []

        if self.frontend_origin:
            origins.append(str(self.frontend_origin).rstrip("/"))
        else:
            origins.extend([
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ])

        for origin in self.additional_origins:
            origins.append(str(origin).rstrip("/"))

        # Deduplicate while preserving order
        seen: set[str] = set()
        unique: list[str] = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique.append(origin)

        return unique

    @property
    def generator_enabled(self) -> bool:
        return bool(self.openrouter_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
