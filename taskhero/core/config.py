"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TASKHERO_",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated daily)",
    )

    # Project layout
    project_root: Path = Field(
        default=Path("."),
        description="Root directory of the task project",
    )
    tasks_file: str = Field(
        default=".taskmaster/tasks/tasks.json",
        description="Tasks file, relative to project_root",
    )
    requirements_file: str = Field(
        default=".taskmaster/prd/prds.json",
        description="Requirement document metadata file, relative to project_root",
    )
    complexity_report_file: str = Field(
        default=".taskmaster/reports/task-complexity-report.json",
        description="Complexity report file, relative to project_root",
    )

    # Complexity scoring
    complexity_threshold: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Fallback score (0-100) at which an item counts as complex",
    )
    analysis_threshold: float = Field(
        default=5,
        ge=0,
        le=10,
        description="Analysis score (0-10) at which an item counts as complex",
    )
    default_subtasks: int = Field(
        default=3,
        ge=1,
        description="Subtask count used when an analysis omits a recommendation",
    )
    scoring_config_file: str | None = Field(
        default=None,
        description="Optional JSON file overriding the scoring vocabulary",
    )

    # Expansion
    auto_expand: bool = Field(
        default=False,
        description="Expand complex items automatically after a batch is created",
    )
    analysis_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Timeout in seconds for the complexity analysis call",
    )
    expansion_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Timeout in seconds for a single item decomposition call",
    )

    # Status cascade
    cascade_trigger_statuses: list[str] = Field(
        default_factory=lambda: ["in-progress", "done", "pending"],
        description="Item statuses that trigger requirement status re-derivation",
    )

    @property
    def tasks_path(self) -> Path:
        """Absolute path of the tasks file."""
        return (self.project_root / self.tasks_file).resolve()

    @property
    def requirements_path(self) -> Path:
        """Absolute path of the requirement metadata file."""
        return (self.project_root / self.requirements_file).resolve()

    @property
    def complexity_report_path(self) -> Path:
        """Absolute path of the complexity report."""
        return (self.project_root / self.complexity_report_file).resolve()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.complexity_threshold
        60
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
