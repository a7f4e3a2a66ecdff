"""Harness settings with Pydantic validation and environment loading."""

from __future__ import annotations

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class HarnessSettings(BaseSettings):
    """Harness settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEVHARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Build tool
    build_command: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["mvn", "-B"],
        description="Build tool executable and leading arguments",
    )
    project_dir: Path = Field(
        default=Path("."), description="Directory the build tool runs in"
    )
    log_dir: Optional[Path] = Field(
        default=None,
        description="Where invocation logs are written (default: <project_dir>/target/it-logs)",
    )
    goal_prefix: str = Field(
        default="appengine", description="Plugin prefix prepended to bare goal names"
    )
    goal_timeout_seconds: Optional[float] = Field(
        default=600.0, gt=0, description="Kill a goal that runs longer than this"
    )

    # Dev server
    host: str = Field(default="localhost", description="Host the dev server binds to")
    http_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Timeout for a single HTTP probe"
    )

    # Polling policies (milliseconds)
    readiness_interval_ms: int = Field(default=1000, ge=1)
    readiness_timeout_ms: int = Field(default=60000, ge=1)
    shutdown_interval_ms: int = Field(default=100, ge=1)
    shutdown_timeout_ms: int = Field(default=5000, ge=1)

    # Expected markers
    ready_marker: str = "Dev App Server is now running"
    module_marker_template: str = "Module instance {label} is running"
    content_markers: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "Hello from the App Engine Standard project.",
            "TEST_VAR=testVariableValue",
        ]
    )

    # Log verification (case-sensitive regex, matched per line)
    error_patterns: List[str] = Field(default_factory=lambda: [r"\[ERROR\]"])
    warning_patterns: List[str] = Field(default_factory=lambda: [r"\[WARNING\]"])
    ignore_patterns: List[str] = Field(
        # Velocity template noise the build tool prints as [ERROR]
        default_factory=lambda: [r"VM_global_library\.vm"]
    )
    strict_mode: bool = Field(
        default=False, description="Treat log warnings as errors"
    )

    # Matrix execution
    max_concurrency: int = Field(
        default=1, ge=1, le=16, description="Cases run at the same time"
    )
    require_shutdown_confirmation: bool = Field(
        default=False,
        description="Fail a case when the server is still reachable after stop",
    )

    # Reports
    save_reports: bool = Field(default=True, description="Save a report per failed case")
    report_dir: Path = Field(default=Path("test-results/case-reports"))

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="text", description="Log format: json or text")

    @field_validator("build_command", mode="before")
    @classmethod
    def parse_build_command(cls, v):
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator("build_command")
    @classmethod
    def validate_build_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("build_command must name an executable")
        return v

    @field_validator("content_markers", mode="before")
    @classmethod
    def parse_content_markers(cls, v):
        if isinstance(v, str):
            return [m.strip() for m in v.split("|") if m.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return lower

    @property
    def resolved_log_dir(self) -> Path:
        return self.log_dir or self.project_dir / "target" / "it-logs"

    def module_marker(self, label: str) -> str:
        return self.module_marker_template.format(label=label)


@lru_cache
def get_settings() -> HarnessSettings:
    """Cached settings factory."""
    return HarnessSettings()
