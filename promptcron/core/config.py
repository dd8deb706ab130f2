"""
promptcron configuration — loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables
3. Project config (./promptcron.toml)
4. User config (~/.promptcron/config.toml)
5. Defaults (hardcoded)

Environment variable mapping:
    ANTHROPIC_API_KEY → anthropic.api_key
    PROMPTCRON_ANTHROPIC_MODEL → anthropic.model
    PROMPTCRON_LOG_LEVEL / LOG_LEVEL → logging.level
    PROMPTCRON_LOG_DIR → logging.dir
    PROMPTCRON_TIMEZONE → scheduler.timezone
    PROMPTCRON_EXECUTION_TIMEOUT → scheduler.execution_timeout

Schedules live in the TOML file as an array of tables:

    [[schedules]]
    name = "nightly-report"
    cron = "0 3 * * *"
    prompt = "Summarise the files in ./data into a short report."
    output_path = "reports/{name}-{date}.md"

${VAR} references are expanded from the environment everywhere except in
schedule prompts, which are sent to the model exactly as written.
"""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from promptcron.core.errors import PromptCronError
from promptcron.core.types import JobDefinition

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def is_safe_relative_path(value: str) -> bool:
    """True for relative paths that do not climb out with '..'."""
    if PurePosixPath(value).is_absolute() or PureWindowsPath(value).is_absolute():
        return False
    parts = re.split(r"[\\/]+", value)
    return ".." not in parts


class JobConfig(BaseModel):
    """One scheduled prompt."""

    name: str
    cron: str
    prompt: str
    enabled: bool = True
    output_path: str | None = None

    @field_validator("name", "cron", "prompt")
    @classmethod
    def _not_blank(cls, value: str, info: Any) -> str:
        if not value.strip():
            raise ValueError(f"{info.field_name} must not be empty")
        return value

    @field_validator("output_path")
    @classmethod
    def _relative_output(cls, value: str | None) -> str | None:
        if value is not None and not is_safe_relative_path(value):
            raise ValueError(f"invalid output path: {value}")
        return value

    def to_definition(self) -> JobDefinition:
        return JobDefinition(
            name=self.name,
            cadence=self.cron,
            prompt=self.prompt,
            enabled=self.enabled,
            output_path=self.output_path,
        )


class McpConfig(BaseModel):
    """Filesystem MCP server launched as a child process."""

    command: str = "npx"
    args: list[str] = Field(
        default_factory=lambda: ["-y", "@modelcontextprotocol/server-filesystem"]
    )
    allowed_directories: list[str] = Field(
        default_factory=lambda: ["./data", "./reports"]
    )

    @field_validator("command")
    @classmethod
    def _command_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("MCP filesystem command is required")
        return value

    @field_validator("allowed_directories")
    @classmethod
    def _directories(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one allowed directory must be specified")
        for directory in value:
            if not is_safe_relative_path(directory):
                raise ValueError(f"invalid allowed directory: {directory}")
        return value


class AnthropicConfig(BaseModel):
    """Anthropic Messages API configuration."""

    api_key: str = ""
    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = Field(default=4096, ge=1, le=100000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tool_rounds: int = Field(default=10, ge=1)

    @field_validator("model")
    @classmethod
    def _model_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Anthropic model is required")
        return value


class LoggingConfig(BaseModel):
    """Log level and log file directory."""

    level: str = "info"
    dir: str = "logs"


class SchedulerConfig(BaseModel):
    """Trigger engine configuration."""

    timezone: str = "UTC"
    execution_timeout: float | None = None  # seconds, None = wait forever

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {value}") from e
        return value


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class PromptCronConfig(BaseModel):
    """Root configuration for promptcron."""

    schedules: list[JobConfig] = Field(default_factory=list)
    mcp: McpConfig = Field(default_factory=McpConfig)
    anthropic: AnthropicConfig = Field(default_factory=AnthropicConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @model_validator(mode="after")
    def _unique_schedule_names(self) -> PromptCronConfig:
        seen: set[str] = set()
        for job in self.schedules:
            if job.name in seen:
                raise ValueError(f"duplicate schedule name: {job.name}")
            seen.add(job.name)
        return self

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> PromptCronConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        user_config_path = user_path or Path.home() / ".promptcron" / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        project_config_path = project_path or Path.cwd() / "promptcron.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))
        elif project_path is not None:
            raise PromptCronError.configuration(
                f"Config file not found: {project_path}", path=str(project_path)
            )

        _deep_merge(merged, _load_from_env())

        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return PromptCronConfig(**merged)
        except Exception as e:
            raise PromptCronError.configuration(f"Invalid configuration: {e}") from e

    def definitions(self) -> list[JobDefinition]:
        """Schedules as scheduler job definitions."""
        return [job.to_definition() for job in self.schedules]

    def require_api_key(self) -> str:
        if not self.anthropic.api_key:
            raise PromptCronError.configuration(
                "ANTHROPIC_API_KEY environment variable is required"
            )
        return self.anthropic.api_key

    def get_log_dir(self) -> Path:
        return Path(self.logging.dir).expanduser().resolve()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise PromptCronError.configuration(
            f"Failed to load config from {path}: {e}", path=str(path)
        ) from e


# Checked in order; a later variable for the same key wins
_ENV_MAPPING: list[tuple[str, tuple[str, str]]] = [
    ("ANTHROPIC_API_KEY", ("anthropic", "api_key")),
    ("PROMPTCRON_ANTHROPIC_MODEL", ("anthropic", "model")),
    ("LOG_LEVEL", ("logging", "level")),
    ("PROMPTCRON_LOG_LEVEL", ("logging", "level")),
    ("PROMPTCRON_LOG_DIR", ("logging", "dir")),
    ("PROMPTCRON_TIMEZONE", ("scheduler", "timezone")),
    ("PROMPTCRON_EXECUTION_TIMEOUT", ("scheduler", "execution_timeout")),
]

# Keys that must stay strings even when they look numeric
_STRING_KEYS = {("anthropic", "api_key"), ("anthropic", "model"), ("logging", "dir")}


def _load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables."""
    result: dict[str, Any] = {}

    for env_var, (section, key) in _ENV_MAPPING:
        value = os.environ.get(env_var)
        if value is None or value == "":
            continue
        if section not in result:
            result[section] = {}
        if (section, key) in _STRING_KEYS:
            result[section][key] = value
        else:
            result[section][key] = _convert_value(value)

    return result


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute(value: str) -> str:
    for var_name in _ENV_PATTERN.findall(value):
        value = value.replace(f"${{{var_name}}}", os.environ.get(var_name, ""))
    return value


# String values under these keys reach the model verbatim
_VERBATIM_KEYS = {"prompt"}


def _substitute_env_vars(data: Any) -> None:
    """Recursively substitute ${ENV_VAR} patterns in string values, except prompts."""
    items = data.items() if isinstance(data, dict) else enumerate(data)
    for key, value in list(items):
        if isinstance(value, (dict, list)):
            _substitute_env_vars(value)
        elif isinstance(value, str) and key not in _VERBATIM_KEYS:
            data[key] = _substitute(value)
