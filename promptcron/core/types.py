"""
promptcron shared types.

All types are dataclasses. Frozen where immutability makes sense.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from promptcron.core.errors import ErrorKind, PromptCronError


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Jobs
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass(frozen=True, slots=True)
class JobDefinition:
    """A recurring prompt, as handed to the scheduler."""

    name: str
    cadence: str  # "0 9 * * 1-5" or, with seconds first, "*/30 * * * * *"
    prompt: str
    enabled: bool = True
    output_path: str | None = None  # template, see scheduler/output.py


@dataclass(frozen=True, slots=True)
class TaskStatus:
    """Snapshot of one active task."""

    name: str
    cadence: str
    next_run: datetime | None = None


@dataclass(slots=True)
class ExecutionOutcome:
    """What happened during one firing of a job."""

    job_name: str
    started_at: datetime
    duration_ms: int = 0
    result: str | None = None
    error: PromptCronError | None = None
    output_path: Path | None = None
    persisted: bool = False
    skipped: bool = False

    @property
    def success(self) -> bool:
        # A persistence failure does not undo a produced result
        return self.result is not None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tools
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Tool specification — everything the LLM needs to call it."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


@dataclass(slots=True)
class ToolResult:
    """Result from invoking a tool over the tool connection."""

    tool_name: str
    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        """Text parts joined by newlines; non-text parts are dropped."""
        return "\n".join(
            item["text"] for item in self.content
            if item.get("type") == "text" and item.get("text") is not None
        )
