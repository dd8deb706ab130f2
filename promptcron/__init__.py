"""
promptcron — run LLM prompts on cron schedules, with MCP tools.

Public API:
    from promptcron import Scheduler, JobDefinition, PromptCronConfig
"""

__version__ = "0.1.0"

# Core
from promptcron.core.config import PromptCronConfig
from promptcron.core.errors import ErrorKind, PromptCronError
from promptcron.core.types import ExecutionOutcome, JobDefinition, TaskStatus

# Scheduler
from promptcron.scheduler.cadence import validate_cadence
from promptcron.scheduler.engine import Scheduler
from promptcron.scheduler.output import resolve_output_path

# Collaborators
from promptcron.llm.base import PromptExecutor
from promptcron.tools.base import ToolConnection

__all__ = [
    # Core
    "PromptCronConfig",
    "ErrorKind",
    "PromptCronError",
    "ExecutionOutcome",
    "JobDefinition",
    "TaskStatus",
    # Scheduler
    "validate_cadence",
    "Scheduler",
    "resolve_output_path",
    # Collaborators
    "PromptExecutor",
    "ToolConnection",
]
