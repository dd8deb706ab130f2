"""
promptcron error model.

Every failure in the system is a PromptCronError tagged with an ErrorKind.
Callers branch on the kind rather than on a class hierarchy.

Usage:
    try:
        scheduler.start(definitions)
    except PromptCronError as e:
        if e.kind is ErrorKind.CONFIGURATION:
            # reject the whole batch
            ...
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """What went wrong, and therefore who has to deal with it."""

    CONFIGURATION = "config_error"   # fatal, raised to the caller of start()
    CONNECTION = "connection_error"  # tool connection unusable, retried next firing
    EXECUTION = "execution_error"    # prompt executor failed for one firing
    PERSISTENCE = "persistence_error"  # result produced but not written


class PromptCronError(Exception):
    """The single exception type raised across promptcron."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    def __repr__(self) -> str:
        return f"PromptCronError({self.kind.name}, {self.message!r})"

    @classmethod
    def configuration(cls, message: str, **details: Any) -> PromptCronError:
        return cls(ErrorKind.CONFIGURATION, message, details)

    @classmethod
    def connection(cls, message: str, **details: Any) -> PromptCronError:
        return cls(ErrorKind.CONNECTION, message, details)

    @classmethod
    def execution(cls, message: str, **details: Any) -> PromptCronError:
        return cls(ErrorKind.EXECUTION, message, details)

    @classmethod
    def persistence(cls, message: str, **details: Any) -> PromptCronError:
        return cls(ErrorKind.PERSISTENCE, message, details)
