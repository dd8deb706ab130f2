"""
Output paths and the file sink that writes job results.

Templates understand three placeholders:
    {name}       job name, verbatim
    {timestamp}  UTC time like 2024-01-15T03-00-00-000Z (':' and '.' → '-')
    {date}       UTC date like 2024-01-15

Anything else in braces is left as-is.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


def _timestamp(now: datetime) -> str:
    utc = now.astimezone(timezone.utc)
    iso = utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def resolve_output_template(template: str, job_name: str, now: datetime) -> str:
    """Expand the placeholders in `template`. Never raises."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (
        template
        .replace("{name}", job_name)
        .replace("{timestamp}", _timestamp(now))
        .replace("{date}", now.astimezone(timezone.utc).strftime("%Y-%m-%d"))
    )


def resolve_output_path(
    template: str,
    job_name: str,
    now: datetime,
    base_dir: Path | None = None,
) -> Path:
    """Expand `template` and anchor it at `base_dir` (default: cwd)."""
    expanded = Path(resolve_output_template(template, job_name, now))
    if not expanded.is_absolute():
        expanded = (base_dir or Path.cwd()) / expanded
    return expanded.resolve()


class OutputSink(Protocol):
    """Where job results are written."""

    def ensure_dir(self, path: Path) -> None:
        ...

    def write_file(self, path: Path, content: str) -> None:
        ...


class FileOutputSink:
    """Writes results as UTF-8 text files."""

    def ensure_dir(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def write_file(self, path: Path, content: str) -> None:
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Output saved to {path} ({len(content)} chars)")
