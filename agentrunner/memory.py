"""Agent memory: curated notes, daily logs and committing them to git."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

PathLike = Union[str, "os.PathLike[str]"]

MEMORY_FILE = "MEMORY.md"
DEFAULT_DAYS = 7

_DATE_NAME = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

logger = logging.getLogger(__name__)


class GitError(Exception):
    """A git command run in the memory directory failed."""

    def __init__(self, command: Sequence[str], message: str, stderr: str = "") -> None:
        self.command = list(command)
        self.message = message
        self.stderr = stderr
        super().__init__(stderr or message)

    def __str__(self) -> str:
        return self.stderr or self.message


def _parse_log_date(stem: str) -> Optional[date]:
    if not _DATE_NAME.fullmatch(stem):
        return None
    try:
        return date.fromisoformat(stem)
    except ValueError:
        return None


def _load_daily_logs(directory: Path, days: int) -> List[str]:
    """Return the last ``days`` non-empty daily logs, oldest first."""
    try:
        entries = list(directory.iterdir())
    except OSError:
        return []

    logs: List[Tuple[date, str]] = []
    for entry in entries:
        if entry.is_dir() or not entry.name.endswith(".md"):
            continue
        day = _parse_log_date(entry.name[: -len(".md")])
        if day is None:
            continue
        try:
            content = entry.read_text(encoding="utf-8", errors="replace").strip()
        except OSError:
            continue
        if content:
            logs.append((day, content))

    logs.sort(key=lambda item: item[0])
    return [f"### {day.isoformat()}\n\n{content}" for day, content in logs[-days:]]


def compose_memory_section(memory_dir: Optional[PathLike], days: int = DEFAULT_DAYS) -> str:
    """Build the memory section from MEMORY.md and the last ``days`` daily logs.

    Returns an empty string when there is no memory content.
    """
    if not memory_dir:
        return ""
    if days <= 0:
        days = DEFAULT_DAYS

    directory = Path(memory_dir)
    parts: List[str] = []
    try:
        curated = (directory / MEMORY_FILE).read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        curated = ""
    if curated:
        parts.append(curated)
    parts.extend(_load_daily_logs(directory, days))

    if not parts:
        return ""
    return "## Memory\n\n" + "\n\n---\n\n".join(parts)


def append_daily_log(memory_dir: Optional[PathLike], entry: str) -> None:
    """Append ``entry`` as a line to today's log file, creating the directory."""
    if not memory_dir:
        return
    directory = Path(memory_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{date.today().isoformat()}.md"
    with path.open("a", encoding="utf-8") as log:
        log.write(entry + "\n")


def _git(directory: Path, *args: str) -> str:
    command = ["git", *args]
    try:
        completed = subprocess.run(
            command, cwd=directory, capture_output=True, text=True, check=False
        )
    except OSError as exc:
        raise GitError(command, str(exc)) from exc
    if completed.returncode != 0:
        raise GitError(command, f"exit status {completed.returncode}", completed.stderr)
    return completed.stdout


def commit_and_push_memory(memory_dir: Optional[PathLike]) -> None:
    """Commit all changes in ``memory_dir`` and push them if possible.

    Nothing happens unless the directory is a git repository. A failed push
    is logged, not raised.
    """
    if not memory_dir:
        return
    directory = Path(memory_dir)
    if not (directory / ".git").exists():
        return

    _git(directory, "add", "-A")
    if not _git(directory, "status", "--porcelain").strip():
        return

    _git(directory, "commit", "-m", f"[memory] {date.today().isoformat()}")

    try:
        _git(directory, "push")
    except GitError as exc:
        logger.warning("memory git push failed (no remote configured?): %s", exc)