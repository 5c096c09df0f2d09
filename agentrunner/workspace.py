"""Snapshot of a workspace's files and git state for prompt injection."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

PathLike = Union[str, "os.PathLike[str]"]

TODO_FILE = "TODO.md"
STATE_DIR = "state"


@dataclass
class WorkspaceState:
    """TODO contents, repositories, recent commits and uncommitted changes."""

    todo_content: str = ""
    recent_commits: List[str] = field(default_factory=list)
    repo_names: List[str] = field(default_factory=list)
    git_diff_stat: str = ""


def _git(directory: Path, *args: str) -> str:
    """Run git in ``directory``; return stripped stdout, or "" on any failure."""
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=directory,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return ""
    if completed.returncode != 0:
        return ""
    return completed.stdout.strip()


def _read_todo(workspace_path: PathLike) -> str:
    todo_path = os.path.normpath(
        os.path.join(os.fspath(workspace_path), "..", STATE_DIR, TODO_FILE)
    )
    try:
        return Path(todo_path).read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        return ""


def _repo_names(workspace_path: PathLike) -> List[str]:
    try:
        with os.scandir(workspace_path) as entries:
            names = [
                entry.name
                for entry in entries
                if entry.is_dir(follow_symlinks=False)
                and not entry.name.startswith((".", "_"))
            ]
    except OSError:
        return []
    return sorted(names)


def read_workspace_state(workspace_path: PathLike) -> WorkspaceState:
    """Read the workspace state.

    Repositories are the visible directories directly in ``workspace_path``
    (names starting with "." or "_" are skipped). TODO.md is read from the
    sibling ``state`` directory.
    """
    state = WorkspaceState(
        todo_content=_read_todo(workspace_path),
        repo_names=_repo_names(workspace_path),
    )

    diffs: List[str] = []
    for repo in state.repo_names:
        repo_dir = Path(workspace_path) / repo

        log = _git(repo_dir, "log", "--oneline", "-10")
        state.recent_commits.extend(
            f"{repo}: {line.strip()}" for line in log.split("\n") if line.strip()
        )

        diff = _git(repo_dir, "diff", "--stat")
        if diff:
            diffs.append(f"{repo}:\n{diff}")

    state.git_diff_stat = "\n".join(diffs)
    return state