"""Structured plans and reviews produced by the planning and review agents."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

PathLike = Union[str, "os.PathLike[str]"]

PROGRESS_FILE = "_progress.json"


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _bool(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


def _int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r} must be an array")
    return value


def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    items = _list(data, key)
    if not all(isinstance(item, str) for item in items):
        raise ValueError(f"field {key!r} must hold strings")
    return list(items)


def _object(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("expected a JSON object")
    return value


@dataclass
class PlanStep:
    """One step of a plan."""

    id: str
    description: str = ""
    files: List[str] = field(default_factory=list)
    done: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "PlanStep":
        obj = _object(data)
        return cls(
            id=_str(obj, "id"),
            description=_str(obj, "description"),
            files=_str_list(obj, "files"),
            done=_bool(obj, "done"),
        )


@dataclass
class PlanResult:
    """A structured plan: summary, approach and ordered steps."""

    summary: str = ""
    steps: List[PlanStep] = field(default_factory=list)
    approach: str = ""
    raw_output: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "PlanResult":
        obj = _object(data)
        return cls(
            summary=_str(obj, "summary"),
            steps=[PlanStep.from_dict(step) for step in _list(obj, "steps")],
            approach=_str(obj, "approach"),
        )

    def mark_done(self, completed_ids: Iterable[str]) -> None:
        """Mark every step whose ID is in ``completed_ids`` as done."""
        completed = set(completed_ids)
        for step in self.steps:
            if step.id in completed:
                step.done = True

    def remaining_steps(self) -> List[PlanStep]:
        """Steps not yet done, in plan order."""
        return [step for step in self.steps if not step.done]


@dataclass
class ReviewResult:
    """A structured review of finished work."""

    complete: bool = False
    score: int = 0
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    raw_output: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "ReviewResult":
        obj = _object(data)
        return cls(
            complete=_bool(obj, "complete"),
            score=_int(obj, "score"),
            issues=_str_list(obj, "issues"),
            suggestions=_str_list(obj, "suggestions"),
        )


def _candidates(output: str) -> List[str]:
    """The whole text, then the span from the first '{' to the last '}'."""
    text = output.strip()
    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if start >= 0 and end > start:
        candidates.append(text[start : end + 1])
    return candidates


def parse_plan_result(output: str) -> PlanResult:
    """Extract a plan with at least one step from model output.

    Raises ValueError when no such plan is found.
    """
    for candidate in _candidates(output):
        try:
            plan = PlanResult.from_dict(json.loads(candidate))
        except ValueError:
            continue
        if plan.steps:
            return plan
    raise ValueError("no valid plan JSON found in output")


def parse_review_result(output: str) -> ReviewResult:
    """Extract a review from model output; raises ValueError if none is found."""
    for candidate in _candidates(output):
        try:
            return ReviewResult.from_dict(json.loads(candidate))
        except ValueError:
            continue
    raise ValueError("no valid review JSON found in output")


def read_progress(workspace_path: PathLike) -> Optional[List[str]]:
    """Completed step IDs from ``_progress.json``; None if missing or invalid."""
    try:
        data = json.loads((Path(workspace_path) / PROGRESS_FILE).read_bytes())
        obj = _object(data)
        if obj.get("completed_steps") is None:
            return None
        return _str_list(obj, "completed_steps")
    except (OSError, ValueError):
        return None