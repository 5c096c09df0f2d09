"""Assembly of per-iteration prompts and detection of the completion signal."""

from __future__ import annotations

import os
from typing import List, Optional, Tuple, Union

from agentrunner.plans import PlanResult, read_progress
from agentrunner.workspace import read_workspace_state

PathLike = Union[str, "os.PathLike[str]"]

DONE_SIGNAL = "TASK: DONE"

DONE_INSTRUCTION = (
    "When the task is fully complete and no further iterations are needed, "
    "output `TASK: DONE` on its own line at the end of your response. "
    "If there is still work to do, do NOT output it."
)

_PLAN_HEADER = "## Plan (guide only — follow the workflow instructions above)\n\n"
_PLAN_NOTE = (
    "**Important:** The instructions above are the source of truth. This plan is "
    "a rough guide — do not skip steps from the workflow instructions even if they "
    "are not listed in the plan.\n\n"
)
_PROGRESS_INSTRUCTION = (
    "After completing a plan step, update `_progress.json` in the workspace root "
    'with: `{"completed_steps": ["1", "2"]}` listing all completed step IDs.\n\n'
)


def parse_done_signal(output: str) -> Tuple[str, bool]:
    """Return the output without its completion line, and whether it was found."""
    lines = output.split("\n")
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].strip() == DONE_SIGNAL:
            rest = lines[:index] + lines[index + 1 :]
            return "\n".join(rest).strip(), True
    return output, False


class PromptBuilder:
    """Builds iteration prompts from a preamble, a plan and the workspace state."""

    def __init__(self, preamble: str) -> None:
        self.preamble = preamble

    def _plan_section(self, workspace_path: PathLike, plan: PlanResult) -> List[str]:
        completed = set(read_progress(workspace_path) or [])
        parts = [_PLAN_HEADER]
        if plan.summary:
            parts.append(f"**Goal:** {plan.summary}\n")
        if plan.approach:
            parts.append(f"**Approach:** {plan.approach}\n\n")
        for step in plan.steps:
            check = "x" if step.done or step.id in completed else " "
            line = f"- [{check}] {step.id}: {step.description}"
            if step.files:
                line += f" ({', '.join(step.files)})"
            parts.append(line + "\n")
        parts.extend(["\n", _PLAN_NOTE, _PROGRESS_INSTRUCTION])
        return parts

    def build(
        self,
        workspace_path: PathLike,
        plan: Optional[PlanResult],
        iteration: int,
        message: str,
        error_context: str = "",
    ) -> str:
        """Build the prompt for ``iteration``.

        Includes plan progress, TODO.md, recent commits, uncommitted changes
        and, when given, the error context from the previous attempt.
        """
        state = read_workspace_state(workspace_path)
        parts = [self.preamble, "\n\n"]

        if plan is not None and plan.steps:
            parts.extend(self._plan_section(workspace_path, plan))

        if state.todo_content:
            parts.extend(["## Current TODO.md\n\n", state.todo_content, "\n\n"])

        if state.recent_commits:
            parts.append("## Recent Commits\n\n")
            parts.extend(f"- {commit}\n" for commit in state.recent_commits)
            parts.append("\n")

        if state.git_diff_stat:
            parts.extend(
                ["## Uncommitted Changes\n\n", "```\n", state.git_diff_stat, "\n```\n\n"]
            )

        if error_context:
            parts.extend([error_context, "\n"])

        parts.extend([f"**Iteration:** {iteration}\n\n", DONE_INSTRUCTION, "\n"])
        return "".join(parts)

    def build_static(self, message: str, error_context: str = "") -> str:
        """The preamble, optional error context and the completion instruction."""
        parts = [self.preamble]
        if error_context:
            parts.append(error_context)
        parts.append(DONE_INSTRUCTION)
        return "\n\n".join(parts)