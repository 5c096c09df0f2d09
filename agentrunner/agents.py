"""Planning and review agents."""

from __future__ import annotations

import os
from typing import List, Optional, Protocol, Sequence, Union

from agentrunner.plans import (
    PlanResult,
    ReviewResult,
    parse_plan_result,
    parse_review_result,
    read_progress,
)
from agentrunner.workspace import WorkspaceState, read_workspace_state

PathLike = Union[str, "os.PathLike[str]"]

PLANNER_PROMPT = (
    "You are a planning agent. Analyze the workspace, the prompt template "
    "instructions, and the user's request, then produce a structured plan.\n"
    "\n"
    "CRITICAL: If a prompt template is provided above, your plan MUST follow its "
    "workflow exactly. The template defines the required steps (e.g., creating "
    "repos, infrastructure setup, git operations). Do NOT skip or simplify steps "
    "from the template. Include ALL steps the template requires, even if the "
    "workspace already has some repos.\n"
    "\n"
    "You MUST respond with ONLY a JSON object (no markdown, no explanation) in "
    "this exact format:\n"
    "{\n"
    '  "summary": "Brief one-line summary of the task",\n'
    '  "approach": "High-level description of the approach you will take",\n'
    '  "steps": [\n'
    '    {"id": "1", "description": "First concrete step", "files": '
    '["path/to/file.go"], "done": false},\n'
    '    {"id": "2", "description": "Second concrete step", "files": [], '
    '"done": false}\n'
    "  ]\n"
    "}\n"
    "\n"
    "Rules:\n"
    "- Produce 3-15 concrete, actionable steps\n"
    "- Each step should be small enough to complete in one iteration\n"
    '- Include relevant file paths in the "files" array when known\n'
    '- All steps start with "done": false\n'
    "- The summary should capture the goal, not the method\n"
    "- The approach should describe the strategy at a high level\n"
    "- Steps must cover the FULL workflow from the prompt template, including "
    "infrastructure, git operations, and deployment setup\n"
    "\n"
    "After completing a plan step, update `_progress.json` in the workspace root "
    'with: {"completed_steps": ["1", "2"]} listing all completed step IDs.\n'
)

REVIEWER_PROMPT = (
    "You are a code review agent. Review the workspace to assess whether the task "
    "has been completed successfully.\n"
    "\n"
    "You MUST respond with ONLY a JSON object (no markdown, no explanation) in "
    "this exact format:\n"
    "{\n"
    '  "complete": true,\n'
    '  "score": 8,\n'
    '  "issues": ["description of any remaining issues"],\n'
    '  "suggestions": ["suggestions for improvement"]\n'
    "}\n"
    "\n"
    "Rules:\n"
    '- "complete": true if the task appears to be done, false if significant '
    "work remains\n"
    '- "score": 1-10 quality rating (10 = perfect, 1 = barely started)\n'
    '- "issues": list specific problems found (empty array if none)\n'
    '- "suggestions": list actionable improvements (empty array if none)\n'
)


class _Completer(Protocol):
    def complete(self, prompt: str) -> str: ...


class _ExecutionResult(Protocol):
    output: str
    raw_output: str


class _Executor(Protocol):
    def execute(self, workspace_path: PathLike, prompt: str) -> _ExecutionResult: ...


class Planner:
    """Builds a structured plan from a single model completion."""

    def __init__(self, client: _Completer, preamble: str = "") -> None:
        self.client = client
        self.preamble = preamble

    def plan(self, workspace_path: PathLike, message: str) -> PlanResult:
        """Ask the model for a plan for ``message`` in the given workspace.

        Raises RuntimeError when the model call fails and ValueError when its
        answer holds no usable plan.
        """
        state = read_workspace_state(workspace_path)
        prompt = self.build_prompt(state, message)
        try:
            output = self.client.complete(prompt)
        except Exception as exc:
            raise RuntimeError(f"planner LLM call failed: {exc}") from exc

        try:
            result = parse_plan_result(output)
        except ValueError as exc:
            raise ValueError(
                f"failed to parse planner response: {exc} (raw: {output})"
            ) from exc
        result.raw_output = output
        return result

    def build_prompt(self, state: WorkspaceState, message: str) -> str:
        """The full planner prompt for ``message`` and the workspace state."""
        parts: List[str] = []
        if self.preamble:
            parts.extend(["## Context from prompt template\n\n", self.preamble, "\n\n"])

        parts.extend([PLANNER_PROMPT, "\n"])

        if state.repo_names:
            parts.extend(
                ["Repositories in workspace: ", ", ".join(state.repo_names), "\n\n"]
            )
        if state.todo_content:
            parts.extend(["Current TODO.md:\n", state.todo_content, "\n\n"])
        if state.recent_commits:
            parts.extend(["Recent commits:\n", "\n".join(state.recent_commits), "\n\n"])

        parts.extend(["User request: ", message, "\n"])
        return "".join(parts)


class Reviewer:
    """Reviews finished work by running an executor over the workspace."""

    def __init__(self, executor: Optional[_Executor]) -> None:
        self.executor = executor

    def review(
        self, workspace_path: PathLike, message: str, plan: Optional[PlanResult]
    ) -> ReviewResult:
        """Run the review and return its structured result.

        Raises RuntimeError when the executor fails and ValueError when its
        answer holds no usable review.
        """
        if self.executor is None:
            raise RuntimeError("reviewer execution failed: no executor configured")
        state = read_workspace_state(workspace_path)
        completed = read_progress(workspace_path) or []
        prompt = self.build_prompt(state, message, plan, completed)

        try:
            result = self.executor.execute(workspace_path, prompt)
        except Exception as exc:
            raise RuntimeError(f"reviewer execution failed: {exc}") from exc

        output = result.output or result.raw_output
        try:
            review = parse_review_result(output)
        except ValueError as exc:
            raise ValueError(
                f"failed to parse reviewer response: {exc} (raw: {output})"
            ) from exc
        review.raw_output = output
        return review

    def build_prompt(
        self,
        state: WorkspaceState,
        message: str,
        plan: Optional[PlanResult],
        completed_ids: Optional[Sequence[str]],
    ) -> str:
        """The reviewer prompt; steps count as done by flag or completed ID."""
        completed = set(completed_ids or [])
        parts: List[str] = [REVIEWER_PROMPT, "\n", "Original task: ", message, "\n\n"]

        if plan is not None and plan.steps:
            parts.append("Plan that was followed:\n")
            for step in plan.steps:
                check = "x" if step.done or step.id in completed else " "
                parts.append(f"- [{check}] {step.id}: {step.description}\n")
            parts.append("\n")

        if state.repo_names:
            parts.extend(["Repositories: ", ", ".join(state.repo_names), "\n\n"])
        if state.recent_commits:
            parts.extend(["Recent commits:\n", "\n".join(state.recent_commits), "\n\n"])
        if state.git_diff_stat:
            parts.extend(["Uncommitted changes:\n", state.git_diff_stat, "\n"])

        return "".join(parts)