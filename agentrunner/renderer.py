"""Rendering templates into a single prompt."""

from __future__ import annotations

import os
from datetime import date
from typing import Iterable, Optional, Sequence, Union

from agentrunner.frontmatter import Phase, TemplateContext, TemplateFile
from agentrunner.templates import (
    filter_by_phase,
    load_defaults,
    load_from_dir,
    merge_templates,
    sort_by_priority,
)

PathLike = Union[str, "os.PathLike[str]"]


def _substitute(body: str, ctx: TemplateContext) -> str:
    replacements = (
        ("{{MESSAGE}}", ctx.message),
        ("{{REPOS}}", ctx.repos),
        ("{{DATE}}", ctx.date),
        ("{{ITERATION}}", str(ctx.iteration)),
        ("{{PROJECT_DIR}}", ctx.project_dir),
        ("{{RUNNER_URL}}", ctx.runner_url),
        ("{{API_KEY}}", ctx.api_key),
    )
    for placeholder, value in replacements:
        body = body.replace(placeholder, value)
    return body


def _render_one(template: TemplateFile, ctx: TemplateContext) -> str:
    body = _substitute(template.body, ctx)
    if template.meta.title:
        return f"<!-- {template.meta.title} -->\n{body}"
    return body


def render(templates: Iterable[TemplateFile], ctx: TemplateContext) -> str:
    """Substitute variables and join the templates, in order, into one prompt."""
    return "\n\n".join(_render_one(t, ctx) for t in templates)


def compose_prompt(
    memory_dir: Optional[PathLike],
    phase: Union[Phase, str],
    first_run: bool,
    ctx: TemplateContext,
    *args: TemplateFile,
    defaults_dir: Optional[PathLike] = None,
) -> str:
    """Load, merge, filter, sort and render templates into the final prompt.

    Defaults come from ``defaults_dir`` and are overridden by templates in
    ``memory_dir``; extra templates passed positionally take precedence over both.
    """
    merged = merge_templates(load_defaults(defaults_dir), load_from_dir(memory_dir))
    if args:
        merged = merge_templates(merged, args)
    selected = filter_by_phase(merged, phase, first_run)
    sort_by_priority(selected)
    return render(selected, ctx)


def new_context(
    message: str,
    repos: Sequence[str],
    iteration: int,
    project_dir: str,
    runner_url: str,
    api_key: str,
) -> TemplateContext:
    """Create a template context with today's date filled in."""
    return TemplateContext(
        message=message,
        repos=", ".join(repos),
        date=date.today().isoformat(),
        iteration=iteration,
        project_dir=project_dir,
        runner_url=runner_url,
        api_key=api_key,
    )