"""Template frontmatter parsing and the data types used by the template pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

_DELIMITER = "---"
_INTEGER = re.compile(r"[+-]?[0-9]+")


class Phase(str, Enum):
    """Execution phase used to select which templates are included."""

    BOOT = "boot"
    HEARTBEAT = "heartbeat"


@dataclass
class TemplateMeta:
    """Metadata taken from a template's frontmatter block."""

    title: str = ""
    summary: str = ""
    read_when: str = ""  # always | boot | first_run | heartbeat
    priority: int = 0


@dataclass
class TemplateFile:
    """A loaded template: file name, parsed metadata and body text."""

    name: str
    meta: TemplateMeta = field(default_factory=TemplateMeta)
    body: str = ""


@dataclass
class TemplateContext:
    """Values substituted for the placeholders in template bodies."""

    message: str = ""
    repos: str = ""
    date: str = ""
    iteration: int = 0
    project_dir: str = ""
    runner_url: str = ""
    api_key: str = ""


def parse_kv(line: str) -> Optional[Tuple[str, str]]:
    """Split a ``key: value`` line; return None if there is no colon or no key."""
    key, sep, value = line.partition(":")
    if not sep:
        return None
    key = key.strip()
    if not key:
        return None
    return key, value.strip()


def parse_frontmatter(content: str) -> Tuple[TemplateMeta, str]:
    """Split ``content`` into frontmatter metadata and body.

    Frontmatter is a block delimited by ``---`` lines at the top of the text.
    Without a complete block the metadata is empty and the content is
    returned unchanged; otherwise the body after the block is stripped.
    """
    meta = TemplateMeta()
    lines = content.split("\n")
    if len(lines) < 2 or lines[0].strip() != _DELIMITER:
        return meta, content

    end = next(
        (i for i, line in enumerate(lines[1:], start=1) if line.strip() == _DELIMITER),
        None,
    )
    if end is None:
        return meta, content

    for line in lines[1:end]:
        pair = parse_kv(line)
        if pair is None:
            continue
        key, value = pair
        if key == "title":
            meta.title = value
        elif key == "summary":
            meta.summary = value
        elif key == "read_when":
            meta.read_when = value
        elif key == "priority" and _INTEGER.fullmatch(value):
            meta.priority = int(value)

    body = "\n".join(lines[end + 1 :])
    return meta, body.strip()