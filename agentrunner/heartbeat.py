"""Heartbeat configuration read from HEARTBEAT.md."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from agentrunner.frontmatter import parse_frontmatter, parse_kv

PathLike = Union[str, "os.PathLike[str]"]

HEARTBEAT_FILE = "HEARTBEAT.md"
DEFAULT_INTERVAL_SECONDS = 300

_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass
class HeartbeatConfig:
    """How often the heartbeat runs and the prompt it sends."""

    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    prompt: str = ""


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""


def parse_interval_from_content(content: str) -> int:
    """Return ``interval_seconds`` from the frontmatter, or 300 if absent or invalid."""
    lines = content.split("\n")
    if len(lines) < 2 or lines[0].strip() != "---":
        return DEFAULT_INTERVAL_SECONDS

    for line in lines[1:]:
        if line.strip() == "---":
            break
        pair = parse_kv(line)
        if pair is None:
            continue
        key, value = pair
        if key == "interval_seconds" and _INTEGER.fullmatch(value):
            seconds = int(value)
            if seconds > 0:
                return seconds
    return DEFAULT_INTERVAL_SECONDS


def parse_heartbeat_config(
    memory_dir: Optional[PathLike], defaults_dir: Optional[PathLike] = None
) -> HeartbeatConfig:
    """Read HEARTBEAT.md from ``memory_dir``, falling back to ``defaults_dir``."""
    config = HeartbeatConfig()

    content = ""
    if memory_dir:
        content = _read_text(Path(memory_dir) / HEARTBEAT_FILE)
    if not content and defaults_dir is not None:
        content = _read_text(Path(defaults_dir) / HEARTBEAT_FILE)
    if not content:
        return config

    _, body = parse_frontmatter(content)
    config.prompt = body.strip()
    config.interval_seconds = parse_interval_from_content(content)
    return config