"""Loading, seeding, merging and filtering of prompt templates."""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from agentrunner.frontmatter import Phase, TemplateFile, parse_frontmatter

PathLike = Union[str, "os.PathLike[str]"]

DEFAULTS_MANIFEST = ".defaults.sha256"
BOOTSTRAP_FILE = "BOOTSTRAP.md"
BOOTSTRAP_DONE_FILE = "BOOTSTRAP.md.done"
MEMORY_FILE = "MEMORY.md"

_DEFAULT_FRONTMATTER = "---\nread_when: always\npriority: 100\n---\n"
_FALLBACK_PRIORITY = 100
_FALLBACK_READ_WHEN = "always"

# Well-known template file names: (default priority, default read_when).
WELL_KNOWN_DEFAULTS: Dict[str, Tuple[int, str]] = {
    "IDENTITY.md": (10, "always"),
    "SOUL.md": (20, "always"),
    "AGENTS.md": (30, "always"),
    "USER.md": (40, "always"),
    "TOOLS.md": (50, "always"),
    "BOOT.md": (70, "boot"),
    "BOOTSTRAP.md": (80, "first_run"),
    "HEARTBEAT.md": (90, "heartbeat"),
}


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _markdown_files(directory: Path) -> Iterator[Tuple[str, bytes]]:
    """Yield (name, content) for readable ``*.md`` files, sorted by name."""
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir() or not entry.name.endswith(".md"):
            continue
        try:
            data = entry.read_bytes()
        except OSError:
            continue
        yield entry.name, data


def _default_sources(defaults_dir: Optional[PathLike]) -> Iterator[Tuple[str, bytes]]:
    if defaults_dir is None:
        return iter(())
    return _markdown_files(Path(defaults_dir))


def _try_write(path: Path, data: bytes) -> bool:
    try:
        path.write_bytes(data)
    except OSError:
        return False
    return True


def _read_manifest(path: Path) -> Dict[str, str]:
    try:
        loaded = json.loads(path.read_bytes())
    except (OSError, ValueError):
        return {}
    if not isinstance(loaded, dict):
        return {}
    return {k: v for k, v in loaded.items() if isinstance(v, str)}


def _write_manifest(path: Path, manifest: Dict[str, str]) -> None:
    text = json.dumps(manifest, indent=2, sort_keys=True)
    _try_write(path, text.encode("utf-8"))


def parse_template_file(name: str, content: str) -> TemplateFile:
    """Parse a template and fill in default priority and read_when when missing."""
    meta, body = parse_frontmatter(content)
    priority, read_when = WELL_KNOWN_DEFAULTS.get(
        name, (_FALLBACK_PRIORITY, _FALLBACK_READ_WHEN)
    )
    if meta.priority == 0:
        meta.priority = priority
    if not meta.read_when:
        meta.read_when = read_when
    return TemplateFile(name=name, meta=meta, body=body)


def load_defaults(defaults_dir: Optional[PathLike] = None) -> List[TemplateFile]:
    """Load the default templates from ``defaults_dir`` (none when it is None)."""
    return [
        parse_template_file(name, _decode(data))
        for name, data in _default_sources(defaults_dir)
    ]


def seed_defaults(memory_dir: Optional[PathLike], defaults_dir: Optional[PathLike] = None) -> None:
    """Copy the default templates into ``memory_dir`` on first run.

    Does nothing if ``memory_dir`` is empty or already exists. Writes a
    manifest of the seeded files' hashes for later refreshes.
    """
    if not memory_dir:
        return
    memory = Path(memory_dir)
    if memory.exists():
        return
    memory.mkdir(parents=True, exist_ok=True)

    manifest: Dict[str, str] = {}
    for name, data in _default_sources(defaults_dir):
        (memory / name).write_bytes(data)
        manifest[name] = _sha256(data)

    _write_manifest(memory / DEFAULTS_MANIFEST, manifest)


def refresh_defaults(memory_dir: Optional[PathLike], defaults_dir: Optional[PathLike] = None) -> None:
    """Update seeded templates that the user has not modified.

    A file on disk whose hash equals the hash recorded when it was seeded is
    replaced by the current default. Missing files are written again. Files
    without a manifest entry are recorded as they are and left untouched.
    """
    if not memory_dir:
        return
    memory = Path(memory_dir)
    if not memory.exists():
        return

    manifest_path = memory / DEFAULTS_MANIFEST
    manifest = _read_manifest(manifest_path)
    updated = False

    for name, default_data in _default_sources(defaults_dir):
        default_hash = _sha256(default_data)
        disk_path = memory / name
        try:
            disk_data = disk_path.read_bytes()
        except FileNotFoundError:
            if _try_write(disk_path, default_data):
                manifest[name] = default_hash
                updated = True
            continue
        except OSError:
            continue

        disk_hash = _sha256(disk_data)
        if disk_hash == default_hash:
            manifest[name] = default_hash
            continue
        if name in manifest:
            if disk_hash == manifest[name] and _try_write(disk_path, default_data):
                manifest[name] = default_hash
                updated = True
        else:
            manifest[name] = disk_hash
            updated = True

    if updated:
        _write_manifest(manifest_path, manifest)


def load_from_dir(directory: Optional[PathLike]) -> List[TemplateFile]:
    """Load ``*.md`` templates from a user directory, skipping MEMORY.md.

    Returns an empty list when ``directory`` is empty or does not exist.
    """
    if not directory:
        return []
    path = Path(directory)
    try:
        sources = list(_markdown_files(path))
    except FileNotFoundError:
        return []
    return [
        parse_template_file(name, _decode(data))
        for name, data in sources
        if name != MEMORY_FILE
    ]


def merge_templates(
    defaults: Sequence[TemplateFile], overrides: Sequence[TemplateFile]
) -> List[TemplateFile]:
    """Merge two template lists; overrides replace defaults with the same name."""
    by_name: Dict[str, TemplateFile] = {t.name: t for t in defaults}
    by_name.update((t.name, t) for t in overrides)
    return list(by_name.values())


def filter_by_phase(
    templates: Sequence[TemplateFile], phase: Union[Phase, str], first_run: bool
) -> List[TemplateFile]:
    """Select the templates that apply to ``phase``.

    "always" templates are always kept; the boot phase adds "boot" and, on a
    first run, "first_run"; the heartbeat phase adds "heartbeat".
    """

    def wanted(read_when: str) -> bool:
        if read_when == "always":
            return True
        if phase == Phase.BOOT:
            return read_when == "boot" or (read_when == "first_run" and first_run)
        if phase == Phase.HEARTBEAT:
            return read_when == "heartbeat"
        return False

    return [t for t in templates if wanted(t.meta.read_when)]


def sort_by_priority(templates: List[TemplateFile]) -> None:
    """Sort templates in place by ascending priority."""
    templates.sort(key=lambda t: t.meta.priority)


def _with_default_frontmatter(content: str) -> str:
    if content.strip().startswith("---"):
        return content
    return _DEFAULT_FRONTMATTER + content


def seed_prompt_file(
    memory_dir: Optional[PathLike], src_path: Optional[PathLike], dest_name: str
) -> None:
    """Copy a prompt file into ``memory_dir`` under ``dest_name``.

    Default frontmatter is prepended when the source has none. The
    destination is always overwritten. Superseded by :func:`load_prompt_file`.
    """
    if not memory_dir or not src_path:
        return
    content = _with_default_frontmatter(_decode(Path(src_path).read_bytes()))
    memory = Path(memory_dir)
    memory.mkdir(parents=True, exist_ok=True)
    (memory / dest_name).write_bytes(content.encode("utf-8"))


def load_prompt_file(src_path: Optional[PathLike], dest_name: str) -> Optional[TemplateFile]:
    """Read a prompt file as a template named ``dest_name``; None if no path."""
    if not src_path:
        return None
    content = _with_default_frontmatter(_decode(Path(src_path).read_bytes()))
    return parse_template_file(dest_name, content)


def is_first_run(memory_dir: Optional[PathLike]) -> bool:
    """True when BOOTSTRAP.md exists in ``memory_dir``."""
    if not memory_dir:
        return False
    return (Path(memory_dir) / BOOTSTRAP_FILE).exists()


def complete_bootstrap(memory_dir: Optional[PathLike]) -> None:
    """Rename BOOTSTRAP.md to BOOTSTRAP.md.done; nothing happens if it is absent."""
    if not memory_dir:
        return
    src = Path(memory_dir) / BOOTSTRAP_FILE
    if not src.exists():
        return
    os.replace(src, Path(memory_dir) / BOOTSTRAP_DONE_FILE)