# agentrunner

Building blocks for running an autonomous coding agent in a workspace.

- `agentrunner.frontmatter`: parses the `---` frontmatter header of Markdown templates. It also holds the data types `TemplateMeta`, `TemplateFile`, `TemplateContext` and `Phase`.
- `agentrunner.templates`: loads templates from a defaults directory and a user memory directory. It also seeds and refreshes the defaults, merges by file name, filters by phase, sorts by priority and tracks the first-run `BOOTSTRAP.md`.
- `agentrunner.renderer`: substitutes variables and composes the final prompt.
- `agentrunner.heartbeat`: reads the interval and prompt from `HEARTBEAT.md`.
- `agentrunner.memory`: handles the curated `MEMORY.md` and the daily logs named `YYYY-MM-DD.md`, and commits and pushes them when the memory directory is a git repository.
- `agentrunner.plans`: holds the plan and review data types, parses them from model output, and reads `_progress.json`.
- `agentrunner.workspace`: takes a snapshot of `TODO.md`, the repositories, recent commits and uncommitted changes. It runs `git` to do so.
- `agentrunner.prompts`: builds the prompt for each iteration and detects the `TASK: DONE` signal.
- `agentrunner.agents`: holds the `Planner` and the `Reviewer`.
- `agentrunner.stream_client`: an HTTP and server-sent-events client for a conversation event server.

## Install

```
pip install agentrunner
```

To run the tests, install the `test` extra (`pytest`, `responses`).

## Templates

A template is a Markdown file with an optional frontmatter header:

```
---
title: Tech Stack
read_when: always
priority: 45
---

Use {{REPOS}} for {{MESSAGE}}.
```

`read_when` takes one of these values:

- `always`
- `boot`
- `first_run`: included in the boot phase only when the first-run flag is set
- `heartbeat`

Lower `priority` values come first. Well-known file names get default priorities and `read_when` values when these are missing. Those names are `IDENTITY.md`, `SOUL.md`, `AGENTS.md`, `USER.md`, `TOOLS.md`, `BOOT.md`, `BOOTSTRAP.md` and `HEARTBEAT.md`. Any other file defaults to priority 100, `always`.

When a template has a title, the renderer writes it as an HTML comment before the body.

These placeholders are substituted:

- `{{MESSAGE}}`
- `{{REPOS}}`
- `{{DATE}}`
- `{{ITERATION}}`
- `{{PROJECT_DIR}}`
- `{{RUNNER_URL}}`
- `{{API_KEY}}`

```python
from agentrunner.frontmatter import Phase
from agentrunner.renderer import compose_prompt, new_context

ctx = new_context("Fix the login bug", ["api-server"], 1, "/srv/project", "", "")
prompt = compose_prompt("memory", Phase.BOOT, False, ctx, defaults_dir="defaults")
```

`compose_prompt` reads templates from three places:

1. The defaults, from `defaults_dir`.
2. The templates in the memory directory, which override the defaults by file name. `MEMORY.md` is skipped here.
3. Any extra `TemplateFile` objects passed positionally, which override both.

Other template functions in `agentrunner.templates`:

- `seed_defaults(memory_dir, defaults_dir)` copies the defaults into a memory directory that does not exist yet. It also writes a `.defaults.sha256` manifest.
- `refresh_defaults(memory_dir, defaults_dir)` replaces seeded files only when they are unmodified. It writes back files that are missing.
- `load_prompt_file(src_path, dest_name)` reads a prompt file as a template and adds default frontmatter when the file has none.
- `is_first_run(memory_dir)` and `complete_bootstrap(memory_dir)` check for `BOOTSTRAP.md` and rename it to `BOOTSTRAP.md.done`.

## Heartbeat

```python
from agentrunner.heartbeat import parse_heartbeat_config

config = parse_heartbeat_config("memory", "defaults")
config.interval_seconds, config.prompt
```

The interval comes from `interval_seconds` in the frontmatter. It defaults to 300 when it is missing, not a positive integer, or when no `HEARTBEAT.md` is found.

## Memory

```python
from agentrunner.memory import append_daily_log, commit_and_push_memory, compose_memory_section

append_daily_log("memory", "Deployed v2.1")
section = compose_memory_section("memory", 7)   # MEMORY.md + last 7 daily logs
commit_and_push_memory("memory")
```

`commit_and_push_memory` does nothing unless the directory holds `.git`. It raises `GitError` if staging or committing fails. A failed push is only logged.

## Plans, reviews and iteration prompts

```python
from agentrunner.plans import parse_plan_result, read_progress
from agentrunner.prompts import PromptBuilder, parse_done_signal

plan = parse_plan_result(llm_output)          # ValueError if no plan with steps
plan.mark_done(read_progress("session/workspace") or [])
prompt = PromptBuilder(preamble).build("session/workspace", plan, 2, "fix login", "")
text, done = parse_done_signal(agent_output)
```

The workspace path is the agent's working directory. Every visible directory in it counts as a repository; names starting with `.` or `_` are skipped. `TODO.md` is read from the sibling `state` directory.

`Planner(client, preamble)` calls `client.complete(prompt)` and parses the plan from the answer.

`Reviewer(executor)` calls `executor.execute(workspace_path, prompt)`. The object it returns must have `output` and `raw_output` attributes.

## Stream client

```python
from agentrunner.stream_client import StreamClient

with StreamClient("https://stream.example.com", "token") as client:
    client.send_message("conv-1", "hello", None)
    file_id = client.upload_file("conv-1", "report.txt", "text/plain", b"data")
    for event in client.stream_events("conv-1", 0):
        print(event.seq, event.type)
```

Errors:

- Any request failure or non-success status raises `StreamError`. It carries the status code when there is one.
- `poll_events` raises `NotFoundError` when the server answers 404.

`download_file` reads at most 10 MB of the file.

## What this package does not do

It is a library only. It provides:

- no command-line program or server;
- no chat bots that listen to conversations and drive agent sessions;
- no LLM client and no executor; you supply objects for `Planner` and `Reviewer`;
- no bundled default templates; pass your own `defaults_dir`, or only the memory directory's templates are used.