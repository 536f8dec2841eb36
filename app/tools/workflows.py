"""CI workflow scaffolding — writes ``.github/workflows/<name>.yml`` files.

Templates are plain dicts rendered with PyYAML.  Existing files are never
overwritten.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from app.core.active_repo import get_repo_root
from app.core.logging import get_logger
from app.tools.schemas import WorkflowSetup

logger = get_logger("tools.workflows")

WORKFLOW_DIR = Path(".github") / "workflows"

# workflow choice -> file stem
WORKFLOW_FILES: dict[str, str] = {
    "review": "pr-review",
    "label": "issue-label",
    "doc-sync": "doc-sync",
    "release": "release",
}

_BACKEND_STEP = {
    "name": "Start model backend",
    "run": "bunx opencode-ai serve --port 4199 &",
    "env": {"MINIMAX_API_KEY": "${{ secrets.MINIMAX_API_KEY }}"},
}


def _steps(command: str, checkout: dict[str, Any] | None = None, extra: list[dict[str, Any]] | None = None,
           env: dict[str, str] | None = None) -> list[dict[str, Any]]:
    checkout_step: dict[str, Any] = {"uses": "actions/checkout@v4"}
    if checkout:
        checkout_step["with"] = checkout
    return [
        checkout_step,
        {"uses": "oven-sh/setup-bun@v2"},
        {"uses": "actions/setup-python@v5", "with": {"python-version": "3.12"}},
        *(extra or []),
        {"name": "Install openflows", "run": "pip install openflows"},
        _BACKEND_STEP,
        {
            "name": "Run agent",
            "run": command,
            "env": {"GITHUB_TOKEN": "${{ secrets.GITHUB_TOKEN }}", **(env or {})},
        },
    ]


def _workflow(name: str, on: dict[str, Any], job: str, permissions: dict[str, str],
              steps: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "name": name,
        "on": on,
        "jobs": {job: {"runs-on": "ubuntu-latest", "permissions": permissions, "steps": steps}},
    }


def build_templates() -> dict[str, dict[str, Any]]:
    """File stem -> workflow document."""
    return {
        "pr-review": _workflow(
            "PR Review",
            {"pull_request": {"types": ["opened", "synchronize", "reopened"]}},
            "review",
            {"contents": "read", "pull-requests": "write"},
            _steps(
                "python -m app.main review --repo ${{ github.repository }} "
                "--pr ${{ github.event.pull_request.number }}",
            ),
        ),
        "issue-label": _workflow(
            "Issue Label",
            {"issues": {"types": ["opened"]}},
            "label",
            {"contents": "read", "issues": "write"},
            _steps(
                "python -m app.main label --repo ${{ github.repository }} "
                "--issue ${{ github.event.issue.number }}",
            ),
        ),
        "doc-sync": _workflow(
            "Doc Sync",
            {"pull_request": {"types": ["opened", "synchronize"]}},
            "doc-sync",
            {"contents": "write", "pull-requests": "read"},
            _steps(
                "python -m app.main doc-sync --repo ${{ github.repository }} "
                "--pr ${{ github.event.pull_request.number }}",
                checkout={"ref": "${{ github.head_ref }}"},
            ),
        ),
        "release": _workflow(
            "Release",
            {"workflow_dispatch": {}},
            "release",
            {"contents": "write", "id-token": "write"},
            _steps(
                "python -m app.main release --repo ${{ github.repository }}",
                checkout={"fetch-depth": 0},
                extra=[{
                    "uses": "actions/setup-node@v4",
                    "with": {"node-version": "20", "registry-url": "https://registry.npmjs.org"},
                }],
                env={"NODE_AUTH_TOKEN": "${{ secrets.NPM_TOKEN }}", "CI": "true"},
            ),
        ),
    }


def render_workflow(stem: str) -> str:
    return yaml.safe_dump(build_templates()[stem], sort_keys=False, width=1000)


def setup_workflows(cmd: WorkflowSetup, root: str | Path | None = None) -> str:
    """Write each requested workflow unless the file already exists."""
    workflow_dir = Path(root or get_repo_root()).resolve() / WORKFLOW_DIR
    workflow_dir.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []

    for choice in dict.fromkeys(cmd.workflows):
        stem = WORKFLOW_FILES[choice]
        relative = (WORKFLOW_DIR / f"{stem}.yml").as_posix()
        path = workflow_dir / f"{stem}.yml"
        if path.exists():
            logger.info("workflows  | %s exists, skipping", relative)
            lines.append(f"skipped (already exists): {relative}")
            continue
        try:
            path.write_text(render_workflow(stem), encoding="utf-8")
        except OSError as exc:
            logger.error("workflows  | cannot write %s: %s", relative, exc)
            lines.append(f"failed: {relative}: {exc}")
            continue
        logger.info("workflows  | created %s", relative)
        lines.append(f"created: {relative}")

    lines.append("")
    lines.append("Next steps:")
    lines.append("1. Add the MINIMAX_API_KEY secret: gh secret set MINIMAX_API_KEY")
    lines.append("2. Commit and push the workflow files")
    return "\n".join(lines)
