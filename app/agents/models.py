"""Task prompts and model selection.

Each task (review, label, doc-sync, release) has a prompt template in
``prompts/<task>.txt``.  Templates use ``$NAME`` / ``${NAME}`` placeholders
filled from the task context; a placeholder with no value is an error rather
than a silently empty string.

Model names use the backend's ``provider/model`` form.  Set DEFAULT_MODEL in
.env, or pass ``--model`` on the command line.
"""

from __future__ import annotations

from pathlib import Path
from string import Template
from typing import Literal

from app.core.config import get_settings
from app.core.logging import get_logger
from infra.backend import ModelRef, parse_model

logger = get_logger("agents.models")

TaskName = Literal["review", "label", "doc_sync", "release"]

PROMPTS_DIR = Path(__file__).parent / "prompts"


def resolve_model(override: str = "") -> ModelRef:
    """The model for a task: *override* when given, else ``DEFAULT_MODEL``."""
    name = override or get_settings().default_model
    model = parse_model(name)
    logger.info("Using model '%s'", model)
    return model


def load_task_prompt(task: TaskName, **values: object) -> str:
    """Load ``prompts/<task>.txt`` and substitute *values*.

    Raises:
        FileNotFoundError: if the template is missing.
        KeyError: if the template references a value that was not supplied.
    """
    prompt_file = PROMPTS_DIR / f"{task}.txt"
    if not prompt_file.exists():
        raise FileNotFoundError(f"Task prompt not found: {prompt_file}")
    template = Template(prompt_file.read_text(encoding="utf-8"))
    return template.substitute({key: str(value) for key, value in values.items()})
