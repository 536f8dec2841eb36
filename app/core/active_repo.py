"""Per-task working tree root context variable.

Executors that touch the filesystem or run git (doc commits, workflow
scaffolding, package releases) call :func:`get_repo_root` instead of reading
``settings.target_repo_path`` directly.  Each workflow task can therefore
operate on a different checkout without mutating the global Settings
singleton.

The :class:`contextvars.ContextVar` is isolated per async task.

Typical call-site pattern::

    from app.core.active_repo import set_repo_root
    set_repo_root("/path/to/checkout")

    from app.core.active_repo import get_repo_root
    root = Path(get_repo_root()).resolve()
"""

from __future__ import annotations

import os
from contextvars import ContextVar

_repo_root_var: ContextVar[str] = ContextVar("openflows_repo_root", default="")


def set_repo_root(path: str) -> None:
    """Set the working tree root for the current async-task context.

    Args:
        path: Absolute path to the repository root directory.
              An empty string resets to the settings fallback.
    """
    _repo_root_var.set(path)


def get_repo_root() -> str:
    """Return the working tree root for the current context.

    Resolution order:

    1. Value set by :func:`set_repo_root` in the current async context.
    2. ``settings.target_repo_path``.
    3. The process working directory.
    """
    value = _repo_root_var.get("")
    if value:
        return value

    # Lazy import to avoid circular dependency at module load time.
    from app.core.config import get_settings

    return get_settings().target_repo_path or os.getcwd()


def clear_repo_root() -> None:
    """Reset the context variable to the empty default (used by tests)."""
    _repo_root_var.set("")
