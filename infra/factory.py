"""Client factories for the external systems.

:func:`get_github_client` and :func:`get_backend` are the entry points for
obtaining boundary clients configured from the application settings.

Usage::

    from infra.factory import get_backend, get_github_client

    forge = get_github_client()
    backend = get_backend()
"""

from __future__ import annotations

from infra.github_client import GitHubClient
from infra.opencode_client import OpenCodeBackend


def _settings():
    """Lazy import to avoid circular imports and allow test overrides."""
    from app.core.config import get_settings
    return get_settings()


def get_github_client(token: str = "", base_url: str = "") -> GitHubClient:
    """Convenience factory for a GitHub client.

    Uses ``GITHUB_TOKEN`` and ``GITHUB_API_URL`` from config when the
    arguments are not provided.

    Args:
        token:    Optional token override.
        base_url: Optional API base URL override (GitHub Enterprise).
    """
    settings = _settings()
    return GitHubClient(
        token=token or settings.github_token,
        base_url=base_url or settings.github_api_url,
    )


def get_backend(base_url: str = "") -> OpenCodeBackend:
    """Return a model backend client for ``OPENCODE_URL`` (or *base_url*)."""
    settings = _settings()
    return OpenCodeBackend(
        base_url=base_url or settings.opencode_url,
        timeout=settings.opencode_timeout_seconds,
    )
