"""openflows infrastructure layer — boundary clients.

All communication with the collaboration platform (GitHub) and the model
backend (OpenCode-style server) goes through this package.  Use
:mod:`infra.factory` to obtain configured client instances.

Quick start::

    from infra.factory import get_backend, get_github_client

    forge = get_github_client()
    pr = forge.get_pull_request("owner/repo", 42)

    backend = get_backend()
    session_id = await backend.create_session()
"""

from infra.backend import BackendError, Event, Message, MessageInfo, ModelBackend, ModelRef, Part, parse_model
from infra.factory import get_backend, get_github_client
from infra.forge import Comment, ForgeClient, ForgeError, Issue, LabelSpec, PullRequest, ReleaseRequest
from infra.github_client import GitHubClient
from infra.opencode_client import OpenCodeBackend

__all__ = [
    # Platform protocol & models
    "ForgeClient",
    "ForgeError",
    "Issue",
    "PullRequest",
    "Comment",
    "LabelSpec",
    "ReleaseRequest",
    # Backend protocol & models
    "ModelBackend",
    "BackendError",
    "Event",
    "Message",
    "MessageInfo",
    "Part",
    "ModelRef",
    "parse_model",
    # Clients
    "GitHubClient",
    "OpenCodeBackend",
    # Factory
    "get_github_client",
    "get_backend",
]
