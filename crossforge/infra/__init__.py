# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# Contains low-level infrastructure wrappers:
# - DockerProvider: Docker SDK wrapper used as the build sandbox
# - GitProvider: read-only worktree queries
# - DependsClient: the depends/ Makefile (downloads and print-<NAME> queries)
# -----------------------------------------------------------------------------

from .depends import DependsClient, DependsError
from .docker_client import DockerProvider, DockerProviderError, SandboxResult
from .git_client import GitError, GitProvider

__all__ = [
    "DependsClient", "DependsError",
    "DockerProvider", "DockerProviderError", "SandboxResult",
    "GitError", "GitProvider",
]
