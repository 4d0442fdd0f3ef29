"""Exception hierarchy for workspace-git.

Provides a structured exception tree so callers can catch broad
categories (``WorkspaceGitError``) or specific failure modes.  Each
request-level error carries the HTTP status the dispatch handler maps
it to.

This module is a base-layer module: it must NOT import from any
other ``workspace_git`` submodule.
"""

from __future__ import annotations


class WorkspaceGitError(Exception):
    """Base exception for all workspace-git errors."""

    status_code = 500


class ValidationError(WorkspaceGitError):
    """Input validation failures (bad refs, invalid modes, missing fields)."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        result = {"success": False, "error": self.message}
        if self.field:
            result["field"] = self.field
        return result


class AuthenticationError(WorkspaceGitError):
    """Missing, malformed, or expired session."""

    status_code = 401


class WorkspaceNotFoundError(WorkspaceGitError):
    """Workspace does not exist or is not owned by the caller."""

    status_code = 404


class CsrfError(WorkspaceGitError):
    """Request origin could not be verified."""

    status_code = 403


class ExecutionError(WorkspaceGitError):
    """The execution collaborator failed to run a command at all.

    A git process exiting non-zero is *not* an ExecutionError; that is
    reported in-band as a ``CommandResult``.
    """


class ConfigError(WorkspaceGitError):
    """Invalid service configuration."""
