"""Runs command plans through an executor and shapes action responses.

Git-level failures (non-zero exit) are expected outcomes: they come back
as ``{"success": False, "error": <git's own message>}`` and are never
retried.  Validation failures and executor launch failures propagate as
exceptions for the HTTP layer to map to 400 / 500.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Optional

from workspace_git.commands import (
    DEFAULT_TIMEOUTS,
    LOG_FIELD_SEP,
    CloneCommand,
    CommandPlan,
    CommandTimeouts,
    GitCommand,
    Step,
    build_plan,
)
from workspace_git.errors import ValidationError
from workspace_git.executor import CommandExecutor
from workspace_git.logging_config import audit_log
from workspace_git.models import CommandResult
from workspace_git.shell import escape_shell_args
from workspace_git.store import Workspace

logger = logging.getLogger(__name__)

_COMMIT_HASH_RE = re.compile(r"^\[[^\]\n]*?\s([0-9a-f]{7,40})\]", re.MULTILINE)
_MERGE_CONFLICT_RE = re.compile(r"^CONFLICT \([^)]*\): Merge conflict in (.+)$", re.MULTILINE)

REDACTED = "<redacted>"


# ---------------------------------------------------------------------------
# Output parsers
# ---------------------------------------------------------------------------


def parse_status(stdout: str) -> dict[str, Any]:
    """Parse ``git status --porcelain=v1 --branch`` output."""
    branch: Optional[str] = None
    files: list[dict[str, str]] = []
    for line in stdout.splitlines():
        if line.startswith("## "):
            header = line[3:]
            if header.startswith("No commits yet on "):
                branch = header[len("No commits yet on "):]
            elif header.startswith("HEAD (no branch)"):
                branch = None
            else:
                branch = header.split("...", 1)[0].split(" ", 1)[0]
            continue
        if len(line) < 4:
            continue
        path = line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        files.append({"path": path, "index": line[0], "worktree": line[1]})
    return {"branch": branch, "files": files, "clean": not files}


def parse_log(stdout: str) -> list[dict[str, Any]]:
    """Parse ``git log`` output produced with ``commands.LOG_FORMAT``."""
    commits = []
    for line in stdout.splitlines():
        parts = line.split(LOG_FIELD_SEP)
        if len(parts) != 5:
            continue
        sha, author, email, ts, subject = parts
        commits.append({
            "hash": sha,
            "author": author,
            "email": email,
            "timestamp": int(ts) if ts.isdigit() else None,
            "message": subject,
        })
    return commits


def parse_branches(stdout: str) -> dict[str, Any]:
    """Parse ``git branch -a --no-color`` output."""
    branches: list[str] = []
    current: Optional[str] = None
    for line in stdout.splitlines():
        if not line.strip():
            continue
        is_current = line.startswith("* ")
        name = line[2:].strip()
        if " -> " in name:
            # symbolic remote HEAD, e.g. remotes/origin/HEAD -> origin/main
            continue
        if name.startswith("("):
            # detached HEAD, e.g. "(HEAD detached at abc1234)"
            continue
        if is_current:
            current = name
        branches.append(name)
    return {"branches": branches, "current": current}


def parse_remotes(stdout: str) -> list[dict[str, str]]:
    """Parse ``git remote -v`` output."""
    remotes = []
    for line in stdout.splitlines():
        parts = line.split()
        if len(parts) != 3:
            continue
        name, url, kind = parts
        remotes.append({"name": name, "url": url, "type": kind.strip("()")})
    return remotes


def extract_commit_hash(stdout: str) -> Optional[str]:
    """Pull the hash out of ``[branch <hash>] message`` commit output."""
    match = _COMMIT_HASH_RE.search(stdout)
    return match.group(1) if match else None


def _status_extras(result: CommandResult) -> dict:
    return parse_status(result.stdout)


def _log_extras(result: CommandResult) -> dict:
    return {"commits": parse_log(result.stdout)}


def _branches_extras(result: CommandResult) -> dict:
    return parse_branches(result.stdout)


def _remotes_extras(result: CommandResult) -> dict:
    return {"remotes": parse_remotes(result.stdout)}


def _commit_extras(result: CommandResult) -> dict:
    return {"hash": extract_commit_hash(result.stdout)}


def _merge_extras(result: CommandResult) -> dict:
    return {"conflicts": False}


_SUCCESS_EXTRAS: dict[str, Callable[[CommandResult], dict]] = {
    "status": _status_extras,
    "log": _log_extras,
    "branches": _branches_extras,
    "remotes": _remotes_extras,
    "commit": _commit_extras,
    "merge": _merge_extras,
}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _audit_command(plan: CommandPlan, step: Step) -> str:
    if plan.action == "config":
        return escape_shell_args([*step.argv[:-1], REDACTED])
    return step.shell


class GitService:
    """Validates, executes, and formats one git action for one workspace."""

    def __init__(
        self,
        executor: CommandExecutor,
        timeouts: CommandTimeouts = DEFAULT_TIMEOUTS,
    ):
        self._executor = executor
        self._timeouts = timeouts

    def plan(self, action) -> CommandPlan:
        """Build the plan for *action*, auditing rejections."""
        try:
            return build_plan(action, self._timeouts)
        except ValidationError as exc:
            audit_log(
                event="request_rejected",
                action=getattr(action, "action", "unknown"),
                decision="deny",
                reason=exc.message,
                field=exc.field,
            )
            raise

    def _run_step(self, workspace: Workspace, step: Step) -> CommandResult:
        if isinstance(step, CloneCommand):
            return self._executor.clone_repository(
                workspace, step.url, step.branch, step.timeout
            )
        assert isinstance(step, GitCommand)
        return self._executor.execute(workspace, step.argv, step.timeout)

    def run(self, workspace: Workspace, action) -> dict[str, Any]:
        """Execute *action* against *workspace* and build the response body.

        Raises:
            ValidationError: If the action fails validation (nothing ran).
            ExecutionError: If the executor could not launch a command.
        """
        plan = self.plan(action)

        result: Optional[CommandResult] = None
        for step in plan.steps:
            started = time.monotonic()
            result = self._run_step(workspace, step)
            audit_log(
                event="command_executed",
                action=plan.action,
                decision="allow",
                command=_audit_command(plan, step),
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                duration_ms=(time.monotonic() - started) * 1000,
            )
            if not result.ok:
                return self._failure(plan, result)

        assert result is not None
        body: dict[str, Any] = {"success": True, "output": result.stdout}
        extras = _SUCCESS_EXTRAS.get(plan.action)
        if extras:
            body.update(extras(result))
        return body

    def _failure(self, plan: CommandPlan, result: CommandResult) -> dict[str, Any]:
        error = (
            result.stderr.strip()
            or result.stdout.strip()
            or f"git exited with code {result.exit_code}"
        )
        body: dict[str, Any] = {
            "success": False,
            "error": error,
            "output": result.stdout,
            "exitCode": result.exit_code,
        }
        if plan.action == "merge":
            combined = result.stdout + "\n" + result.stderr
            if "CONFLICT" in combined:
                body["conflicts"] = True
                body["conflictedFiles"] = _MERGE_CONFLICT_RE.findall(combined)
            else:
                body["conflicts"] = False
        return body
