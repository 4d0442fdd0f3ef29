"""Execution collaborators: run git argument vectors inside a workspace.

Two implementations share one contract:

- ``LocalGitExecutor`` runs git as a subprocess in a per-workspace
  directory under a configured root.
- ``DockerExecExecutor`` runs git through ``docker exec`` in the
  workspace's container.

Both take an argument vector, never a pre-joined shell string, and both
report a git process exiting non-zero as a normal ``CommandResult``.
``ExecutionError`` is reserved for failing to launch the command at all,
including a workspace record whose location the executor cannot use.

Security model (shared):
- Hooks and fsmonitor disabled via ``-c`` flags injected before client args
- Environment sanitized: only an allow-list of variables is passed through
- Terminal prompts disabled so credential prompts fail instead of hanging
- Output truncated at MAX_OUTPUT_SIZE
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import weakref
from pathlib import Path
from typing import Optional, Sequence

from workspace_git.errors import ExecutionError
from workspace_git.models import CommandResult
from workspace_git.store import Workspace

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_OUTPUT_SIZE = 10 * 1024 * 1024   # 10MB per stream
TIMEOUT_EXIT_CODE = 124              # Same code coreutils `timeout` uses

HARDENING_FLAGS: tuple[str, ...] = (
    "-c", "core.hooksPath=/dev/null",
    "-c", "core.fsmonitor=false",
)

# Minimal allowed env vars for git execution
ENV_ALLOWED: frozenset = frozenset({
    "PATH",
    "HOME",
    "USER",
    "LANG",
    "LC_ALL",
    "LC_CTYPE",
    "TMPDIR",
    "TZ",
})


def build_clean_env() -> dict[str, str]:
    """Build a sanitized environment for git subprocess execution.

    Starts from an empty env and only copies allowed variables.
    All GIT_* and SSH_* vars are excluded.
    """
    clean: dict[str, str] = {}
    for key in ENV_ALLOWED:
        val = os.environ.get(key)
        if val is not None:
            clean[key] = val

    if "PATH" not in clean:
        clean["PATH"] = "/usr/local/bin:/usr/bin:/bin"

    clean["GIT_TERMINAL_PROMPT"] = "0"
    return clean


def harden(argv: Sequence[str]) -> list[str]:
    """Insert the hardening ``-c`` flags right after the ``git`` binary."""
    if not argv or argv[0] != "git":
        raise ValueError("argv must start with 'git'")
    return [argv[0], *HARDENING_FLAGS, *argv[1:]]


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    if len(data) > MAX_OUTPUT_SIZE:
        data = data[:MAX_OUTPUT_SIZE]
    return data.decode("utf-8", errors="replace")


def _clone_argv(url: str, branch: Optional[str]) -> list[str]:
    argv = ["git", "clone"]
    if branch:
        argv += ["--branch", branch]
    return argv + ["--", url, "."]


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class CommandExecutor:
    """Base class for execution collaborators."""

    def execute(
        self,
        workspace: Workspace,
        argv: Sequence[str],
        timeout: float,
    ) -> CommandResult:
        raise NotImplementedError

    def clone_repository(
        self,
        workspace: Workspace,
        url: str,
        branch: Optional[str],
        timeout: float,
    ) -> CommandResult:
        raise NotImplementedError

    def _run(
        self,
        cmd: list[str],
        timeout: float,
        cwd: Optional[str] = None,
    ) -> CommandResult:
        """Run *cmd* and capture its result.

        Raises:
            ExecutionError: If the process could not be started.
        """
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                timeout=timeout,
                env=build_clean_env(),
                stdin=subprocess.DEVNULL,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("Command timed out after %ss: %s", timeout, cmd[:4])
            return CommandResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=_decode(exc.stdout),
                stderr=f"Command timed out after {timeout:g}s",
            )
        except (OSError, ValueError) as exc:
            raise ExecutionError(f"Failed to start command: {exc}") from exc

        return CommandResult(
            exit_code=result.returncode,
            stdout=_decode(result.stdout),
            stderr=_decode(result.stderr),
        )


# ---------------------------------------------------------------------------
# Local subprocess executor
# ---------------------------------------------------------------------------


class LocalGitExecutor(CommandExecutor):
    """Runs git in ``<root>/<workspace.location>`` on the local host.

    Commands against the same workspace are serialized with a
    per-workspace lock; different workspaces run in parallel.  Locks are
    held weakly and disappear once no command is using them.
    """

    def __init__(self, root: str):
        self._root = Path(root).resolve()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _lock_for(self, workspace_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(workspace_id)
            if lock is None:
                lock = self._locks[workspace_id] = threading.Lock()
            return lock

    def workspace_dir(self, workspace: Workspace) -> Path:
        """Resolve the workspace directory, refusing paths outside root."""
        candidate = (self._root / workspace.location).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise ExecutionError("Workspace location escapes workspace root")
        if candidate == self._root:
            raise ExecutionError("Workspace location must be a subdirectory")
        return candidate

    def _prepare(self, workspace: Workspace) -> Path:
        path = self.workspace_dir(workspace)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExecutionError(f"Cannot create workspace directory: {exc}") from exc
        return path

    def execute(
        self,
        workspace: Workspace,
        argv: Sequence[str],
        timeout: float,
    ) -> CommandResult:
        cwd = self._prepare(workspace)
        with self._lock_for(workspace.id):
            return self._run(harden(argv), timeout, cwd=str(cwd))

    def clone_repository(
        self,
        workspace: Workspace,
        url: str,
        branch: Optional[str],
        timeout: float,
    ) -> CommandResult:
        cwd = self._prepare(workspace)
        with self._lock_for(workspace.id):
            if any(cwd.iterdir()):
                return CommandResult(
                    exit_code=128,
                    stdout="",
                    stderr="fatal: destination path '.' already exists "
                    "and is not an empty directory.",
                )
            return self._run(harden(_clone_argv(url, branch)), timeout, cwd=str(cwd))


# ---------------------------------------------------------------------------
# Docker exec executor
# ---------------------------------------------------------------------------


class DockerExecExecutor(CommandExecutor):
    """Runs git inside the workspace container via ``docker exec``.

    ``workspace.location`` is the container id or name.  Serialization of
    concurrent commands is left to the container.
    """

    def __init__(
        self,
        workdir: str = "/workspace",
        user: str = "ubuntu",
        docker_binary: str = "docker",
    ):
        self._workdir = workdir
        self._user = user
        self._docker = docker_binary

    def _docker_cmd(self, workspace: Workspace, argv: Sequence[str]) -> list[str]:
        container = workspace.location
        if not container or container.startswith("-"):
            raise ExecutionError("Invalid workspace container")
        return [
            self._docker, "exec",
            "-u", self._user,
            "-w", self._workdir,
            "-e", "GIT_TERMINAL_PROMPT=0",
            container,
            *harden(argv),
        ]

    def execute(
        self,
        workspace: Workspace,
        argv: Sequence[str],
        timeout: float,
    ) -> CommandResult:
        return self._run(self._docker_cmd(workspace, argv), timeout)

    def clone_repository(
        self,
        workspace: Workspace,
        url: str,
        branch: Optional[str],
        timeout: float,
    ) -> CommandResult:
        return self._run(
            self._docker_cmd(workspace, _clone_argv(url, branch)), timeout
        )


def create_executor(kind: str, workspaces_root: str) -> CommandExecutor:
    """Build the executor named by configuration (``local`` or ``docker``)."""
    if kind == "local":
        return LocalGitExecutor(workspaces_root)
    if kind == "docker":
        return DockerExecExecutor()
    raise ValueError(f"Unknown executor kind: {kind}")
