"""Shared fakes for the test suite.

``RecordingExecutor`` stands in for the execution collaborator: it
records every call and replays queued results, so tests can assert both
what would have run and that nothing ran at all.
"""

from __future__ import annotations

from collections import deque
from typing import Optional, Sequence

from workspace_git.executor import CommandExecutor
from workspace_git.models import CommandResult
from workspace_git.store import Workspace

OK = CommandResult(exit_code=0, stdout="", stderr="")

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
SECRET = "test-session-secret"
ORIGIN = "https://app.example.com"


class RecordingExecutor(CommandExecutor):
    """Executor that records calls and returns queued results."""

    def __init__(self, *results: CommandResult):
        self.calls: list[dict] = []
        self._results: deque[CommandResult] = deque(results)
        self.raise_on_execute: Optional[Exception] = None

    def queue(self, *results: CommandResult) -> None:
        self._results.extend(results)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def argvs(self) -> list[list[str]]:
        return [c["argv"] for c in self.calls if c["kind"] == "execute"]

    def _next(self) -> CommandResult:
        if self.raise_on_execute is not None:
            raise self.raise_on_execute
        return self._results.popleft() if self._results else OK

    def execute(
        self,
        workspace: Workspace,
        argv: Sequence[str],
        timeout: float,
    ) -> CommandResult:
        self.calls.append({
            "kind": "execute",
            "workspace_id": workspace.id,
            "argv": list(argv),
            "timeout": timeout,
        })
        return self._next()

    def clone_repository(
        self,
        workspace: Workspace,
        url: str,
        branch: Optional[str],
        timeout: float,
    ) -> CommandResult:
        self.calls.append({
            "kind": "clone",
            "workspace_id": workspace.id,
            "url": url,
            "branch": branch,
            "timeout": timeout,
        })
        return self._next()
