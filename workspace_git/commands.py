"""Command builder: turns a typed git action into an execution plan.

Each action maps to exactly one builder function.  Builders validate every
identifier against the allow-lists in ``refs`` *before* constructing any
command object, so a rejected request never produces a command at all.

Commands are argument vectors.  ``GitCommand.shell`` renders the same
vector as a single POSIX command line (every token single-quoted) for
audit logs and for collaborators that only accept a command string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

from workspace_git.errors import ValidationError
from workspace_git.models import (
    ACTION_MODELS,
    AddAction,
    BranchesAction,
    CheckoutAction,
    CloneAction,
    CommitAction,
    ConfigAction,
    DiffAction,
    InitAction,
    LogAction,
    MergeAction,
    PullAction,
    PushAction,
    RemoteAddAction,
    RemotesAction,
    ResetAction,
    StashAction,
    StatusAction,
)
from workspace_git.refs import (
    parse_log_count,
    require_config_key,
    require_ref,
    require_repo_url,
    require_reset_mode,
)
from workspace_git.shell import escape_shell_args

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

GIT = "git"

# Unit separator between `git log` fields; cannot appear in a one-line subject
LOG_FIELD_SEP = "\x1f"
LOG_FORMAT = "%H%x1f%an%x1f%ae%x1f%at%x1f%s"


@dataclass(frozen=True)
class CommandTimeouts:
    """Per-category timeouts in seconds."""

    default: float = 30.0
    network: float = 60.0   # push / pull
    clone: float = 120.0


DEFAULT_TIMEOUTS = CommandTimeouts()


# ---------------------------------------------------------------------------
# Plan types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GitCommand:
    """A single git invocation (arguments after ``git``)."""

    args: tuple[str, ...]
    timeout: float

    @property
    def argv(self) -> list[str]:
        return [GIT, *self.args]

    @property
    def shell(self) -> str:
        return escape_shell_args(self.argv)


@dataclass(frozen=True)
class CloneCommand:
    """Clone delegated to the executor's ``clone_repository``."""

    url: str
    branch: Optional[str]
    timeout: float

    @property
    def argv(self) -> list[str]:
        argv = [GIT, "clone"]
        if self.branch:
            argv += ["--branch", self.branch]
        return argv + ["--", self.url, "."]

    @property
    def shell(self) -> str:
        return escape_shell_args(self.argv)


Step = Union[GitCommand, CloneCommand]


@dataclass(frozen=True)
class CommandPlan:
    """Ordered steps for one action; execution stops at the first failure."""

    action: str
    steps: tuple[Step, ...]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_text(value: Optional[str], field: str) -> str:
    """Reject values the OS cannot pass as an argument (embedded NUL)."""
    if value is None or "\x00" in value:
        raise ValidationError(f"Invalid {field}", field=field)
    return value


def _plan(action: str, *steps: Step) -> CommandPlan:
    return CommandPlan(action=action, steps=tuple(steps))


def _git(timeout: float, *args: str) -> GitCommand:
    return GitCommand(args=tuple(args), timeout=timeout)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _build_status(action: StatusAction, t: CommandTimeouts) -> CommandPlan:
    return _plan("status", _git(t.default, "status", "--porcelain=v1", "--branch"))


def _build_log(action: LogAction, t: CommandTimeouts) -> CommandPlan:
    count = parse_log_count(action.count)
    return _plan(
        "log",
        _git(t.default, "log", f"-{count}", f"--pretty=format:{LOG_FORMAT}"),
    )


def _build_diff(action: DiffAction, t: CommandTimeouts) -> CommandPlan:
    args = ["diff"]
    if action.staged:
        args.append("--staged")
    if action.file:
        args += ["--", _require_text(action.file, "file")]
    return _plan("diff", _git(t.default, *args))


def _build_branches(action: BranchesAction, t: CommandTimeouts) -> CommandPlan:
    return _plan("branches", _git(t.default, "branch", "-a", "--no-color"))


def _build_remotes(action: RemotesAction, t: CommandTimeouts) -> CommandPlan:
    return _plan("remotes", _git(t.default, "remote", "-v"))


def _build_init(action: InitAction, t: CommandTimeouts) -> CommandPlan:
    return _plan("init", _git(t.default, "init"))


def _build_clone(action: CloneAction, t: CommandTimeouts) -> CommandPlan:
    url = require_repo_url(action.url)
    branch = require_ref(action.branch, "branch") if action.branch else None
    return _plan("clone", CloneCommand(url=url, branch=branch, timeout=t.clone))


def _build_add(action: AddAction, t: CommandTimeouts) -> CommandPlan:
    files = [_require_text(f, "files") for f in action.files if f] or ["."]
    return _plan("add", _git(t.default, "add", "--", *files))


def _build_commit(action: CommitAction, t: CommandTimeouts) -> CommandPlan:
    message = _require_text(action.message, "message")
    if not message.strip():
        raise ValidationError("Commit message is required", field="message")
    steps: list[Step] = []
    if action.stage_all:
        steps.append(_git(t.default, "add", "-A"))
    steps.append(_git(t.default, "commit", "-m", message))
    return _plan("commit", *steps)


def _build_push(action: PushAction, t: CommandTimeouts) -> CommandPlan:
    remote = require_ref(action.remote, "remote")
    args = ["push"]
    if action.force:
        args.append("--force")
    args.append(remote)
    if action.branch:
        args.append(require_ref(action.branch, "branch"))
    return _plan("push", _git(t.network, *args))


def _build_pull(action: PullAction, t: CommandTimeouts) -> CommandPlan:
    args = ["pull", require_ref(action.remote, "remote")]
    if action.branch:
        args.append(require_ref(action.branch, "branch"))
    return _plan("pull", _git(t.network, *args))


def _build_checkout(action: CheckoutAction, t: CommandTimeouts) -> CommandPlan:
    branch = require_ref(action.branch, "branch")
    args = ["checkout", "-b", branch] if action.create else ["checkout", branch]
    return _plan("checkout", _git(t.default, *args))


def _build_merge(action: MergeAction, t: CommandTimeouts) -> CommandPlan:
    branch = require_ref(action.branch, "branch")
    return _plan("merge", _git(t.default, "merge", "--no-edit", branch))


def _build_stash(action: StashAction, t: CommandTimeouts) -> CommandPlan:
    if action.pop:
        return _plan("stash", _git(t.default, "stash", "pop"))
    args = ["stash", "push"]
    if action.message:
        args += ["-m", _require_text(action.message, "message")]
    return _plan("stash", _git(t.default, *args))


def _build_reset(action: ResetAction, t: CommandTimeouts) -> CommandPlan:
    mode = require_reset_mode(action.mode)
    commit = require_ref(action.commit, "commit")
    return _plan("reset", _git(t.default, "reset", f"--{mode}", commit))


def _build_remote_add(action: RemoteAddAction, t: CommandTimeouts) -> CommandPlan:
    name = require_ref(action.name, "remote")
    url = require_repo_url(action.url)
    return _plan("remote-add", _git(t.default, "remote", "add", name, url))


def _build_config(action: ConfigAction, t: CommandTimeouts) -> CommandPlan:
    key = require_config_key(action.key)
    value = _require_text(action.value, "value")
    return _plan("config", _git(t.default, "config", key, value))


_BUILDERS: dict[type, Callable[..., CommandPlan]] = {
    StatusAction: _build_status,
    LogAction: _build_log,
    DiffAction: _build_diff,
    BranchesAction: _build_branches,
    RemotesAction: _build_remotes,
    InitAction: _build_init,
    CloneAction: _build_clone,
    AddAction: _build_add,
    CommitAction: _build_commit,
    PushAction: _build_push,
    PullAction: _build_pull,
    CheckoutAction: _build_checkout,
    MergeAction: _build_merge,
    StashAction: _build_stash,
    ResetAction: _build_reset,
    RemoteAddAction: _build_remote_add,
    ConfigAction: _build_config,
}

# Import-time exhaustiveness check: every action variant has a builder.
_missing = set(ACTION_MODELS.values()) - set(_BUILDERS)
if _missing:  # pragma: no cover
    raise RuntimeError(
        "No command builder for: "
        + ", ".join(sorted(m.__name__ for m in _missing))
    )


def build_plan(action, timeouts: CommandTimeouts = DEFAULT_TIMEOUTS) -> CommandPlan:
    """Validate *action* and build its command plan.

    Raises:
        ValidationError: If any identifier fails its allow-list.  No
            command object has been created when this is raised.
    """
    builder = _BUILDERS.get(type(action))
    if builder is None:
        raise ValidationError("Unknown action", field="action")
    return builder(action, timeouts)
