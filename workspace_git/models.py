"""Typed git action requests and execution results.

Requests form a closed tagged union discriminated on ``action``.  The
HTTP layer never switches on a free-form string: it parses the body (or
query string) into one of these models, and the command builder keeps a
dispatch table keyed by model class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from workspace_git.errors import ValidationError

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

MAX_FIELD_LENGTH = 8 * 1024        # 8KB per string field
MAX_FILES_COUNT = 256              # Max paths in a single add


_Text = Annotated[str, Field(max_length=MAX_FIELD_LENGTH)]


class _GitAction(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Read actions (GET)
# ---------------------------------------------------------------------------


class StatusAction(_GitAction):
    action: Literal["status"] = "status"


class LogAction(_GitAction):
    action: Literal["log"] = "log"
    count: Any = None
    """Raw count; range-checked by the command builder."""


class DiffAction(_GitAction):
    action: Literal["diff"] = "diff"
    staged: bool = False
    file: Optional[_Text] = None


class BranchesAction(_GitAction):
    action: Literal["branches"] = "branches"


class RemotesAction(_GitAction):
    action: Literal["remotes"] = "remotes"


# ---------------------------------------------------------------------------
# Write actions (POST)
# ---------------------------------------------------------------------------


class InitAction(_GitAction):
    action: Literal["init"] = "init"


class CloneAction(_GitAction):
    action: Literal["clone"] = "clone"
    url: _Text
    branch: Optional[_Text] = None


class AddAction(_GitAction):
    action: Literal["add"] = "add"
    files: list[_Text] = Field(default_factory=lambda: ["."], max_length=MAX_FILES_COUNT)


class CommitAction(_GitAction):
    action: Literal["commit"] = "commit"
    message: _Text
    stage_all: bool = Field(default=False, alias="stageAll")


class PushAction(_GitAction):
    action: Literal["push"] = "push"
    remote: _Text = "origin"
    branch: Optional[_Text] = None
    force: bool = False


class PullAction(_GitAction):
    action: Literal["pull"] = "pull"
    remote: _Text = "origin"
    branch: Optional[_Text] = None


class CheckoutAction(_GitAction):
    action: Literal["checkout"] = "checkout"
    branch: _Text
    create: bool = False


class MergeAction(_GitAction):
    action: Literal["merge"] = "merge"
    branch: _Text


class StashAction(_GitAction):
    action: Literal["stash"] = "stash"
    pop: bool = False
    message: Optional[_Text] = None


class ResetAction(_GitAction):
    action: Literal["reset"] = "reset"
    mode: _Text = "mixed"
    commit: _Text = "HEAD"


class RemoteAddAction(_GitAction):
    action: Literal["remote-add"] = "remote-add"
    name: _Text
    url: _Text


class ConfigAction(_GitAction):
    action: Literal["config"] = "config"
    key: _Text
    value: _Text


_ACTION_TYPES: tuple[type[_GitAction], ...] = (
    StatusAction,
    LogAction,
    DiffAction,
    BranchesAction,
    RemotesAction,
    InitAction,
    CloneAction,
    AddAction,
    CommitAction,
    PushAction,
    PullAction,
    CheckoutAction,
    MergeAction,
    StashAction,
    ResetAction,
    RemoteAddAction,
    ConfigAction,
)

GitAction = Annotated[Union[_ACTION_TYPES], Field(discriminator="action")]

ACTION_MODELS: dict[str, type[_GitAction]] = {
    model.model_fields["action"].default: model for model in _ACTION_TYPES
}

READ_ACTIONS: frozenset[str] = frozenset({
    "status", "log", "diff", "branches", "remotes",
})

WRITE_ACTIONS: frozenset[str] = frozenset(ACTION_MODELS) - READ_ACTIONS

_ACTION_ADAPTER: TypeAdapter = TypeAdapter(GitAction)


def parse_action(payload: Any, method: str = "POST") -> _GitAction:
    """Parse a request payload into a typed action.

    Args:
        payload: Decoded JSON body (POST) or query-string dict (GET).
        method: HTTP method; read actions are GET-only and write actions
            are POST-only.

    Returns:
        One of the ``*Action`` models.

    Raises:
        ValidationError: If the payload is not an object, the action is
            unknown or not allowed for *method*, or a field is invalid.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    action = payload.get("action")
    if not action:
        raise ValidationError("Missing action", field="action")
    if not isinstance(action, str) or action not in ACTION_MODELS:
        raise ValidationError("Unknown action", field="action")

    allowed = READ_ACTIONS if method.upper() == "GET" else WRITE_ACTIONS
    if action not in allowed:
        raise ValidationError(
            f"Action '{action}' is not supported for {method.upper()}",
            field="action",
        )

    try:
        return _ACTION_ADAPTER.validate_python(payload)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        # loc is (tag, field, ...) for discriminated unions
        loc = [str(part) for part in first.get("loc", ())]
        if loc and loc[0] == action:
            loc = loc[1:]
        field = loc[0] if loc else None
        if first.get("type") == "missing":
            raise ValidationError(f"Missing required field: {field}", field=field) from None
        raise ValidationError(f"Invalid {field}", field=field) from None


# ---------------------------------------------------------------------------
# Execution result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command run by an execution collaborator."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        return {
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }
