"""Allow-list validators for identifiers interpolated into git commands.

Convention (shared with the rest of the package):
- ``is_*`` predicates return a bool and never raise.
- ``validate_*`` functions return ``(is_valid, error_message)``; an empty
  message means success.
- ``require_*`` / ``parse_*`` helpers raise ``ValidationError`` and are what
  the command builder calls.

Git accepts far more in a ref name than these allow-lists.  Anything outside
them is either never needed by the workspace UI or can become an option
(``--upload-pack=...``) or a shell fragment.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from workspace_git.errors import ValidationError

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_REF_RE = re.compile(r"[A-Za-z0-9._/-]+")

# section[.subsection].name; the subsection may hold a branch name
_CONFIG_KEY_RE = re.compile(
    r"[A-Za-z][A-Za-z0-9-]*(?:\.[A-Za-z0-9._/-]+)?\.[A-Za-z][A-Za-z0-9-]*"
)

# Never-allow list: checked FIRST, always rejected.  These make git run
# external programs or load config and credentials from elsewhere.
# Patterns are lowercase; "*" stands for one subsection.
CONFIG_NEVER_ALLOW: tuple[str, ...] = (
    "alias.",
    "browser.",
    "core.askpass",
    "core.attributesfile",
    "core.editor",
    "core.excludesfile",
    "core.fsmonitor",
    "core.gitproxy",
    "core.hookspath",
    "core.pager",
    "core.sshcommand",
    "core.worktree",
    "credential.",
    "diff.external",
    "diff.*.command",
    "diff.*.textconv",
    "difftool.",
    "filter.",
    "gpg.",
    "http.",
    "include.",
    "includeif.",
    "instaweb.",
    "merge.*.driver",
    "mergetool.",
    "pager.",
    "protocol.",
    "remote.",
    "sendemail.",
    "sequence.editor",
    "ssh.",
    "submodule.",
    "uploadpack.",
    "url.",
)

# Permitted keys: only checked if not in never-allow
CONFIG_PERMITTED: tuple[str, ...] = (
    "user.",
    "color.",
    "log.",
    "core.autocrlf",
    "core.eol",
    "core.quotepath",
    "core.whitespace",
    "init.defaultbranch",
    "pull.rebase",
    "pull.ff",
    "push.default",
    "merge.ff",
    "merge.conflictstyle",
    "branch.*.merge",
    "branch.*.rebase",
)

# Characters a shell or git would treat specially in a URL argument.
_URL_FORBIDDEN_CHARS = frozenset(";|&`$<>'\"\\ \t\r\n(){}*?!")

MAX_LOG_COUNT = 100
DEFAULT_LOG_COUNT = 10

RESET_MODES: frozenset[str] = frozenset({"soft", "mixed", "hard"})


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_valid_ref(value: Any) -> bool:
    """Return True if *value* is a safe branch, remote, or commit ref."""
    if not isinstance(value, str) or not value:
        return False
    if value.startswith("-"):
        return False
    if ".." in value:
        return False
    return _REF_RE.fullmatch(value) is not None


def is_valid_config_key(value: Any) -> bool:
    """Return True if *value* is a dotted ``section.name`` git config key."""
    if not isinstance(value, str):
        return False
    return _CONFIG_KEY_RE.fullmatch(value) is not None


def _config_key_matches(key: str, pattern: str) -> bool:
    """Match a lowercased key against a prefix, exact, or ``a.*.b`` pattern."""
    if "*" in pattern:
        head, tail = pattern.split("*", 1)
        return (
            key.startswith(head)
            and key.endswith(tail)
            and len(key) > len(head) + len(tail)
        )
    if pattern.endswith("."):
        return key.startswith(pattern) or key == pattern.rstrip(".")
    return key == pattern


def check_config_key_policy(key: str) -> str:
    """Check a syntactically valid config key against the key policy.

    Git treats section and variable names case-insensitively, so matching
    is done on the lowercased key.  The never-allow list is checked
    before the permitted list.

    Returns:
        An error message, or an empty string if the key may be written.
    """
    lowered = key.lower()
    for pattern in CONFIG_NEVER_ALLOW:
        if _config_key_matches(lowered, pattern):
            return f"Blocked config key: {key}"
    for pattern in CONFIG_PERMITTED:
        if _config_key_matches(lowered, pattern):
            return ""
    return f"Config key not in permitted list: {key}"


def validate_repo_url(url: Any) -> tuple[bool, str]:
    """Validate a repository URL used by clone and remote-add.

    Only ``https://`` URLs with a host and a repository path are accepted.
    Embedded credentials, path traversal, and shell metacharacters are
    rejected.

    Args:
        url: Candidate repository URL.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not isinstance(url, str) or not url:
        return False, "Repository URL required"
    if ".." in url:
        return False, "Invalid repository URL (path traversal)"
    if any(ch in _URL_FORBIDDEN_CHARS for ch in url):
        return False, "Invalid repository URL (forbidden characters)"
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url):
        return False, "Invalid repository URL (control characters)"
    if not url.startswith("https://"):
        return False, "Invalid repository URL (only https:// is allowed)"

    parsed = urlparse(url)
    if not parsed.hostname:
        return False, "Invalid repository URL (missing host)"
    if not parsed.path or parsed.path == "/":
        return False, "Invalid repository URL (missing path)"
    if parsed.username or parsed.password:
        return False, "Invalid repository URL (embedded credentials not allowed)"
    return True, ""


# ---------------------------------------------------------------------------
# Raising helpers
# ---------------------------------------------------------------------------


def require_ref(value: Any, field: str) -> str:
    """Return *value* unchanged if it is a valid ref, else raise."""
    if not is_valid_ref(value):
        raise ValidationError(f"Invalid {field} name", field=field)
    return value


def require_config_key(value: Any, field: str = "key") -> str:
    if not is_valid_config_key(value):
        raise ValidationError(f"Invalid config {field}", field=field)
    policy_error = check_config_key_policy(value)
    if policy_error:
        raise ValidationError(policy_error, field=field)
    return value


def require_repo_url(value: Any, field: str = "url") -> str:
    ok, msg = validate_repo_url(value)
    if not ok:
        raise ValidationError(msg, field=field)
    return value


def require_reset_mode(value: Any) -> str:
    if value not in RESET_MODES:
        raise ValidationError(
            "Invalid reset mode (expected soft, mixed, or hard)", field="mode"
        )
    return value


def parse_log_count(value: Any) -> int:
    """Parse a ``log`` count into an int in ``1..MAX_LOG_COUNT``.

    Accepts ints and base-10 digit strings (query parameters arrive as
    strings).  Bools, floats, signs, and out-of-range values are rejected
    rather than clamped, because ``-N`` is interpolated as an option.
    """
    if value is None or value == "":
        return DEFAULT_LOG_COUNT
    if isinstance(value, bool):
        raise ValidationError("Invalid log count", field="count")
    if isinstance(value, int):
        count = value
    elif isinstance(value, str) and value.isdigit() and value.isascii():
        count = int(value)
    else:
        raise ValidationError("Invalid log count", field="count")
    if not 1 <= count <= MAX_LOG_COUNT:
        raise ValidationError(
            f"Log count must be between 1 and {MAX_LOG_COUNT}", field="count"
        )
    return count
