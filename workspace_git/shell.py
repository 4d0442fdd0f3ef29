"""POSIX shell quoting for command lines handed to string-based executors.

Every value is wrapped in single quotes.  Inside single quotes the shell
interprets nothing, so the only character that needs handling is the
single quote itself, which is closed, emitted as ``\\'`` and reopened.
"""

from __future__ import annotations

from typing import Iterable

_QUOTE_ESCAPE = "'\\''"


def escape_shell_arg(value: str) -> str:
    """Quote *value* so a POSIX shell reads it back as one literal word.

    Args:
        value: Arbitrary string, including metacharacters and newlines.

    Returns:
        The single-quoted form, e.g. ``it's`` -> ``'it'\\''s'``.
    """
    return "'" + value.replace("'", _QUOTE_ESCAPE) + "'"


def escape_shell_args(args: Iterable[str]) -> str:
    """Quote each argument and join them with single spaces."""
    return " ".join(escape_shell_arg(arg) for arg in args)
