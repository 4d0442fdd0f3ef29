"""Hypothesis-based fuzz tests for the command-safety layer.

Security properties tested:
- escape_shell_arg output always parses back to exactly the input, both
  through shlex and through a real /bin/sh
- is_valid_ref never crashes and never accepts an option, a range, or a
  shell metacharacter
- parse_action + build_plan only ever raise ValidationError on arbitrary
  payloads, and every argv they produce starts with ``git``
"""

import shlex
import shutil
import string
import subprocess

import pytest
from hypothesis import HealthCheck, given, settings
import hypothesis.strategies as st

from workspace_git.commands import build_plan
from workspace_git.errors import ValidationError
from workspace_git.models import ACTION_MODELS, READ_ACTIONS, parse_action
from workspace_git.refs import is_valid_ref
from workspace_git.shell import escape_shell_arg, escape_shell_args

pytestmark = [
    pytest.mark.security,
]

# No NUL: it cannot appear in a POSIX argument at all
_ARG_TEXT = st.text(alphabet=st.characters(blacklist_characters="\x00"), max_size=200)

_SHELL_META = set(";|&`$<>()'\"\\ \t\n*?!{}~^:@")


class TestShellEscapeProperties:
    """Escaped values are always exactly one literal word."""

    @given(value=_ARG_TEXT)
    @settings(max_examples=500)
    def test_round_trip(self, value):
        assert shlex.split(escape_shell_arg(value)) == [value]

    @given(values=st.lists(_ARG_TEXT, max_size=8))
    @settings(max_examples=200)
    def test_args_round_trip(self, values):
        assert shlex.split(escape_shell_args(values)) == values

    @pytest.mark.skipif(shutil.which("sh") is None, reason="/bin/sh not available")
    @given(value=_ARG_TEXT)
    @settings(max_examples=100, deadline=None)
    def test_real_shell_round_trip(self, value):
        result = subprocess.run(
            ["sh", "-c", "printf %s " + escape_shell_arg(value)],
            capture_output=True,
            check=True,
        )
        assert result.stdout == value.encode("utf-8")

    @given(value=_ARG_TEXT)
    def test_wrapped_in_single_quotes(self, value):
        escaped = escape_shell_arg(value)
        assert escaped.startswith("'") and escaped.endswith("'")


class TestRefValidatorProperties:
    """is_valid_ref is total and conservative."""

    @given(value=st.one_of(st.text(max_size=100), st.none(), st.integers(),
                           st.binary(max_size=20)))
    @settings(max_examples=500)
    def test_never_raises(self, value):
        assert is_valid_ref(value) in (True, False)

    @given(value=st.text(max_size=100))
    @settings(max_examples=500)
    def test_accepted_refs_are_safe(self, value):
        if is_valid_ref(value):
            assert value
            assert not value.startswith("-")
            assert ".." not in value
            assert not (set(value) & _SHELL_META)

    @given(value=st.text(alphabet=string.ascii_letters + string.digits + "_/",
                         min_size=1, max_size=50))
    def test_plain_names_accepted(self, value):
        assert is_valid_ref(value) is True

    @given(prefix=st.text(max_size=10), suffix=st.text(max_size=10),
           meta=st.sampled_from(sorted(_SHELL_META)))
    def test_metacharacters_rejected(self, prefix, suffix, meta):
        assert is_valid_ref(prefix + meta + suffix) is False


_JSON_SCALAR = st.one_of(
    st.none(), st.booleans(), st.integers(), st.floats(allow_nan=False),
    st.text(max_size=50),
)
_JSON_VALUE = st.recursive(
    _JSON_SCALAR,
    lambda children: st.one_of(st.lists(children, max_size=4),
                               st.dictionaries(st.text(max_size=10), children,
                                               max_size=4)),
    max_leaves=10,
)


@st.composite
def _payloads(draw):
    action = draw(st.sampled_from(sorted(ACTION_MODELS)))
    fields = draw(st.dictionaries(
        st.sampled_from(["branch", "remote", "mode", "commit", "count", "file",
                         "files", "message", "url", "name", "key", "value",
                         "force", "create", "pop", "staged", "stageAll"]),
        _JSON_VALUE,
        max_size=5,
    ))
    return {**fields, "action": action}


class TestDispatchFuzzing:
    """Arbitrary payloads are either rejected or produce safe git argv."""

    @given(payload=_payloads())
    @settings(max_examples=500, suppress_health_check=[HealthCheck.too_slow])
    def test_only_validation_errors(self, payload):
        method = "GET" if payload["action"] in READ_ACTIONS else "POST"
        try:
            plan = build_plan(parse_action(payload, method))
        except ValidationError:
            return
        for step in plan.steps:
            assert step.argv[0] == "git"
            assert all(isinstance(arg, str) and "\x00" not in arg for arg in step.argv)
            assert shlex.split(step.shell) == step.argv
