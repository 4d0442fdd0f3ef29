"""
Top-level pytest conftest.py -- shared fixtures.

Provides:
    store       - WorkspaceStore backed by a temp SQLite file
    executor    - RecordingExecutor (no real git)
    authenticator - SessionAuthenticator with a fixed secret
    workspace   - a workspace owned by USER_ID
    app/client  - Flask app wired to the fakes above
    auth_headers - session + same-origin headers for POST requests
"""

import os
import shutil
import sys

import pytest

# Make tests/mocks.py importable as ``mocks``
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mocks import ORIGIN, SECRET, USER_ID, RecordingExecutor  # noqa: E402

from workspace_git.api import create_app  # noqa: E402
from workspace_git.auth import SessionAuthenticator  # noqa: E402
from workspace_git.config import GitApiConfig  # noqa: E402
from workspace_git.csrf import CsrfValidator  # noqa: E402
from workspace_git.store import WorkspaceStore  # noqa: E402


@pytest.fixture
def config(tmp_path):
    return GitApiConfig(
        db_path=str(tmp_path / "workspaces.db"),
        workspaces_root=str(tmp_path / "workspaces"),
        session_secret=SECRET,
        allowed_origins=[ORIGIN],
    )


@pytest.fixture
def store(config):
    return WorkspaceStore(config.db_path)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def authenticator():
    return SessionAuthenticator(SECRET)


@pytest.fixture
def workspace(store):
    return store.create(USER_ID, location="ws-1", name="demo", workspace_id="ws-1")


@pytest.fixture
def app(config, store, executor, authenticator):
    return create_app(
        config,
        store=store,
        executor=executor,
        authenticator=authenticator,
        csrf=CsrfValidator([ORIGIN]),
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(authenticator):
    return {
        "Authorization": f"Bearer {authenticator.issue(USER_ID)}",
        "Origin": ORIGIN,
    }


@pytest.fixture(scope="session")
def has_git():
    return shutil.which("git") is not None


@pytest.fixture
def requires_git(has_git):
    """Skip the test when git is not installed."""
    if not has_git:
        pytest.skip("git is not available")
