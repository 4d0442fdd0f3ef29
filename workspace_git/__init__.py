"""workspace-git - validated git operations inside per-user workspaces."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("workspace-git-api")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for editable installs / dev
