"""Workspace ownership store with SQLite persistence.

Maps a workspace id to its owning user and to the location the execution
collaborator runs commands in (a directory for the local executor, a
container id for the docker executor).

Connections are opened per operation in autocommit + WAL mode, so the
store is safe to share between the request threads of one process and
between processes pointing at the same file.
"""

from __future__ import annotations

import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from workspace_git.errors import WorkspaceNotFoundError

_COLUMNS = "id, user_id, name, location, created_at"


@dataclass(frozen=True)
class Workspace:
    """A per-user sandboxed environment in which git commands run."""

    id: str
    user_id: str
    name: str
    location: str
    created_at: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "location": self.location,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: tuple) -> "Workspace":
        return cls(
            id=row[0],
            user_id=row[1],
            name=row[2],
            location=row[3],
            created_at=row[4],
        )


class WorkspaceStore:
    """SQLite-backed workspace ownership lookups."""

    def __init__(self, db_path: str = "/var/lib/workspace-git/workspaces.db"):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file. Parent directories
                     will be created if they don't exist.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=5.0,
            isolation_level=None,  # autocommit
        )
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def _init_db(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workspaces (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL DEFAULT '',
                    location TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_workspaces_user
                ON workspaces(user_id)
            """)
        finally:
            conn.close()

    def get_owned(self, workspace_id: str, user_id: str) -> Optional[Workspace]:
        """Return the workspace only if it exists AND belongs to *user_id*.

        A missing workspace and a workspace owned by someone else are
        indistinguishable to the caller.
        """
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM workspaces WHERE id = ? AND user_id = ?",
                (workspace_id, user_id),
            ).fetchone()
        finally:
            conn.close()
        return Workspace.from_row(row) if row else None

    def require_owned(self, workspace_id: str, user_id: str) -> Workspace:
        """Like get_owned, but raise WorkspaceNotFoundError instead of returning None."""
        workspace = self.get_owned(workspace_id, user_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    def create(
        self,
        user_id: str,
        location: str,
        name: str = "",
        workspace_id: Optional[str] = None,
    ) -> Workspace:
        """Insert a workspace row.

        Raises:
            sqlite3.IntegrityError: If *workspace_id* already exists.
        """
        workspace = Workspace(
            id=workspace_id or str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            location=location,
            created_at=time.time(),
        )
        conn = self._get_connection()
        try:
            conn.execute(
                f"INSERT INTO workspaces ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (
                    workspace.id,
                    workspace.user_id,
                    workspace.name,
                    workspace.location,
                    workspace.created_at,
                ),
            )
        finally:
            conn.close()
        return workspace

    def delete(self, workspace_id: str, user_id: str) -> bool:
        """Delete a workspace owned by *user_id*. Returns True if removed."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM workspaces WHERE id = ? AND user_id = ?",
                (workspace_id, user_id),
            )
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_for_user(self, user_id: str) -> list[Workspace]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM workspaces WHERE user_id = ? "
                "ORDER BY created_at",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return [Workspace.from_row(row) for row in rows]
