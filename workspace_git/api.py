"""Workspace git HTTP API.

Routes:
    GET  /api/workspace/<id>/git?action=status|log|diff|branches|remotes
    POST /api/workspace/<id>/git   {"action": "...", ...}
    GET  /health

Request pipeline (every branch is terminal):
    session check (401) -> ownership check (404) -> CSRF, POST only (403)
    -> rate limit, POST only (429) -> parse + validate (400)
    -> execute -> 200 (git failures reported in-body) / 500
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from flask import Flask, Response, jsonify, request

from workspace_git.auth import SessionAuthenticator
from workspace_git.commands import CommandTimeouts
from workspace_git.config import GitApiConfig, load_config
from workspace_git.csrf import CsrfValidator
from workspace_git.errors import (
    AuthenticationError,
    CsrfError,
    ValidationError,
    WorkspaceNotFoundError,
)
from workspace_git.executor import CommandExecutor, create_executor
from workspace_git.logging_config import audit_log, flask_request_middleware, set_context
from workspace_git.models import parse_action
from workspace_git.rate_limit import RateLimiter
from workspace_git.service import GitService
from workspace_git.store import WorkspaceStore

logger = logging.getLogger(__name__)

MAX_WORKSPACE_ID_LENGTH = 128


def _make_error(message: str, status: int) -> Response:
    """Create a JSON error response."""
    return Response(
        json.dumps({"success": False, "error": message}),
        status=status,
        content_type="application/json",
    )


def create_app(
    config: Optional[GitApiConfig] = None,
    *,
    store: Optional[WorkspaceStore] = None,
    executor: Optional[CommandExecutor] = None,
    authenticator: Optional[SessionAuthenticator] = None,
    csrf: Optional[CsrfValidator] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> Flask:
    """Create the workspace git Flask application.

    Args:
        config: Service configuration (loaded from env/YAML if None).
        store: Workspace ownership store.
        executor: Execution collaborator.
        authenticator: Session authenticator.
        csrf: CSRF validator.
        rate_limiter: Per-user rate limiter for POST actions.
    """
    config = config or load_config()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_request_body

    store = store or WorkspaceStore(config.db_path)
    executor = executor or create_executor(config.executor, config.workspaces_root)
    authenticator = authenticator or SessionAuthenticator(
        config.session_secret, max_age=config.session_max_age
    )
    csrf = csrf or CsrfValidator(config.allowed_origins)
    limiter = rate_limiter or RateLimiter(
        burst=config.rate_burst, per_minute=config.rate_per_minute
    )
    service = GitService(
        executor,
        CommandTimeouts(
            default=config.command_timeout,
            network=config.network_timeout,
            clone=config.clone_timeout,
        ),
    )

    flask_request_middleware(app)

    @app.route("/api/workspace/<workspace_id>/git", methods=["GET", "POST"])
    def workspace_git(workspace_id: str):
        # --- Authentication ---
        try:
            user_id = authenticator.authenticate(request)
        except AuthenticationError:
            return _make_error("Unauthorized", 401)
        set_context(user_id=user_id, workspace_id=workspace_id)

        # --- Ownership (missing and foreign look the same) ---
        try:
            if len(workspace_id) > MAX_WORKSPACE_ID_LENGTH:
                raise WorkspaceNotFoundError(workspace_id)
            workspace = store.require_owned(workspace_id, user_id)
        except WorkspaceNotFoundError:
            return _make_error("Workspace not found", 404)

        if request.method == "POST":
            # --- CSRF ---
            try:
                csrf.validate(request)
            except CsrfError as exc:
                audit_log(event="csrf_rejected", action="unknown",
                          decision="deny", reason=str(exc))
                return _make_error("CSRF validation failed", 403)

            # --- Rate limit ---
            allowed, retry = limiter.check(user_id)
            if not allowed:
                resp = _make_error("Rate limit exceeded", 429)
                resp.headers["Retry-After"] = str(int(retry) + 1)
                return resp

            try:
                payload = json.loads(request.get_data())
            except (json.JSONDecodeError, UnicodeDecodeError):
                return _make_error("Invalid JSON body", 400)
        else:
            payload = request.args.to_dict()

        # --- Dispatch ---
        try:
            action = parse_action(payload, request.method)
            body = service.run(workspace, action)
        except ValidationError as exc:
            return jsonify(exc.to_dict()), 400
        except Exception:
            logger.exception("Git operation failed for workspace %s", workspace_id)
            return _make_error("Git operation failed", 500)

        return jsonify(body)

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.errorhandler(404)
    def not_found(e):
        return _make_error("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _make_error("Method not allowed", 405)

    @app.errorhandler(413)
    def request_too_large(e):
        return _make_error(
            f"Request body too large (max {config.max_request_body} bytes)", 413
        )

    @app.errorhandler(500)
    def internal_error(e):
        return _make_error("Internal server error", 500)

    # Attach components for external access (CLI, testing)
    app.workspace_store = store
    app.executor = executor
    app.authenticator = authenticator
    app.rate_limiter = limiter
    app.git_service = service

    return app


def run_server(app: Flask, host: str, port: int) -> None:
    """Serve *app* with werkzeug's threaded server until interrupted."""
    from werkzeug.serving import make_server

    logger.info("Starting workspace git API on %s:%d", host, port)
    server = make_server(host, port, app, threaded=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Workspace git API shutting down")
    finally:
        server.shutdown()
