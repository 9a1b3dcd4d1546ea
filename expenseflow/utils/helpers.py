"""General helper utilities."""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Dict

from flask import Flask, jsonify, request
from flask_login import current_user

from expenseflow.models import UserRole
from expenseflow.services.errors import ApprovalError

logger = logging.getLogger(__name__)

JsonView = Callable[..., Any]


def json_response(payload: Any, status: int = 200):
    """Return a JSON response with status code."""
    return jsonify(payload), status


def get_payload() -> Dict[str, Any]:
    """Return the request body as a dict, accepting JSON or form posts."""
    if request.is_json:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}
    return request.form.to_dict()


def role_required(*roles: UserRole):
    """Restrict a route to one or more roles."""
    def decorator(view_func: JsonView) -> JsonView:
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return json_response({"error": "Authentication required."}, status=401)
            if current_user.role not in roles:
                return json_response({"error": "Insufficient permissions."}, status=403)
            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def register_error_handlers(app: Flask) -> None:
    """Render service errors and HTTP errors as JSON."""

    @app.errorhandler(ApprovalError)
    def handle_approval_error(error: ApprovalError):
        logger.info("%s: %s", error.code, error.message)
        return json_response(error.to_dict(), status=error.status_code)

    @app.errorhandler(404)
    def handle_not_found(error):
        return json_response({"error": "Not found."}, status=404)

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return json_response({"error": "Method not allowed."}, status=405)
