"""Main application routes."""
from __future__ import annotations

from flask_wtf.csrf import generate_csrf

from expenseflow.utils.helpers import json_response

from . import main_bp


@main_bp.route("/health", methods=["GET"])
def health():
    """Liveness probe."""
    return json_response({"status": "ok"})


@main_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    """Issue a CSRF token for the X-CSRFToken header."""
    return json_response({"csrfToken": generate_csrf()})
