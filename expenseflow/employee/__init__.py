"""Employee-facing blueprint."""
from flask import Blueprint

employee_bp = Blueprint("employee", __name__)

from . import routes  # noqa: E402,F401
