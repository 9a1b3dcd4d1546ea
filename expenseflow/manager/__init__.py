"""Approver blueprint."""
from flask import Blueprint

manager_bp = Blueprint("manager", __name__)

from . import routes  # noqa: E402,F401
