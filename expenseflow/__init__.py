"""Application factory and extension initialization for ExpenseFlow."""
from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from flask_login import LoginManager
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

from config import config_by_name

# Global extension instances -------------------------------------------------

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
mail = Mail()


def create_app(config_name: Optional[str] = None) -> Flask:
    """Flask application factory."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    config_name = config_name or os.getenv("FLASK_CONFIG", "development")
    config_class = config_by_name.get(config_name.lower())
    if config_class is None:
        raise ValueError(f"Unknown Flask configuration '{config_name}'")

    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Ensure instance folder exists for SQLite DBs
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    mail.init_app(app)

    from expenseflow.services.email_service import init_email_service
    init_email_service(mail)

    # Register blueprints
    from expenseflow.main import main_bp
    from expenseflow.auth import auth_bp
    from expenseflow.admin import admin_bp
    from expenseflow.employee import employee_bp
    from expenseflow.manager import manager_bp

    prefix = app.config.get("API_PREFIX", "/api/v1")
    app.register_blueprint(main_bp, url_prefix=prefix)
    app.register_blueprint(auth_bp, url_prefix=f"{prefix}/auth")
    app.register_blueprint(admin_bp, url_prefix=prefix)
    app.register_blueprint(employee_bp, url_prefix=f"{prefix}/expenses")
    app.register_blueprint(manager_bp, url_prefix=f"{prefix}/approvals")

    from expenseflow.utils.helpers import register_error_handlers
    register_error_handlers(app)

    # Import all models to ensure they are registered with SQLAlchemy
    from expenseflow.models import (  # noqa: F401
        ApprovalFlow, AuditLog, Company, EmployeeProfile, Expense,
        ExpenseApproval, ExpenseApprovalState, User,
    )

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[User]:
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from expenseflow.utils.helpers import json_response
        return json_response({"error": "Authentication required."}, status=401)

    @app.shell_context_processor
    def shell_context():
        return {"db": db, "User": User, "Expense": Expense}

    return app
