"""Email service for account and approval notifications."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from flask import current_app
from flask_mail import Mail, Message

logger = logging.getLogger(__name__)

APP_NAME = "ExpenseFlow"


class EmailService:
    """Service for sending transactional emails."""

    def __init__(self, mail: Optional[Mail] = None):
        self.mail = mail

    def send_temporary_password(self, email: str, password: str, user_name: Optional[str] = None) -> bool:
        """Send a freshly issued temporary password."""
        greeting = f"Hi {user_name}," if user_name else "Hello,"
        text_body = f"""
{greeting}

A temporary password was issued for your {APP_NAME} account.

Temporary password: {password}

You will be asked to choose a new password after signing in.

--
{APP_NAME} Team
        """
        html_body = (
            f"<p>{greeting}</p>"
            f"<p>A temporary password was issued for your {APP_NAME} account.</p>"
            f"<p><strong>Temporary password:</strong> <code>{password}</code></p>"
            "<p>You will be asked to choose a new password after signing in.</p>"
        )
        return self._send_email(
            to_email=email,
            subject=f"{APP_NAME} - Your temporary password",
            html_body=html_body,
            text_body=text_body.strip(),
        )

    def send_approval_request(self, emails: Iterable[str], expense_id: int, owner_name: str, amount: str) -> bool:
        """Tell approvers an expense is waiting on them."""
        text_body = (
            f"{owner_name} submitted expense #{expense_id} ({amount}). "
            f"It is waiting for your decision in {APP_NAME}."
        )
        return self._send_bulk(
            emails,
            subject=f"{APP_NAME} - Expense #{expense_id} needs your approval",
            text_body=text_body,
        )

    def send_resolution(self, email: str, expense_id: int, status: str, comment: Optional[str] = None) -> bool:
        """Tell the submitter their expense was approved or rejected."""
        text_body = f"Your expense #{expense_id} was {status}."
        if comment:
            text_body += f"\n\nComment: {comment}"
        return self._send_email(
            to_email=email,
            subject=f"{APP_NAME} - Expense #{expense_id} {status}",
            html_body=None,
            text_body=text_body,
        )

    def _send_bulk(self, emails: Iterable[str], subject: str, text_body: str) -> bool:
        results = [
            self._send_email(to_email=email, subject=subject, html_body=None, text_body=text_body)
            for email in emails
        ]
        return all(results)

    def _send_email(self, to_email: str, subject: str, html_body: Optional[str], text_body: Optional[str] = None) -> bool:
        """Send email using Flask-Mail."""
        try:
            if not self.mail:
                logger.error("Mail service not initialized")
                return False

            msg = Message(
                subject=subject,
                sender=current_app.config.get("MAIL_DEFAULT_SENDER"),
                recipients=[to_email],
            )

            if html_body:
                msg.html = html_body
            if text_body:
                msg.body = text_body

            self.mail.send(msg)
            logger.info("Email sent successfully to %s", to_email)
            return True

        except Exception as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return False


# Global email service instance
email_service = EmailService()


def init_email_service(mail: Mail) -> None:
    """Initialize the email service with Flask-Mail instance."""
    email_service.mail = mail
