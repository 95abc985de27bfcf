# Overview: Outgoing SMTP mail for workflow notifications and reminders.

"""
Email Notifier

Thin wrapper over smtplib configured from app.config (MAIL_*).

DESIGN: send_email never raises for delivery problems. It returns True when
the SMTP server accepted the message and False otherwise (mail disabled, no
recipients, connection or auth failure). Callers run it only after their
transaction has committed, so a mail outage can never undo a workflow step.
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Iterable

from flask import current_app


def _open_connection(config):
    host = config["MAIL_SERVER"]
    port = config["MAIL_PORT"]
    timeout = config.get("MAIL_TIMEOUT_SECONDS", 10)
    if config.get("MAIL_USE_SSL"):
        return smtplib.SMTP_SSL(host, port, timeout=timeout)
    return smtplib.SMTP(host, port, timeout=timeout)


def send_email(subject: str, body: str, recipients: Iterable[str], html_body: str | None = None) -> bool:
    """
    Send a plain-text (optionally multipart HTML) message.

    Returns:
        True if delivered to the SMTP server, False otherwise
    """
    config = current_app.config
    recipients = [r for r in (recipients or []) if r]

    if not recipients:
        current_app.logger.info("Email skipped (no recipients): %s", subject)
        return False

    if not config.get("MAIL_ENABLED"):
        current_app.logger.info("Email disabled; not sending %r to %s", subject, ", ".join(recipients))
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = config.get("MAIL_DEFAULT_SENDER") or config.get("MAIL_USERNAME")
    message["To"] = ", ".join(recipients)
    message.set_content(body)
    if html_body:
        message.add_alternative(html_body, subtype="html")

    try:
        with _open_connection(config) as server:
            if config.get("MAIL_USE_TLS") and not config.get("MAIL_USE_SSL"):
                server.starttls()
            if config.get("MAIL_USERNAME") and config.get("MAIL_PASSWORD"):
                server.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.warning("Failed to send email %r to %s: %s", subject, ", ".join(recipients), exc)
        return False

    current_app.logger.info("Email sent: %r to %s", subject, ", ".join(recipients))
    return True


# =============================================================================
# MESSAGE TEMPLATES
# =============================================================================

APP_NAME = "AssetDesk"


def send_request_decision(to_email: str, full_name: str, product_name: str, approved: bool,
                          remarks: str | None = None) -> bool:
    decision = "approved" if approved else "rejected"
    lines = [
        f"Hello {full_name},",
        "",
        f"Your request for \"{product_name}\" has been {decision}.",
    ]
    if remarks:
        lines.append(f"Remarks: {remarks}")
    if approved:
        lines += ["", "Please collect the item from your monitor."]
    return send_email(f"Request {decision.capitalize()} - {APP_NAME}", "\n".join(lines), [to_email])


def send_return_decision(to_email: str, full_name: str, product_name: str, approved: bool,
                         remarks: str | None = None) -> bool:
    if approved:
        text = f"Your return of \"{product_name}\" has been accepted. Thank you."
        subject = f"Return Accepted - {APP_NAME}"
    else:
        text = f"Your return request for \"{product_name}\" was not accepted. Please contact your monitor."
        subject = f"Return Not Accepted - {APP_NAME}"
    lines = [f"Hello {full_name},", "", text]
    if remarks:
        lines.append(f"Remarks: {remarks}")
    return send_email(subject, "\n".join(lines), [to_email])


def send_extension_decision(to_email: str, full_name: str, product_name: str, approved: bool,
                            return_date: str | None, remarks: str | None = None) -> bool:
    decision = "approved" if approved else "rejected"
    lines = [
        f"Hello {full_name},",
        "",
        f"Your extension request for \"{product_name}\" has been {decision}.",
        f"Return date: {return_date or 'not set'}",
    ]
    if remarks:
        lines.append(f"Remarks: {remarks}")
    return send_email(f"Extension {decision.capitalize()} - {APP_NAME}", "\n".join(lines), [to_email])


def send_registration_decision(to_email: str, full_name: str, username: str, approved: bool) -> bool:
    if approved:
        subject = f"Registration Approved - {APP_NAME}"
        body = (
            f"Hello {full_name},\n\n"
            f"Your registration has been approved. You can now sign in as \"{username}\"."
        )
    else:
        subject = f"Registration Request - {APP_NAME}"
        body = (
            f"Hello {full_name},\n\n"
            "Your registration request was not approved. Please contact an administrator."
        )
    return send_email(subject, body, [to_email])


def send_password_reset(to_email: str, full_name: str, reset_link: str, valid_minutes: int) -> bool:
    body = "\n".join([
        f"Hello {full_name},",
        "",
        "We received a request to reset your password. Use the link below to choose a new one:",
        reset_link,
        "",
        f"The link expires in {valid_minutes} minutes and can be used once.",
        "If you did not ask for a reset, you can ignore this message.",
    ])
    return send_email(f"Password Reset - {APP_NAME}", body, [to_email])


def send_pending_reminder(recipients: list[str], pending_requests: int, pending_returns: int,
                          pending_extensions: int) -> bool:
    total = pending_requests + pending_returns + pending_extensions
    subject = f"Reminder: {total} Pending Item{'s' if total != 1 else ''} - {APP_NAME}"
    body = "\n".join([
        "Hello,",
        "",
        "The following items are waiting for a monitor:",
        f"- Product requests: {pending_requests}",
        f"- Return requests: {pending_returns}",
        f"- Extension requests: {pending_extensions}",
        "",
        "Please review them at your earliest convenience.",
    ])
    return send_email(subject, body, recipients)
