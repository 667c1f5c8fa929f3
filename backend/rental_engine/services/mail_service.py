# Overview: Outbound e-mail sink; delivery failures never propagate into business transactions.

from __future__ import annotations

import smtplib
from email.message import EmailMessage

from flask import current_app


class MailDeliveryError(Exception):
    """Raised by a mailer when a message could not be handed off."""
    pass


class LogMailer:
    """Development/test backend: records messages in the app log and in memory."""

    def __init__(self):
        self.outbox: list[dict] = []

    def send(self, to: str, subject: str, html: str) -> None:
        self.outbox.append({"to": to, "subject": subject, "html": html})
        current_app.logger.info("Mail to=%s subject=%r (log backend)", to, subject)


class SmtpMailer:
    """Delivers HTML mail through the configured SMTP relay."""

    def __init__(self, config):
        self.server = config["MAIL_SERVER"]
        self.port = config["MAIL_PORT"]
        self.username = config.get("MAIL_USERNAME")
        self.password = config.get("MAIL_PASSWORD")
        self.use_tls = config.get("MAIL_USE_TLS", True)
        self.sender = config["MAIL_DEFAULT_SENDER"]
        self.timeout = config.get("MAIL_TIMEOUT_SECONDS", 10)

    def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(str(exc)) from exc


def _build_mailer(app):
    backend = (app.config.get("MAIL_BACKEND") or "log").lower()
    if backend == "smtp":
        return SmtpMailer(app.config)
    if backend == "log":
        return LogMailer()
    raise ValueError(f"Unknown MAIL_BACKEND {backend!r}")


def init_mailer(app) -> None:
    app.extensions["mailer"] = _build_mailer(app)


def get_mailer():
    return current_app.extensions["mailer"]


def send_email(to: str, subject: str, html: str) -> bool:
    """
    Send through the configured mailer.

    Returns False (and logs) on failure; callers decide whether a failure
    is reported, but it must never roll back committed state.
    """
    if not to:
        current_app.logger.warning("Skipping mail %r: no recipient", subject)
        return False
    try:
        get_mailer().send(to, subject, html)
    except Exception:
        current_app.logger.exception("Failed to send mail to=%s subject=%r", to, subject)
        return False
    return True
