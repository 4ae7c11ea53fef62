"""Transactional email via an outbox table.

Handlers call :func:`enqueue_email` inside their own transaction, so the
notification row commits together with the reservation or order it belongs
to. After the commit :func:`dispatch_notifications` tries to deliver it. A
delivery failure leaves the row pending; ``flask send-notifications`` retries
pending rows until ``NOTIFICATION_MAX_ATTEMPTS`` is reached. Delivery is
at-least-once: a crash between sending and recording the send repeats it.
"""
import logging
import smtplib
from email.message import EmailMessage

import requests
from flask import current_app, render_template

from models import Notification, db, utcnow

logger = logging.getLogger(__name__)

PENDING = "pending"
SENT = "sent"
FAILED = "failed"


class DeliveryError(Exception):
    pass


class SMTPMailer:
    def __init__(self, host, port, username, password, sender):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender

    def send(self, to, subject, html, cc=None):
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        if cc:
            msg["Cc"] = cc
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
                smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(str(exc)) from exc


class HTTPMailer:
    """Posts messages to a JSON transactional-email API."""

    def __init__(self, api_url, api_key, sender, timeout=30):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, to, subject, html, cc=None):
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if cc:
            payload["cc"] = [cc]
        try:
            res = requests.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            res.raise_for_status()
        except requests.RequestException as exc:
            raise DeliveryError(str(exc)) from exc


class ConsoleMailer:
    def __init__(self, sender=None):
        self.sender = sender

    def send(self, to, subject, html, cc=None):
        logger.info("Email to=%s cc=%s subject=%r (%d bytes)", to, cc, subject, len(html))


def build_mailer(config):
    backend = (config.get("EMAIL_BACKEND") or "smtp").lower()
    sender = config.get("EMAIL_FROM")
    if backend == "smtp":
        return SMTPMailer(
            config["SMTP_HOST"],
            config["SMTP_PORT"],
            config.get("SMTP_USERNAME"),
            config.get("SMTP_PASSWORD"),
            sender,
        )
    if backend == "http":
        return HTTPMailer(config["EMAIL_API_URL"], config.get("EMAIL_API_KEY"), sender)
    if backend == "console":
        return ConsoleMailer(sender)
    raise RuntimeError(f"Unknown EMAIL_BACKEND: {backend}")


def get_mailer():
    return current_app.extensions["mailer"]


def enqueue_email(kind, recipient, subject, template, cc=None, **context):
    """Render ``template`` and add an outbox row to the current session.

    The caller owns the transaction; nothing is committed here.
    """
    notification = Notification(
        kind=kind,
        recipient=recipient,
        cc=cc,
        subject=subject,
        body=render_template(template, **context),
        status=PENDING,
        attempts=0,
    )
    db.session.add(notification)
    return notification


def deliver(notification):
    max_attempts = current_app.config["NOTIFICATION_MAX_ATTEMPTS"]
    notification.attempts += 1
    try:
        get_mailer().send(
            notification.recipient, notification.subject, notification.body, cc=notification.cc
        )
    except DeliveryError as exc:
        notification.last_error = str(exc)
        if notification.attempts >= max_attempts:
            notification.status = FAILED
        db.session.commit()
        logger.warning(
            "Failed to send %s email to %s (attempt %d): %s",
            notification.kind,
            notification.recipient,
            notification.attempts,
            exc,
        )
        return False

    notification.status = SENT
    notification.sent_at = utcnow()
    notification.last_error = None
    db.session.commit()
    logger.info("Sent %s email to %s", notification.kind, notification.recipient)
    return True


def dispatch_notifications(ids=None, limit=50):
    """Deliver pending notifications; returns ``(sent, failed)`` counts."""
    query = Notification.query.filter_by(status=PENDING)
    if ids is not None:
        query = query.filter(Notification.id.in_(ids))
    sent = failed = 0
    for notification in query.order_by(Notification.created_at.asc()).limit(limit).all():
        if deliver(notification):
            sent += 1
        else:
            failed += 1
    return sent, failed
