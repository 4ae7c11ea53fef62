import smtplib

import pytest
import requests

import notifications
from app import app
from models import Notification, Reservation, db
from notifications import (
    ConsoleMailer,
    DeliveryError,
    HTTPMailer,
    SMTPMailer,
    build_mailer,
    dispatch_notifications,
    enqueue_email,
)


def add_notification(recipient="jb@example.com"):
    notification = Notification(
        kind="reservation", recipient=recipient, subject="Hi", body="<p>Hi</p>"
    )
    db.session.add(notification)
    db.session.commit()
    return notification


def test_enqueue_renders_template_without_committing(client, movie):
    reservation = Reservation(movie=movie, seat_number="A1", name="Joey B", email="jb@example.com")
    notification = enqueue_email(
        "reservation",
        "jb@example.com",
        "Golden Arm Reservation Confirmation",
        "email/reservation.html",
        reservation=reservation,
        movie=movie,
    )
    assert "Joey B" in notification.body
    assert "Jaws" in notification.body
    assert notification.status == "pending"

    db.session.rollback()
    assert Notification.query.count() == 0


def test_failed_delivery_is_retried_until_limit(client, mailer, monkeypatch):
    monkeypatch.setitem(app.config, "NOTIFICATION_MAX_ATTEMPTS", 2)
    notification = add_notification()
    mailer.fail = True

    assert dispatch_notifications() == (0, 1)
    assert notification.status == "pending"
    assert dispatch_notifications() == (0, 1)
    assert notification.status == "failed"
    assert notification.attempts == 2

    # failed rows are no longer picked up
    mailer.fail = False
    assert dispatch_notifications() == (0, 0)


def test_pending_notification_is_sent_on_retry(client, mailer):
    notification = add_notification()
    mailer.fail = True
    dispatch_notifications()

    mailer.fail = False
    assert dispatch_notifications() == (1, 0)
    assert notification.status == "sent"
    assert notification.sent_at is not None
    assert notification.last_error is None
    assert mailer.sent[0]["to"] == "jb@example.com"


def test_dispatch_only_given_ids(client, mailer):
    first = add_notification("a@example.com")
    add_notification("b@example.com")

    assert dispatch_notifications([first.id]) == (1, 0)
    assert [message["to"] for message in mailer.sent] == ["a@example.com"]


def test_send_notifications_command(client, mailer):
    add_notification()
    result = app.test_cli_runner().invoke(args=["send-notifications"])
    assert "Sent 1 notifications, 0 failed" in result.output


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        self.logged_in = (username, password)

    def send_message(self, msg):
        self.messages.append(msg)


def test_smtp_mailer(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    mailer = SMTPMailer("smtp.gmail.com", 587, "theater@example.com", "secret", "theater@example.com")
    mailer.send("jb@example.com", "Hello", "<p>Hello</p>", cc="theater@example.com")

    smtp = FakeSMTP.instances[0]
    assert (smtp.host, smtp.port) == ("smtp.gmail.com", 587)
    assert smtp.logged_in == ("theater@example.com", "secret")
    msg = smtp.messages[0]
    assert msg["To"] == "jb@example.com"
    assert msg["Cc"] == "theater@example.com"
    assert msg["Subject"] == "Hello"


def test_smtp_errors_become_delivery_errors(monkeypatch):
    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "busy")

    monkeypatch.setattr(notifications.smtplib, "SMTP", refuse)
    with pytest.raises(DeliveryError):
        SMTPMailer("localhost", 25, None, None, "theater@example.com").send("a@b.com", "s", "<p></p>")


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_http_mailer(monkeypatch):
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers})
        return FakeResponse(202)

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    HTTPMailer("https://mail.example.com/send", "key", "theater@example.com").send(
        "jb@example.com", "Hello", "<p>Hello</p>"
    )
    assert calls[0]["json"]["to"] == ["jb@example.com"]
    assert "cc" not in calls[0]["json"]
    assert calls[0]["headers"]["Authorization"] == "Bearer key"


def test_http_mailer_error(monkeypatch):
    monkeypatch.setattr(notifications.requests, "post", lambda *args, **kwargs: FakeResponse(500))
    with pytest.raises(DeliveryError):
        HTTPMailer("https://mail.example.com/send", "key", "theater@example.com").send(
            "jb@example.com", "Hello", "<p>Hello</p>"
        )


def test_build_mailer():
    config = {"SMTP_HOST": "smtp.gmail.com", "SMTP_PORT": 587, "EMAIL_FROM": "theater@example.com"}
    assert isinstance(build_mailer(dict(config, EMAIL_BACKEND="smtp")), SMTPMailer)
    assert isinstance(build_mailer(dict(config, EMAIL_BACKEND="console")), ConsoleMailer)
    assert isinstance(
        build_mailer(dict(config, EMAIL_BACKEND="http", EMAIL_API_URL="https://mail.example.com")),
        HTTPMailer,
    )
    with pytest.raises(RuntimeError):
        build_mailer(dict(config, EMAIL_BACKEND="pigeon"))
