import logging
import os
from datetime import timedelta
from decimal import Decimal

import click
from dotenv import load_dotenv
from flask import Flask

from auth import hash_passkey, jwt
from errors import register_error_handlers
from models import db
from notifications import build_mailer, dispatch_notifications
from routes.admin_routes import admin_bp
from routes.calendar_routes import calendar_bp
from routes.comment_routes import comment_bp
from routes.merch_routes import merch_bp
from routes.movie_routes import movie_bp
from routes.order_routes import order_bp
from routes.reservation_routes import reservation_bp
from sessions import build_session_store
from storage import S3Uploader

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def env_flag(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def database_url():
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if os.getenv("DB_HOST"):
        return "postgresql://{user}:{password}@{host}:{port}/{name}".format(
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASS", ""),
            host=os.getenv("DB_HOST"),
            port=os.getenv("DB_PORT", "5432"),
            name=os.getenv("DB_NAME", "golden_arm"),
        )
    return "sqlite:///golden_arm.db"


def admin_passkey_hash():
    stored = os.getenv("ADMIN_PASSKEY_HASH")
    if stored:
        return stored.encode('utf-8')
    passkey = os.getenv("ADMIN_PASSKEY")
    if passkey:
        return hash_passkey(passkey)
    logger.warning("Neither ADMIN_PASSKEY nor ADMIN_PASSKEY_HASH is set; admin login is disabled")
    return None


if not os.getenv("JWT_SECRET_KEY"):
    raise RuntimeError("JWT_SECRET_KEY environment variable is not set.")

session_ttl = timedelta(seconds=int(os.getenv("SESSION_TTL_SECONDS", "3600")))

app = Flask(__name__)
app.config["SQLALCHEMY_DATABASE_URI"] = database_url()
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY")
app.config["JWT_TOKEN_LOCATION"] = ["cookies"]
app.config["JWT_ACCESS_COOKIE_NAME"] = "sessionToken"
app.config["JWT_ACCESS_COOKIE_PATH"] = "/"
app.config["JWT_COOKIE_DOMAIN"] = os.getenv("SESSION_COOKIE_DOMAIN") or None
app.config["JWT_COOKIE_SECURE"] = env_flag("SESSION_COOKIE_SECURE", True)
app.config["JWT_COOKIE_CSRF_PROTECT"] = False
app.config["JWT_SESSION_COOKIE"] = False
app.config["JWT_ACCESS_TOKEN_EXPIRES"] = session_ttl
app.config["ADMIN_PASSKEY_HASH"] = admin_passkey_hash()
app.config["API_KEY"] = os.getenv("API_KEY")
app.config["SESSION_BACKEND"] = os.getenv("SESSION_BACKEND", "memory")
app.config["S3_BUCKET_NAME"] = os.getenv("S3_BUCKET_NAME")
app.config["AWS_REGION"] = os.getenv("AWS_REGION", "us-east-1")
app.config["EMAIL_BACKEND"] = os.getenv("EMAIL_BACKEND", "smtp")
app.config["SMTP_HOST"] = os.getenv("SMTP_HOST", "smtp.gmail.com")
app.config["SMTP_PORT"] = int(os.getenv("SMTP_PORT", "587"))
app.config["SMTP_USERNAME"] = os.getenv("SMTP_USERNAME")
app.config["SMTP_PASSWORD"] = os.getenv("SMTP_PASSWORD")
app.config["EMAIL_API_URL"] = os.getenv("EMAIL_API_URL")
app.config["EMAIL_API_KEY"] = os.getenv("EMAIL_API_KEY")
app.config["EMAIL_FROM"] = os.getenv("EMAIL_FROM") or os.getenv("SMTP_USERNAME")
app.config["NOTIFICATION_MAX_ATTEMPTS"] = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5"))
app.config["POSTER_PRICE"] = Decimal(os.getenv("POSTER_PRICE", "10.00"))

db.init_app(app)
jwt.init_app(app)

app.extensions["session_store"] = build_session_store(app.config["SESSION_BACKEND"])
app.extensions["mailer"] = build_mailer(app.config)
app.extensions["uploader"] = S3Uploader(app.config["S3_BUCKET_NAME"], app.config["AWS_REGION"])

register_error_handlers(app)

app.register_blueprint(admin_bp)
app.register_blueprint(movie_bp)
app.register_blueprint(reservation_bp)
app.register_blueprint(comment_bp)
app.register_blueprint(calendar_bp)
app.register_blueprint(merch_bp)
app.register_blueprint(order_bp)

with app.app_context():
    db.create_all()


@app.cli.command("send-notifications")
@click.option("--limit", default=50, show_default=True, help="Maximum emails to attempt.")
def send_notifications(limit):
    """Retry delivery of pending confirmation emails."""
    sent, failed = dispatch_notifications(limit=limit)
    click.echo(f"Sent {sent} notifications, {failed} failed")


@app.cli.command("purge-sessions")
def purge_sessions():
    """Remove expired admin sessions."""
    removed = app.extensions["session_store"].purge_expired()
    click.echo(f"Removed {removed} expired sessions")


if __name__ == '__main__':
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "8080")), debug=env_flag("FLASK_DEBUG", False))
