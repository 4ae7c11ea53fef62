import os
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["SESSION_BACKEND"] = "memory"
os.environ["EMAIL_BACKEND"] = "console"
os.environ.setdefault("JWT_SECRET_KEY", "unit-test-jwt-secret-key-0123456789abcdef")
os.environ["ADMIN_PASSKEY"] = "letmein"
os.environ.pop("ADMIN_PASSKEY_HASH", None)
os.environ["API_KEY"] = "test-api-key"
os.environ["EMAIL_FROM"] = "theater@example.com"
os.environ.setdefault("S3_BUCKET_NAME", "test-bucket")

from app import app, db
from models import Merchandise, MerchandiseSize, Movie
from notifications import DeliveryError
from sessions import MemorySessionStore


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html, cc=None):
        if self.fail:
            raise DeliveryError("SMTP server unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html, "cc": cc})


class FakeUploader:
    def __init__(self):
        self.uploads = []

    def upload(self, file, folder, name):
        self.uploads.append({"folder": folder, "name": name, "filename": file.filename})
        return f"https://test-bucket.s3.us-east-1.amazonaws.com/{folder}/{name}"


@pytest.fixture()
def admin_headers():
    return {"Authorization": "Bearer test-api-key"}


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def uploader():
    return FakeUploader()


@pytest.fixture()
def client(mailer, uploader):
    app.config.update(TESTING=True)
    saved = dict(app.extensions)
    app.extensions["mailer"] = mailer
    app.extensions["uploader"] = uploader
    app.extensions["session_store"] = MemorySessionStore()
    with app.app_context():
        db.drop_all()
        db.create_all()
        yield app.test_client()
        db.session.remove()
        db.drop_all()
    app.extensions.update(saved)


@pytest.fixture()
def movie(client):
    movie = Movie(title="Jaws", date=datetime(2030, 6, 20, 20, 0), runtime=124)
    db.session.add(movie)
    db.session.commit()
    return movie


@pytest.fixture()
def past_movie(client):
    movie = Movie(title="Alien", date=datetime(2020, 10, 31, 20, 0), runtime=117)
    db.session.add(movie)
    db.session.commit()
    return movie


@pytest.fixture()
def shirt(client):
    merch = Merchandise(name="Golden Arm T-Shirt", description="Logo tee", price=Decimal("20.00"))
    merch.sizes = [MerchandiseSize(size="M", quantity=3), MerchandiseSize(size="L", quantity=5)]
    db.session.add(merch)
    db.session.commit()
    return merch

