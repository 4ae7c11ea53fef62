import sqlite3
import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


def utcnow():
    # Stored as naive UTC so SQLite and PostgreSQL compare the same way.
    return datetime.now(timezone.utc).replace(tzinfo=None)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Movie(db.Model):
    __tablename__ = 'movies'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    title = db.Column(db.String(255), nullable=False)
    date = db.Column(db.DateTime, unique=True, nullable=False)
    runtime = db.Column(db.Integer, nullable=False, default=0)
    poster_url = db.Column(db.String(500), nullable=False, default="")
    menu_url = db.Column(db.String(500), nullable=False, default="")

    reservations = db.relationship(
        "Reservation", back_populates="movie", cascade="all, delete-orphan", passive_deletes=True
    )


class Reservation(db.Model):
    __tablename__ = 'reservations'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    movie_id = db.Column(db.Uuid, db.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False)
    seat_number = db.Column(db.String(8), nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=utcnow)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    movie = db.relationship("Movie", back_populates="reservations")

    __table_args__ = (
        db.UniqueConstraint("movie_id", "seat_number", name="uq_reservations_movie_seat"),
    )


class Comment(db.Model):
    __tablename__ = 'comments'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(255), nullable=False, default="")
    email = db.Column(db.String(255), nullable=False, default="")
    comment = db.Column(db.Text, nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=utcnow)


class Calendar(db.Model):
    __tablename__ = 'calendars'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    image_url = db.Column(db.String(500), nullable=False, default="")
    date = db.Column(db.DateTime, nullable=False, default=utcnow)


class Merchandise(db.Model):
    __tablename__ = 'merchandise'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    price = db.Column(db.Numeric(10, 2), nullable=False)
    image_url = db.Column(db.String(500), nullable=False, default="")

    sizes = db.relationship(
        "MerchandiseSize",
        back_populates="merchandise",
        cascade="all, delete-orphan",
        order_by="MerchandiseSize.size",
    )


class MerchandiseSize(db.Model):
    __tablename__ = 'merchandise_sizes'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    merchandise_id = db.Column(
        db.Uuid, db.ForeignKey("merchandise.id", ondelete="CASCADE"), nullable=False
    )
    size = db.Column(db.String(20), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    merchandise = db.relationship("Merchandise", back_populates="sizes")

    __table_args__ = (
        db.UniqueConstraint("merchandise_id", "size", name="uq_merchandise_sizes_size"),
        db.CheckConstraint("quantity >= 0", name="ck_merchandise_sizes_quantity"),
    )


class Order(db.Model):
    __tablename__ = 'orders'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=utcnow)
    total = db.Column(db.Numeric(10, 2), nullable=False)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    items = db.relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(db.Model):
    __tablename__ = 'order_items'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    merchandise_id = db.Column(
        db.Uuid, db.ForeignKey("merchandise.id", ondelete="SET NULL"), nullable=True
    )
    movie_id = db.Column(db.Uuid, db.ForeignKey("movies.id", ondelete="SET NULL"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    size = db.Column(db.String(20), nullable=False, default="")
    # price at purchase time, never updated
    price = db.Column(db.Numeric(10, 2), nullable=False)

    order = db.relationship("Order", back_populates="items")
    merchandise = db.relationship("Merchandise")
    movie = db.relationship("Movie")


class AdminSession(db.Model):
    __tablename__ = 'admin_sessions'
    token = db.Column(db.String(64), primary_key=True)
    user = db.Column(db.String(50), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)


class Notification(db.Model):
    __tablename__ = 'notifications'
    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    kind = db.Column(db.String(50), nullable=False)
    recipient = db.Column(db.String(255), nullable=False)
    cc = db.Column(db.String(255), nullable=True)
    subject = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)
