import logging

from flask import Blueprint, jsonify
from sqlalchemy.exc import IntegrityError

from auth import admin_required
from errors import Conflict, NotFound
from models import Movie, Reservation, db
from notifications import dispatch_notifications, enqueue_email
from routes import request_data
from schemas import SEAT_ROWS, SEATS_PER_ROW, reservation_request_schema, reservations_schema

logger = logging.getLogger(__name__)

reservation_bp = Blueprint("reservation_api", __name__)


def _get_movie_or_404(movie_id):
    movie = db.session.get(Movie, movie_id)
    if movie is None:
        raise NotFound("Movie not found")
    return movie


@reservation_bp.route("/api/seats", methods=["GET"])
def get_seat_map():
    rows = [
        {"row": row, "seats": [f"{row}{number}" for number in range(1, SEATS_PER_ROW + 1)]}
        for row in SEAT_ROWS
    ]
    return jsonify({"success": True, "data": rows})


@reservation_bp.route("/api/reserve", methods=["POST"])
def reserve_seat():
    data = reservation_request_schema.load(request_data())
    movie = _get_movie_or_404(data["movie_id"])

    reservation = Reservation(
        movie_id=movie.id,
        seat_number=data["seat_number"],
        name=data["name"],
        email=data["email"],
    )
    db.session.add(reservation)
    try:
        # the (movie_id, seat_number) constraint settles concurrent requests
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(f"Seat {data['seat_number']} is already reserved")

    notification = enqueue_email(
        "reservation",
        reservation.email,
        "Golden Arm Reservation Confirmation",
        "email/reservation.html",
        reservation=reservation,
        movie=movie,
    )
    db.session.commit()
    logger.info("Reserved seat %s for %s (%s)", reservation.seat_number, movie.title, movie.id)

    dispatch_notifications([notification.id])
    return jsonify({"success": True, "message": "Reservation confirmed", "data": {"id": str(reservation.id)}})


@reservation_bp.route("/api/reserved/<uuid:movie_id>", methods=["GET"])
def get_reserved_seats(movie_id):
    movie = _get_movie_or_404(movie_id)
    seats = [
        seat
        for (seat,) in db.session.query(Reservation.seat_number)
        .filter(Reservation.movie_id == movie.id)
        .order_by(Reservation.seat_number)
    ]
    return jsonify({"success": True, "data": seats})


@reservation_bp.route("/api/reservations/<uuid:movie_id>", methods=["GET"])
@admin_required
def get_reservations(movie_id):
    movie = _get_movie_or_404(movie_id)
    reservations = (
        Reservation.query.filter_by(movie_id=movie.id).order_by(Reservation.seat_number).all()
    )
    return jsonify({"success": True, "data": reservations_schema.dump(reservations)})


@reservation_bp.route("/api/reservation/<uuid:reservation_id>", methods=["DELETE"])
@admin_required
def delete_reservation(reservation_id):
    reservation = db.session.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFound("Reservation not found")
    db.session.delete(reservation)
    db.session.commit()
    logger.info("Deleted reservation %s", reservation_id)
    return jsonify({"success": True, "message": "Reservation deleted successfully"})
