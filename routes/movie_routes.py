import logging
import uuid

from flask import Blueprint, jsonify, request
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from auth import admin_required
from errors import Conflict, NotFound
from models import Movie, db, utcnow
from routes import changed_fields, is_multipart, request_data
from schemas import movie_schema, movie_update_schema, movies_schema
from storage import upload_file

logger = logging.getLogger(__name__)

movie_bp = Blueprint("movie_api", __name__)

UPSERT_COLUMNS = ("title", "runtime", "poster_url", "menu_url")
CLEARABLE_COLUMNS = ("poster_url", "menu_url")
DATE_TAKEN = "Another movie is already scheduled on that date"


def _upload_movie_images(fields, title):
    # Files win over URLs submitted in the same form.
    poster = request.files.get("poster")
    if poster and poster.filename:
        fields["poster_url"] = upload_file(poster, title, f"{title} Poster")
    menu = request.files.get("menu")
    if menu and menu.filename:
        fields["menu_url"] = upload_file(menu, title, f"{title} Menu")
    return fields


def upsert_movie(fields):
    """Insert a movie, or overwrite the one already screening on the same date."""
    dialect = db.session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = postgresql_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(Movie).values(id=uuid.uuid4(), **fields)
        stmt = stmt.on_conflict_do_update(
            index_elements=["date"],
            set_={column: stmt.excluded[column] for column in UPSERT_COLUMNS},
        )
        db.session.execute(stmt)
    else:
        movie = Movie.query.filter_by(date=fields["date"]).first()
        if movie is None:
            db.session.add(Movie(**fields))
        else:
            for column in UPSERT_COLUMNS:
                setattr(movie, column, fields[column])
    db.session.commit()
    return Movie.query.filter_by(date=fields["date"]).one()


def _date_taken(date, movie_id):
    return Movie.query.filter(Movie.date == date, Movie.id != movie_id).count() > 0


def _get_movie_or_404(movie_id):
    movie = db.session.get(Movie, movie_id)
    if movie is None:
        raise NotFound("Movie not found")
    return movie


@movie_bp.route("/api/movie/<uuid:movie_id>", methods=["GET"])
def get_movie(movie_id):
    movie = _get_movie_or_404(movie_id)
    return jsonify({"success": True, "data": movie_schema.dump(movie)})


@movie_bp.route("/api/movie/next", methods=["GET"])
def get_next_movie():
    # closest upcoming screening, else the most recent past one
    movie = next_movie()
    if movie is None:
        raise NotFound("No movies scheduled")
    return jsonify({"success": True, "data": movie_schema.dump(movie)})


def next_movie():
    now = utcnow()
    movie = Movie.query.filter(Movie.date > now).order_by(Movie.date.asc()).first()
    if movie is None:
        movie = Movie.query.filter(Movie.date <= now).order_by(Movie.date.desc()).first()
    return movie


@movie_bp.route("/api/movie/all", methods=["GET"])
def get_all_movies():
    movies = Movie.query.order_by(Movie.date.desc()).all()
    return jsonify({"success": True, "data": movies_schema.dump(movies)})


@movie_bp.route("/api/movie/archive", methods=["GET"])
def get_movie_archive():
    movies = Movie.query.filter(Movie.date < utcnow()).order_by(Movie.date.desc()).all()
    return jsonify({"success": True, "data": movies_schema.dump(movies)})


@movie_bp.route("/api/menu", methods=["GET"])
def get_menu():
    movie = next_movie()
    if movie is None or not movie.menu_url:
        raise NotFound("No menu available")
    return jsonify({"success": True, "data": {"movie_id": str(movie.id), "menu_url": movie.menu_url}})


@movie_bp.route("/api/movie", methods=["POST"])
@admin_required
def add_movie():
    fields = movie_schema.load(request_data())
    if is_multipart():
        _upload_movie_images(fields, fields["title"])

    movie = upsert_movie(fields)
    logger.info("Movie %s scheduled for %s", movie.title, movie.date)
    return jsonify(
        {"success": True, "message": "Movie added successfully", "data": movie_schema.dump(movie)}
    )


@movie_bp.route("/api/movie/<uuid:movie_id>", methods=["PUT"])
@admin_required
def update_movie(movie_id):
    movie = _get_movie_or_404(movie_id)

    updates = changed_fields(movie_update_schema.load(request_data()), clearable=CLEARABLE_COLUMNS)
    if "date" in updates and _date_taken(updates["date"], movie.id):
        raise Conflict(DATE_TAKEN)
    if is_multipart():
        _upload_movie_images(updates, updates.get("title") or movie.title)

    for field, value in updates.items():
        setattr(movie, field, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(DATE_TAKEN)

    return jsonify(
        {"success": True, "message": "Movie updated successfully", "data": movie_schema.dump(movie)}
    )


@movie_bp.route("/api/movie/<uuid:movie_id>", methods=["DELETE"])
@admin_required
def delete_movie(movie_id):
    movie = _get_movie_or_404(movie_id)
    db.session.delete(movie)
    db.session.commit()
    logger.info("Deleted movie %s", movie_id)
    return jsonify({"success": True, "message": "Movie deleted successfully"})
