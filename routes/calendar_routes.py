import logging

from flask import Blueprint, jsonify, request

from auth import admin_required
from errors import BadRequest, NotFound
from models import Calendar, db, utcnow
from routes import changed_fields, is_multipart, request_data
from schemas import calendar_schema, calendar_update_schema, calendars_schema
from storage import upload_file

logger = logging.getLogger(__name__)

calendar_bp = Blueprint("calendar_api", __name__)


def _get_calendar_or_404(calendar_id):
    calendar = db.session.get(Calendar, calendar_id)
    if calendar is None:
        raise NotFound("Calendar not found")
    return calendar


def check_overlap(start_date, end_date, exclude_id=None):
    """Raise BadRequest if [start_date, end_date] intersects a stored calendar."""
    query = Calendar.query.filter(Calendar.start_date <= end_date, Calendar.end_date >= start_date)
    if exclude_id is not None:
        query = query.filter(Calendar.id != exclude_id)
    if query.count() > 0:
        logger.info("Calendar %s - %s overlaps an existing calendar", start_date, end_date)
        raise BadRequest("Calendar overlaps with existing calendar.")


def _upload_calendar_image(fields, start_date):
    image = request.files.get("image")
    if image and image.filename:
        fields["image_url"] = upload_file(image, "Calendars", f"Calendar {start_date:%Y-%m-%d}")
    return fields


@calendar_bp.route("/api/calendar", methods=["GET"])
def get_calendar():
    now = utcnow()
    # current range, else the next one to start, else the last one to end
    calendar = Calendar.query.filter(Calendar.start_date <= now, Calendar.end_date >= now).first()
    if calendar is None:
        calendar = (
            Calendar.query.filter(Calendar.start_date > now)
            .order_by(Calendar.start_date.asc())
            .first()
        )
    if calendar is None:
        calendar = (
            Calendar.query.filter(Calendar.end_date < now).order_by(Calendar.end_date.desc()).first()
        )
    if calendar is None:
        raise NotFound("No calendars available")
    return jsonify({"success": True, "data": calendar_schema.dump(calendar)})


@calendar_bp.route("/api/calendar/all", methods=["GET"])
@admin_required
def get_all_calendars():
    calendars = Calendar.query.order_by(Calendar.end_date.desc()).all()
    return jsonify({"success": True, "data": calendars_schema.dump(calendars)})


@calendar_bp.route("/api/calendar", methods=["POST"])
@admin_required
def add_calendar():
    fields = calendar_schema.load(request_data())
    check_overlap(fields["start_date"], fields["end_date"])
    if is_multipart():
        _upload_calendar_image(fields, fields["start_date"])

    calendar = Calendar(**fields)
    db.session.add(calendar)
    db.session.commit()
    logger.info("Added calendar %s - %s", calendar.start_date, calendar.end_date)
    return jsonify(
        {"success": True, "message": "Calendar added successfully", "data": calendar_schema.dump(calendar)}
    )


@calendar_bp.route("/api/calendar/<uuid:calendar_id>", methods=["PUT"])
@admin_required
def update_calendar(calendar_id):
    calendar = _get_calendar_or_404(calendar_id)
    updates = changed_fields(calendar_update_schema.load(request_data()), clearable=("image_url",))

    start_date = updates.get("start_date", calendar.start_date)
    end_date = updates.get("end_date", calendar.end_date)
    if end_date < start_date:
        raise BadRequest("end_date must not be before start_date")

    check_overlap(start_date, end_date, exclude_id=calendar.id)
    if is_multipart():
        _upload_calendar_image(updates, start_date)

    for field, value in updates.items():
        setattr(calendar, field, value)
    db.session.commit()
    return jsonify(
        {"success": True, "message": "Calendar updated successfully", "data": calendar_schema.dump(calendar)}
    )


@calendar_bp.route("/api/calendar/<uuid:calendar_id>", methods=["DELETE"])
@admin_required
def delete_calendar(calendar_id):
    calendar = _get_calendar_or_404(calendar_id)
    db.session.delete(calendar)
    db.session.commit()
    logger.info("Deleted calendar %s", calendar_id)
    return jsonify({"success": True, "message": "Calendar deleted successfully"})
