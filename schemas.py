from datetime import timezone
from typing import Any, Dict

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    pre_load,
    validate,
    validates,
    validates_schema,
)

SEAT_ROWS = ("A", "B", "C")
SEATS_PER_ROW = 6
SEAT_MAP = tuple(f"{row}{number}" for row in SEAT_ROWS for number in range(1, SEATS_PER_ROW + 1))


def normalize_seat(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


def to_utc_naive(value):
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _strip_strings(data):
    if not isinstance(data, dict):
        return data
    return {key: value.strip() if isinstance(value, str) else value for key, value in data.items()}


class UTCDateTime(fields.DateTime):
    """Accepts RFC 3339 timestamps and stores them as naive UTC."""

    def _deserialize(self, value, attr, data, **kwargs):
        return to_utc_naive(super()._deserialize(value, attr, data, **kwargs))


class Money(fields.Decimal):
    def __init__(self, **kwargs):
        super().__init__(places=2, as_string=True, **kwargs)


# ---------------------------------------------------------------------------
# Movies
# ---------------------------------------------------------------------------
class MovieSchema(Schema):
    id = fields.UUID(dump_only=True)
    title = fields.String(required=True, validate=validate.Length(min=1, max=255))
    date = UTCDateTime(required=True)
    runtime = fields.Integer(load_default=0, validate=validate.Range(min=0))
    poster_url = fields.String(load_default="", validate=validate.Length(max=500))
    menu_url = fields.String(load_default="", validate=validate.Length(max=500))

    @pre_load
    def strip_fields(self, data: Dict[str, Any], **kwargs):
        return _strip_strings(data)


class MovieUpdateSchema(Schema):
    title = fields.String(validate=validate.Length(max=255))
    date = UTCDateTime()
    runtime = fields.Integer(validate=validate.Range(min=0))
    poster_url = fields.String(validate=validate.Length(max=500))
    menu_url = fields.String(validate=validate.Length(max=500))

    @pre_load
    def strip_fields(self, data: Dict[str, Any], **kwargs):
        return _strip_strings(data)


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------
class ReservationRequestSchema(Schema):
    movie_id = fields.UUID(required=True)
    seat_number = fields.String(required=True)
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)

    @pre_load
    def normalize(self, data: Dict[str, Any], **kwargs):
        data = _strip_strings(data)
        if isinstance(data, dict) and "seat_number" in data:
            data["seat_number"] = normalize_seat(data["seat_number"])
        return data

    @validates("seat_number")
    def validate_seat_number(self, value: str, **kwargs):
        if value not in SEAT_MAP:
            raise ValidationError(f"Unknown seat {value}")


class ReservationSchema(Schema):
    id = fields.UUID()
    movie_id = fields.UUID()
    seat_number = fields.String()
    date = fields.DateTime()
    name = fields.String()
    email = fields.String()


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
class CommentSchema(Schema):
    id = fields.UUID(dump_only=True)
    name = fields.String(load_default="", validate=validate.Length(max=255))
    email = fields.Email(load_default="")
    comment = fields.String(required=True, validate=validate.Length(min=1))
    date = fields.DateTime(dump_only=True)

    @pre_load
    def strip_fields(self, data: Dict[str, Any], **kwargs):
        data = _strip_strings(data)
        # a blank email means an anonymous comment
        if isinstance(data, dict) and data.get("email") == "":
            data = {key: value for key, value in data.items() if key != "email"}
        return data


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------
class CalendarSchema(Schema):
    id = fields.UUID(dump_only=True)
    start_date = UTCDateTime(required=True)
    end_date = UTCDateTime(required=True)
    image_url = fields.String(load_default="", validate=validate.Length(max=500))
    date = fields.DateTime(dump_only=True)

    @validates_schema
    def validate_range(self, data, **kwargs):
        start, end = data.get("start_date"), data.get("end_date")
        if start and end and end < start:
            raise ValidationError("end_date must not be before start_date", "end_date")


class CalendarUpdateSchema(Schema):
    start_date = UTCDateTime()
    end_date = UTCDateTime()
    image_url = fields.String(validate=validate.Length(max=500))


# ---------------------------------------------------------------------------
# Merchandise
# ---------------------------------------------------------------------------
class SizeSchema(Schema):
    size = fields.String(required=True, validate=validate.Length(min=1, max=20))
    quantity = fields.Integer(required=True, validate=validate.Range(min=0))


class SizeUpdateSchema(Schema):
    size = fields.String(required=True, validate=validate.Length(min=1, max=20))
    quantity = fields.Integer(load_default=None, allow_none=True, validate=validate.Range(min=0))


class MerchandiseSchema(Schema):
    id = fields.UUID(dump_only=True)
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    description = fields.String(load_default="")
    price = Money(required=True, validate=validate.Range(min=0, min_inclusive=False))
    image_url = fields.String(load_default="", validate=validate.Length(max=500))
    sizes = fields.List(fields.Nested(SizeSchema), load_default=list)

    @pre_load
    def strip_fields(self, data: Dict[str, Any], **kwargs):
        return _strip_strings(data)

    @validates("sizes")
    def validate_unique_sizes(self, value, **kwargs):
        labels = [entry["size"] for entry in value]
        if len(labels) != len(set(labels)):
            raise ValidationError("Sizes must be unique")


class MerchandiseUpdateSchema(Schema):
    name = fields.String(validate=validate.Length(max=255))
    description = fields.String()
    price = Money(validate=validate.Range(min=0, min_inclusive=False))
    image_url = fields.String(validate=validate.Length(max=500))
    sizes = fields.List(fields.Nested(SizeUpdateSchema), load_default=list)

    @pre_load
    def strip_fields(self, data: Dict[str, Any], **kwargs):
        return _strip_strings(data)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemRequestSchema(Schema):
    merchandise_id = fields.UUID(load_default=None, allow_none=True)
    movie_id = fields.UUID(load_default=None, allow_none=True)
    quantity = fields.Integer(required=True, validate=validate.Range(min=1))
    size = fields.String(load_default="")

    @validates_schema
    def validate_target(self, data, **kwargs):
        has_merch = data.get("merchandise_id") is not None
        has_movie = data.get("movie_id") is not None
        if has_merch == has_movie:
            raise ValidationError("Exactly one of merchandise_id or movie_id must be provided")
        if has_movie and data.get("size"):
            raise ValidationError("Posters have no size", "size")

    @post_load
    def strip_size(self, data, **kwargs):
        data["size"] = (data.get("size") or "").strip()
        return data


class OrderRequestSchema(Schema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True)
    items = fields.List(
        fields.Nested(OrderItemRequestSchema), required=True, validate=validate.Length(min=1)
    )


class OrderStatusSchema(Schema):
    paid = fields.Boolean(required=True)


class OrderItemSchema(Schema):
    id = fields.UUID()
    merchandise_id = fields.UUID(allow_none=True)
    movie_id = fields.UUID(allow_none=True)
    quantity = fields.Integer()
    size = fields.String()
    price = Money()
    merchandise = fields.Nested(MerchandiseSchema, exclude=("sizes",), allow_none=True)
    movie = fields.Nested(MovieSchema, allow_none=True)


class OrderSchema(Schema):
    id = fields.UUID()
    name = fields.String()
    email = fields.String()
    date = fields.DateTime()
    total = Money()
    paid = fields.Boolean()
    items = fields.List(fields.Nested(OrderItemSchema))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
class AdminLoginSchema(Schema):
    passkey = fields.String(required=True, validate=validate.Length(min=1))


movie_schema = MovieSchema()
movies_schema = MovieSchema(many=True)
movie_update_schema = MovieUpdateSchema()
reservation_request_schema = ReservationRequestSchema()
reservations_schema = ReservationSchema(many=True)
comment_schema = CommentSchema()
comments_schema = CommentSchema(many=True)
calendar_schema = CalendarSchema()
calendars_schema = CalendarSchema(many=True)
calendar_update_schema = CalendarUpdateSchema()
merchandise_schema = MerchandiseSchema()
merchandise_list_schema = MerchandiseSchema(many=True)
merchandise_update_schema = MerchandiseUpdateSchema()
order_request_schema = OrderRequestSchema()
order_status_schema = OrderStatusSchema()
order_schema = OrderSchema()
orders_schema = OrderSchema(many=True)
admin_login_schema = AdminLoginSchema()
