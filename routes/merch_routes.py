import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from auth import admin_required
from errors import BadRequest, Conflict, NotFound
from models import Merchandise, MerchandiseSize, db
from routes import changed_fields, is_multipart, request_data
from schemas import merchandise_list_schema, merchandise_schema, merchandise_update_schema
from storage import upload_file

logger = logging.getLogger(__name__)

merch_bp = Blueprint("merch_api", __name__)


def parse_size_fields(values):
    """Turn form values like ``"S,10"`` into size dicts for the schema."""
    sizes = []
    for value in values:
        parts = value.split(",")
        if len(parts) != 2:
            raise BadRequest("Invalid size format. Expected: Size,Quantity")
        size, quantity = (part.strip() for part in parts)
        sizes.append({"size": size, "quantity": quantity})
    return sizes


def _merch_payload():
    data = request_data(list_fields=("sizes",))
    if is_multipart() and "sizes" in data:
        data["sizes"] = parse_size_fields(data["sizes"])
    return data


def _upload_merch_image(fields, name):
    image = request.files.get("image")
    if image and image.filename:
        fields["image_url"] = upload_file(image, "Merchandise", name)
    return fields


def _get_merch_or_404(merch_id):
    merch = db.session.get(Merchandise, merch_id)
    if merch is None:
        raise NotFound("Merchandise not found")
    return merch


@merch_bp.route("/api/merch/all", methods=["GET"])
def get_all_merchandise():
    merch = Merchandise.query.order_by(Merchandise.name).all()
    return jsonify({"success": True, "data": merchandise_list_schema.dump(merch)})


@merch_bp.route("/api/merch", methods=["POST"])
@admin_required
def add_merchandise():
    fields = merchandise_schema.load(_merch_payload())
    if is_multipart():
        _upload_merch_image(fields, fields["name"])

    sizes = fields.pop("sizes")
    merch = Merchandise(**fields)
    merch.sizes = [MerchandiseSize(size=s["size"], quantity=s["quantity"]) for s in sizes]
    db.session.add(merch)
    db.session.commit()

    logger.info("Added merchandise %s with %d sizes", merch.name, len(sizes))
    return (
        jsonify(
            {
                "success": True,
                "message": "Merchandise added successfully",
                "id": str(merch.id),
                "data": merchandise_schema.dump(merch),
            }
        ),
        201,
    )


@merch_bp.route("/api/merch/<uuid:merch_id>", methods=["PUT"])
@admin_required
def update_merchandise(merch_id):
    merch = _get_merch_or_404(merch_id)

    data = merchandise_update_schema.load(_merch_payload())
    size_updates = data.pop("sizes")
    updates = changed_fields(data, clearable=("image_url",))
    if is_multipart():
        _upload_merch_image(updates, updates.get("name") or merch.name)

    for field, value in updates.items():
        setattr(merch, field, value)

    existing = {size.size: size for size in merch.sizes}
    for entry in size_updates:
        if entry["quantity"] is None:
            continue
        size = existing.get(entry["size"])
        if size is None:
            size = MerchandiseSize(size=entry["size"], quantity=entry["quantity"])
            merch.sizes.append(size)
            existing[entry["size"]] = size
        else:
            size.quantity = entry["quantity"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Merchandise sizes were changed by another request")

    return jsonify(
        {
            "success": True,
            "message": "Merchandise item updated successfully",
            "data": merchandise_schema.dump(merch),
        }
    )


@merch_bp.route("/api/merch/<uuid:merch_id>", methods=["DELETE"])
@admin_required
def delete_merchandise(merch_id):
    merch = _get_merch_or_404(merch_id)
    db.session.delete(merch)
    db.session.commit()
    logger.info("Deleted merchandise %s", merch_id)
    return jsonify(
        {"success": True, "message": "Merchandise item and associated sizes deleted successfully"}
    )
