from flask import Blueprint, jsonify
from sqlalchemy import union

from auth import admin_required
from errors import NotFound
from models import Comment, Reservation, db
from routes import request_data
from schemas import comment_schema, comments_schema

comment_bp = Blueprint("comment_api", __name__)


@comment_bp.route("/api/comment", methods=["POST"])
def post_comment():
    data = comment_schema.load(request_data())
    comment = Comment(**data)
    db.session.add(comment)
    db.session.commit()
    return jsonify({"success": True, "message": "Comment submitted"})


@comment_bp.route("/api/comments", methods=["GET"])
@admin_required
def get_comments():
    comments = Comment.query.order_by(Comment.date.desc()).all()
    return jsonify({"success": True, "data": comments_schema.dump(comments)})


@comment_bp.route("/api/comment/<uuid:comment_id>", methods=["DELETE"])
@admin_required
def delete_comment(comment_id):
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    db.session.delete(comment)
    db.session.commit()
    return jsonify({"success": True, "message": "Comment deleted successfully"})


@comment_bp.route("/api/emails", methods=["GET"])
@admin_required
def get_emails():
    # everyone who has reserved a seat or left a comment
    addresses = union(
        db.select(Reservation.email).where(Reservation.email != ""),
        db.select(Comment.email).where(Comment.email != ""),
    ).subquery()
    emails = db.session.execute(
        db.select(addresses.c.email).order_by(addresses.c.email)
    ).scalars().all()
    return jsonify({"success": True, "data": emails})
