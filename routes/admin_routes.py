import logging

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import set_access_cookies, unset_jwt_cookies

from auth import end_session, has_valid_session, session_cookie, start_session, verify_passkey
from errors import Unauthorized
from routes import request_data
from schemas import admin_login_schema

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/api/admin/login", methods=["POST"])
def admin_login():
    data = admin_login_schema.load(request_data())

    if not verify_passkey(data["passkey"], current_app.config.get("ADMIN_PASSKEY_HASH")):
        logger.warning("Failed admin login from %s", request.remote_addr)
        raise Unauthorized("Invalid passkey")

    token = start_session("admin")
    logger.info("Admin logged in from %s", request.remote_addr)

    response = jsonify({"success": True, "message": "Login successful"})
    set_access_cookies(response, token)
    return response


@admin_bp.route("/api/admin/logout", methods=["POST"])
def admin_logout():
    end_session(session_cookie())
    response = jsonify({"success": True, "message": "Logout successful"})
    unset_jwt_cookies(response)
    return response


@admin_bp.route("/api/admin/validate-session", methods=["POST"])
def validate_session():
    if not session_cookie():
        return jsonify({"valid": False, "message": "Invalid request"}), 400
    if not has_valid_session():
        return jsonify({"valid": False, "message": "Invalid session"}), 401
    return jsonify({"valid": True, "message": "Session is valid"})
