import hmac
import logging
from functools import wraps

import bcrypt
from flask import current_app, request
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    decode_token,
    get_jti,
    verify_jwt_in_request,
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from errors import Unauthorized

logger = logging.getLogger(__name__)

jwt = JWTManager()


def hash_passkey(passkey):
    return bcrypt.hashpw(passkey.encode('utf-8'), bcrypt.gensalt())


def verify_passkey(entered_passkey, stored_hash):
    if not entered_passkey or not stored_hash:
        return False
    try:
        return bcrypt.checkpw(entered_passkey.encode('utf-8'), stored_hash)
    except ValueError:
        # malformed hash or a passkey longer than bcrypt accepts
        return False


def get_session_store():
    return current_app.extensions["session_store"]


@jwt.token_in_blocklist_loader
def session_revoked(jwt_header, jwt_payload):
    return not get_session_store().is_active(jwt_payload.get("jti"))


def start_session(user="admin"):
    """Issue a session token for ``user`` and register it in the session store."""
    token = create_access_token(identity=user)
    ttl = current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    get_session_store().put(get_jti(token), user, ttl)
    return token


def end_session(token):
    if not token:
        return
    try:
        payload = decode_token(token, allow_expired=True)
    except (JWTExtendedException, PyJWTError):
        return
    get_session_store().delete(payload["jti"])


def session_cookie():
    return request.cookies.get(current_app.config["JWT_ACCESS_COOKIE_NAME"])


def has_valid_session():
    if not session_cookie():
        return False
    try:
        verify_jwt_in_request(locations=["cookies"])
    except (JWTExtendedException, PyJWTError):
        return False
    return True


def has_valid_api_key():
    api_key = current_app.config.get("API_KEY")
    header = request.headers.get("Authorization", "")
    if not api_key or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):], api_key)


def is_admin_request():
    return has_valid_session() or has_valid_api_key()


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not is_admin_request():
            logger.info("Rejected unauthorized request to %s", request.path)
            raise Unauthorized()
        return fn(*args, **kwargs)

    return wrapper
