from functools import wraps

from flask import current_app
from flask_jwt_extended import current_user, verify_jwt_in_request
from werkzeug.security import check_password_hash, generate_password_hash

from backend.utils.errors import Forbidden

MIN_PASSWORD_LENGTH = 6


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password_hash, password):
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def register_user_loader(jwt):
    """Resolve the JWT identity (a user id) to a User on every protected request."""

    @jwt.user_identity_loader
    def user_identity(user):
        return str(getattr(user, "id", user))

    @jwt.user_lookup_loader
    def load_user(_jwt_header, jwt_data):
        users = current_app.extensions["task_service"].users
        return users.resolve_user(jwt_data["sub"])


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if not current_user.is_admin:
            raise Forbidden("User role is not authorized to access this route")
        return fn(*args, **kwargs)

    return wrapper
