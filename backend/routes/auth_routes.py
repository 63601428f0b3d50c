import logging

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import create_access_token, current_user, jwt_required

from backend.models.user_model import User
from backend.utils.auth import MIN_PASSWORD_LENGTH, hash_password, verify_password
from backend.utils.errors import Conflict, Unauthorized, ValidationError
from backend.utils.payload import json_payload, text_field

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _users():
    return current_app.extensions["task_service"].users


def _auth_response(user, status):
    token = create_access_token(identity=user)
    return jsonify(success=True, token=token, user=user.to_dict()), status


@auth_bp.post("/register")
def register():
    payload = json_payload()
    name = text_field(payload, "name")
    email = text_field(payload, "email").lower()
    password = text_field(payload, "password", strip=False)

    if not name or not email or not password:
        raise ValidationError("Please provide name, email and password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if _users().find_by_email(email):
        raise Conflict("User already exists")

    # Self-registration never grants admin.
    user = _users().insert(User(name=name, email=email, password_hash=hash_password(password)))
    logger.info("Registered user %s", user.id)
    return _auth_response(user, 201)


@auth_bp.post("/login")
def login():
    payload = json_payload()
    email = text_field(payload, "email").lower()
    password = text_field(payload, "password", strip=False)
    if not email or not password:
        raise ValidationError("Please provide an email and password")

    user = _users().find_by_email(email)
    if user is None or not verify_password(user.password_hash, password):
        raise Unauthorized("Invalid credentials")
    return _auth_response(user, 200)


@auth_bp.get("/me")
@jwt_required()
def me():
    return jsonify(success=True, data=current_user.to_dict()), 200
