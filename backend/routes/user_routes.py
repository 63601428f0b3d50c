import math

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import current_user, jwt_required

from backend.models.user_model import ROLES, User
from backend.utils.auth import MIN_PASSWORD_LENGTH, admin_required, hash_password, verify_password
from backend.utils.errors import Conflict, NotFound, Unauthorized, ValidationError
from backend.utils.payload import json_payload, text_field

users_bp = Blueprint("users", __name__)


def _users():
    return current_app.extensions["task_service"].users


def _tasks():
    return current_app.extensions["task_service"].tasks


def _check_role(role):
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return role


def _check_password(password):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


@users_bp.put("/profile")
@jwt_required()
def update_profile():
    payload = json_payload()
    updates = {}
    name = text_field(payload, "name")
    if name:
        updates["name"] = name
    email = text_field(payload, "email").lower()
    if email:
        updates["email"] = email

    current_password = text_field(payload, "currentPassword", strip=False)
    new_password = text_field(payload, "newPassword", strip=False)
    if current_password and new_password:
        if not verify_password(current_user.password_hash, current_password):
            raise Unauthorized("Current password is incorrect")
        updates["password"] = hash_password(_check_password(new_password))

    if not updates:
        return jsonify(success=True, data=current_user.to_dict()), 200
    user = _users().update(current_user.id, updates)
    return jsonify(success=True, data=user.to_dict()), 200


@users_bp.get("/", strict_slashes=False)
@admin_required
def list_users():
    try:
        page = max(int(request.args.get("page", 1)), 1)
        limit = max(int(request.args.get("limit", current_app.config["DEFAULT_PAGE_SIZE"])), 1)
    except ValueError:
        raise ValidationError("page and limit must be integers") from None
    limit = min(limit, current_app.config["MAX_PAGE_SIZE"])

    users, total = _users().list(page=page, limit=limit)
    return jsonify(
        success=True,
        count=len(users),
        totalPages=math.ceil(total / limit),
        currentPage=page,
        users=[u.to_dict() for u in users],
    ), 200


@users_bp.get("/<user_id>")
@admin_required
def get_user(user_id):
    return jsonify(success=True, data=_users().get(user_id).to_dict()), 200


@users_bp.post("/", strict_slashes=False)
@admin_required
def create_user():
    payload = json_payload()
    name = text_field(payload, "name")
    email = text_field(payload, "email").lower()
    password = text_field(payload, "password", strip=False)
    if not name or not email or not password:
        raise ValidationError("Please provide name, email and password")

    if _users().find_by_email(email):
        raise Conflict("User already exists")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(_check_password(password)),
        role=_check_role(text_field(payload, "role") or "user"),
    )
    _users().insert(user)
    return jsonify(success=True, data=user.to_dict()), 201


@users_bp.put("/<user_id>")
@admin_required
def update_user(user_id):
    payload = json_payload()
    updates = {}
    name = text_field(payload, "name")
    if name:
        updates["name"] = name
    email = text_field(payload, "email").lower()
    if email:
        updates["email"] = email
    role = text_field(payload, "role")
    if role:
        updates["role"] = _check_role(role)
    password = text_field(payload, "password", strip=False)
    if password:
        updates["password"] = hash_password(_check_password(password))

    if not updates:
        return jsonify(success=True, data=_users().get(user_id).to_dict()), 200
    user = _users().update(user_id, updates)
    return jsonify(success=True, data=user.to_dict()), 200


@users_bp.delete("/<user_id>")
@admin_required
def delete_user(user_id):
    user = _users().resolve_user(user_id)
    if user is None:
        raise NotFound("User not found")

    if _tasks().count_assigned_to(user.id) > 0:
        raise Conflict("Cannot delete user with assigned tasks. Reassign tasks first.")

    _users().delete(user.id)
    return jsonify(success=True, data={}), 200
