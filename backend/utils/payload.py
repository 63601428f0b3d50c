from flask import request

from backend.utils.errors import ValidationError


def json_payload():
    """The request's JSON object, or an empty dict when there is no body."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def text_field(payload, key, *, strip=True):
    """Read ``key`` as text; missing or null gives "", anything but a string is a 400."""
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() if strip else value
