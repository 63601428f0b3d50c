import math
from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, jsonify, request, send_file, url_for
from flask_jwt_extended import current_user, verify_jwt_in_request

from backend.services.attachment_validator import collect_uploads
from backend.services.task_service import parse_due_date
from backend.utils.errors import BlobNotFound, PreviewTokenExpired, PreviewTokenNotFound
from backend.utils.payload import json_payload

tasks_bp = Blueprint("tasks", __name__)

# Every task route needs a bearer token except the tokenised preview.
PUBLIC_ENDPOINTS = {"tasks.public_document"}


def _service():
    return current_app.extensions["task_service"]


def _registry():
    return current_app.extensions["preview_tokens"]


def _blobs():
    return current_app.extensions["blob_store"]


@tasks_bp.before_request
def require_auth():
    if request.method == "OPTIONS" or request.endpoint in PUBLIC_ENDPOINTS:
        return None
    verify_jwt_in_request()
    return None


def _int_arg(name, default):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _request_fields():
    if request.is_json:
        return json_payload()
    return request.form.to_dict()


def _retained_ids():
    """Normalise ``existingDocuments`` into a set of ids, or None when absent."""
    if request.is_json:
        payload = json_payload()
        if "existingDocuments" not in payload:
            return None
        value = payload["existingDocuments"]
        values = value if isinstance(value, list) else [value]
    else:
        keys = [k for k in ("existingDocuments", "existingDocuments[]") if k in request.form]
        if not keys:
            return None
        values = [v for k in keys for v in request.form.getlist(k)]
    return {str(v).strip() for v in values if v is not None and str(v).strip()}


def _send_attachment(attachment, *, as_attachment, mimetype=None):
    return send_file(
        _blobs().path(attachment.filename),
        mimetype=mimetype or attachment.mimetype,
        as_attachment=as_attachment,
        download_name=attachment.original_name or attachment.filename,
        max_age=0,
    )


@tasks_bp.get("/", strict_slashes=False)
def list_tasks():
    page = _int_arg("page", 1)
    limit = min(_int_arg("limit", current_app.config["DEFAULT_PAGE_SIZE"]), current_app.config["MAX_PAGE_SIZE"])
    due_raw = request.args.get("dueDate")

    tasks, total = _service().list_tasks(
        current_user,
        status=request.args.get("status") or None,
        priority=request.args.get("priority") or None,
        due_date=parse_due_date(due_raw) if due_raw else None,
        assigned_to=request.args.get("assignedTo") or None,
        page=page,
        limit=limit,
    )
    return jsonify(
        success=True,
        count=len(tasks),
        totalPages=math.ceil(total / limit),
        currentPage=page,
        tasks=_service().serialize(tasks),
    ), 200


@tasks_bp.get("/<task_id>")
def get_task(task_id):
    task = _service().get_task_for(current_user, task_id)
    return jsonify(success=True, data=_service().serialize([task])[0]), 200


@tasks_bp.post("/", strict_slashes=False)
def create_task():
    task = _service().create_task(current_user, _request_fields(), collect_uploads(request.files))
    return jsonify(success=True, data=_service().serialize([task])[0]), 201


@tasks_bp.put("/<task_id>")
def update_task(task_id):
    task = _service().update_task(
        current_user,
        task_id,
        _request_fields(),
        collect_uploads(request.files),
        retained_ids=_retained_ids(),
    )
    return jsonify(success=True, data=_service().serialize([task])[0]), 200


@tasks_bp.delete("/<task_id>")
def delete_task(task_id):
    _service().delete_task(current_user, task_id)
    return jsonify(success=True, data={}), 200


@tasks_bp.get("/<task_id>/documents/<document_id>")
def download_document(task_id, document_id):
    _, attachment = _service().get_attachment_for(current_user, task_id, document_id)
    return _send_attachment(attachment, as_attachment=True)


@tasks_bp.get("/<task_id>/preview/<document_id>")
def preview_document(task_id, document_id):
    _, attachment = _service().get_attachment_for(current_user, task_id, document_id)
    return _send_attachment(attachment, as_attachment=False)


@tasks_bp.get("/<task_id>/create-preview-token/<document_id>")
def create_preview_token(task_id, document_id):
    task, attachment = _service().get_attachment_for(current_user, task_id, document_id)
    if not _blobs().exists(attachment.filename):
        raise BlobNotFound()

    registry = _registry()
    token = registry.issue(task.id, attachment)
    grant = registry.get(token)
    return jsonify(
        success=True,
        previewUrl=url_for("tasks.public_document", token=token),
        expiresAt=datetime.fromtimestamp(grant.expires_at, tz=timezone.utc).isoformat(),
    ), 200


@tasks_bp.get("/public-doc/<token>")
def public_document(token):
    # Serves from the snapshot taken at issue time; the task is not re-read.
    try:
        grant = _registry().resolve(token)
        return _send_attachment(grant.attachment, as_attachment=False)
    except (PreviewTokenExpired, PreviewTokenNotFound, BlobNotFound) as exc:
        return Response(exc.message, status=exc.status_code, mimetype="text/plain")
