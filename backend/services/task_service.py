"""
Task lifecycle: create, update and delete flows that touch both the task
collection and the blob store.

Ordering rules the flows stick to:

* every validation and permission check runs before anything is written;
* new blobs are written before the task record, and the record is saved
  last, so a crash can leave orphan files but never a record pointing at a
  file that was not written;
* blobs that an edit or delete drops are removed before the record goes away
  on delete, and after the record is saved on update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from backend.models.task_model import PRIORITIES, STATUSES, Attachment, Task
from backend.models.user_model import User
from backend.services.attachment_validator import (
    DEFAULT_MAX_BYTES,
    DEFAULT_MAX_COUNT,
    PDF_MIMETYPE,
    UploadCandidate,
    validate_uploads,
)
from backend.services.blob_store import BlobStore, safe_extension
from backend.services.task_store import TaskStore, UserStore, can_access, can_delete, can_update
from backend.utils.errors import AssigneeNotFound, Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentLimits:
    max_bytes: int = DEFAULT_MAX_BYTES
    max_count: int = DEFAULT_MAX_COUNT
    allowed_types: tuple = (PDF_MIMETYPE,)


def parse_due_date(raw) -> datetime:
    """Parse an ISO date or datetime into a naive UTC datetime."""
    if isinstance(raw, datetime):
        value = raw
    else:
        text = str(raw).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError("Invalid dueDate format") from None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value


class TaskService:
    def __init__(self, tasks: TaskStore, users: UserStore, blobs: BlobStore, limits: AttachmentLimits = None):
        self.tasks = tasks
        self.users = users
        self.blobs = blobs
        self.limits = limits or AttachmentLimits()

    # --- reads -----------------------------------------------------------

    def list_tasks(self, user: User, **filters):
        return self.tasks.list(user, **filters)

    def get_task_for(self, user: User, task_id) -> Task:
        task = self.tasks.get(task_id)
        if not can_access(user, task):
            raise Forbidden("Not authorized to access this task")
        return task

    def get_attachment_for(self, user: User, task_id, attachment_id):
        task = self.get_task_for(user, task_id)
        attachment = task.find_document(attachment_id)
        if attachment is None:
            raise NotFound("Document not found")
        return task, attachment

    def serialize(self, tasks: Iterable[Task]) -> List[dict]:
        tasks = list(tasks)
        users = self.users.summaries(
            [t.assigned_to for t in tasks] + [t.created_by for t in tasks]
        )
        return [t.to_dict(users) for t in tasks]

    # --- writes ----------------------------------------------------------

    def create_task(self, user: User, fields: dict, uploads: List[UploadCandidate]) -> Task:
        title = _clean(fields.get("title"))
        description = _clean(fields.get("description"))
        raw_due = _clean(fields.get("dueDate"))
        assignee_id = _clean(fields.get("assignedTo"))

        if not title:
            raise ValidationError("Please provide a title")
        if not description:
            raise ValidationError("Please provide a description")
        if not raw_due:
            raise ValidationError("Please provide a due date")
        if not assignee_id:
            raise ValidationError("Please assign this task to a user")

        status = _choice(_clean(fields.get("status")) or "pending", STATUSES, "status")
        priority = _choice(_clean(fields.get("priority")) or "medium", PRIORITIES, "priority")
        due_date = parse_due_date(raw_due)

        assignee = self.users.resolve_user(assignee_id)
        if assignee is None:
            raise AssigneeNotFound()

        self._validate(uploads, retained_count=0)

        task = Task(
            title=title,
            description=description,
            status=status,
            priority=priority,
            due_date=due_date,
            assigned_to=assignee.id,
            created_by=user.id,
        )
        new_docs = self._store_all(uploads)
        task.documents = list(new_docs)
        try:
            self.tasks.insert(task)
        except Exception:
            self._discard(new_docs)
            raise

        logger.info("User %s created task %s with %d document(s)", user.id, task.id, len(new_docs))
        return task

    def update_task(
        self,
        user: User,
        task_id,
        fields: dict,
        uploads: List[UploadCandidate],
        retained_ids: Optional[Set[str]] = None,
    ) -> Task:
        """Apply a partial update.

        ``retained_ids`` is None when the request did not mention existing
        documents at all (keep everything); an empty set drops them all.
        """
        task = self.tasks.get(task_id)
        if not can_update(user, task):
            raise Forbidden("Not authorized to update this task")

        updated = task.copy()

        assignee_id = _clean(fields.get("assignedTo"))
        if assignee_id:
            assignee = self.users.resolve_user(assignee_id)
            if assignee is None:
                raise AssigneeNotFound()
            updated.assigned_to = assignee.id

        title = _clean(fields.get("title"))
        if title:
            updated.title = title
        description = _clean(fields.get("description"))
        if description:
            updated.description = description
        status = _clean(fields.get("status"))
        if status:
            updated.status = _choice(status, STATUSES, "status")
        priority = _clean(fields.get("priority"))
        if priority:
            updated.priority = _choice(priority, PRIORITIES, "priority")
        raw_due = _clean(fields.get("dueDate"))
        if raw_due:
            updated.due_date = parse_due_date(raw_due)

        if retained_ids is None:
            kept = list(task.documents)
        else:
            kept = [d for d in task.documents if str(d.id) in retained_ids]
        kept_ids = {d.id for d in kept}
        dropped = [d for d in task.documents if d.id not in kept_ids]

        self._validate(uploads, retained_count=len(kept))

        new_docs = self._store_all(uploads)
        updated.documents = kept + new_docs
        try:
            self.tasks.save(updated)
        except Exception:
            self._discard(new_docs)
            raise

        self._discard(dropped)
        logger.info(
            "User %s updated task %s (+%d/-%d documents)", user.id, task.id, len(new_docs), len(dropped)
        )
        return updated

    def delete_task(self, user: User, task_id):
        task = self.tasks.get(task_id)
        if not can_delete(user, task):
            raise Forbidden("Not authorized to delete this task")

        self._discard(task.documents)
        self.tasks.delete(task.id)
        logger.info("User %s deleted task %s", user.id, task.id)

    # --- helpers ---------------------------------------------------------

    def _validate(self, uploads, retained_count):
        validate_uploads(
            uploads,
            retained_count,
            max_bytes=self.limits.max_bytes,
            max_count=self.limits.max_count,
            allowed_types=self.limits.allowed_types,
        )

    def _store_all(self, uploads: List[UploadCandidate]) -> List[Attachment]:
        stored = []
        try:
            for upload in uploads:
                key = self.blobs.store(upload.stream, safe_extension(upload.original_name))
                stored.append(
                    Attachment(
                        filename=key,
                        original_name=upload.original_name,
                        size=upload.size,
                        mimetype=upload.mimetype,
                    )
                )
        except Exception:
            self._discard(stored)
            raise
        return stored

    def _discard(self, attachments: Iterable[Attachment]):
        for attachment in attachments:
            if not self.blobs.delete(attachment.filename):
                logger.warning("Blob %s was already missing", attachment.filename)
