import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from backend.models.task_model import Task
from backend.models.user_model import User
from backend.utils.db import to_object_id
from backend.utils.errors import Conflict, NotFound

logger = logging.getLogger(__name__)


def can_access(user: User, task: Task) -> bool:
    """Admins, the assignee and the creator may read a task and its attachments."""
    return user.is_admin or user.id == task.assigned_to or user.id == task.created_by


def can_update(user: User, task: Task) -> bool:
    return can_access(user, task)


def can_delete(user: User, task: Task) -> bool:
    return user.is_admin or user.id == task.created_by


class UserStore:
    def __init__(self, db):
        self.collection = db.users

    def resolve_user(self, user_id) -> Optional[User]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = self.collection.find_one({"_id": oid})
        return User.from_doc(doc) if doc else None

    def get(self, user_id) -> User:
        user = self.resolve_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def find_by_email(self, email) -> Optional[User]:
        doc = self.collection.find_one({"email": (email or "").strip().lower()})
        return User.from_doc(doc) if doc else None

    def list(self, *, page=1, limit=10) -> Tuple[List[User], int]:
        total = self.collection.count_documents({})
        cursor = self.collection.find({}).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
        return [User.from_doc(d) for d in cursor], total

    def insert(self, user: User) -> User:
        doc = user.to_doc()
        doc.pop("_id", None)
        try:
            res = self.collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise Conflict("User already exists") from exc
        user.id = res.inserted_id
        return user

    def update(self, user_id, fields) -> User:
        oid = to_object_id(user_id)
        if oid is None:
            raise NotFound("User not found")
        try:
            doc = self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise Conflict("Email is already in use") from exc
        if not doc:
            raise NotFound("User not found")
        return User.from_doc(doc)

    def delete(self, user_id):
        self.collection.delete_one({"_id": to_object_id(user_id)})

    def summaries(self, user_ids) -> Dict:
        ids = list({i for i in user_ids if i is not None})
        if not ids:
            return {}
        return {
            doc["_id"]: {"_id": str(doc["_id"]), "name": doc["name"], "email": doc["email"]}
            for doc in self.collection.find({"_id": {"$in": ids}}, {"name": 1, "email": 1})
        }


class TaskStore:
    def __init__(self, db):
        self.collection = db.tasks

    def get(self, task_id) -> Task:
        oid = to_object_id(task_id)
        doc = self.collection.find_one({"_id": oid}) if oid is not None else None
        if not doc:
            raise NotFound("Task not found")
        return Task.from_doc(doc)

    def list(
        self,
        user: User,
        *,
        status=None,
        priority=None,
        due_date: Optional[datetime] = None,
        assigned_to=None,
        page=1,
        limit=10,
    ) -> Tuple[List[Task], int]:
        query = {}
        if status:
            query["status"] = status
        if priority:
            query["priority"] = priority
        if due_date is not None:
            day = due_date.replace(hour=0, minute=0, second=0, microsecond=0)
            query["due_date"] = {"$gte": day, "$lt": day + timedelta(days=1)}
        if assigned_to:
            query["assigned_to"] = to_object_id(assigned_to)
        if not user.is_admin:
            query["$or"] = [{"assigned_to": user.id}, {"created_by": user.id}]

        total = self.collection.count_documents(query)
        cursor = (
            self.collection.find(query)
            .sort("created_at", DESCENDING)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        return [Task.from_doc(d) for d in cursor], total

    def insert(self, task: Task) -> Task:
        doc = task.to_doc()
        doc.pop("_id", None)
        res = self.collection.insert_one(doc)
        task.id = res.inserted_id
        return task

    def save(self, task: Task) -> Task:
        # Whole-document replace; concurrent edits are last-write-wins.
        task.updated_at = datetime.utcnow()
        res = self.collection.replace_one({"_id": task.id}, task.to_doc())
        if res.matched_count == 0:
            raise NotFound("Task not found")
        return task

    def delete(self, task_id) -> bool:
        res = self.collection.delete_one({"_id": to_object_id(task_id)})
        return res.deleted_count > 0

    def count_assigned_to(self, user_id) -> int:
        return self.collection.count_documents({"assigned_to": to_object_id(user_id)})
