from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional

from bson import ObjectId

STATUSES = ("pending", "in-progress", "completed")
PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class Attachment:
    # ``filename`` is the generated storage key; ``original_name`` is whatever
    # the client sent and is only ever used for display and Content-Disposition.
    filename: str
    original_name: str
    size: int
    mimetype: str
    uploaded_at: datetime = field(default_factory=datetime.utcnow)
    id: ObjectId = field(default_factory=ObjectId)

    @classmethod
    def from_doc(cls, doc):
        return cls(
            id=doc["_id"],
            filename=doc["filename"],
            original_name=doc["original_name"],
            size=doc["size"],
            mimetype=doc["mimetype"],
            uploaded_at=doc.get("uploaded_at") or datetime.utcnow(),
        )

    def to_doc(self):
        return {
            "_id": self.id,
            "filename": self.filename,
            "original_name": self.original_name,
            "size": self.size,
            "mimetype": self.mimetype,
            "uploaded_at": self.uploaded_at,
        }

    def to_dict(self):
        return {
            "_id": str(self.id),
            "filename": self.filename,
            "originalName": self.original_name,
            "size": self.size,
            "mimetype": self.mimetype,
            "uploadedAt": self.uploaded_at.isoformat(),
        }


@dataclass
class Task:
    title: str
    description: str
    due_date: datetime
    assigned_to: ObjectId
    created_by: ObjectId
    status: str = "pending"  # pending | in-progress | completed
    priority: str = "medium"  # low | medium | high
    documents: List[Attachment] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[ObjectId] = None

    @classmethod
    def from_doc(cls, doc):
        return cls(
            id=doc["_id"],
            title=doc["title"],
            description=doc["description"],
            status=doc.get("status", "pending"),
            priority=doc.get("priority", "medium"),
            due_date=doc["due_date"],
            assigned_to=doc["assigned_to"],
            created_by=doc["created_by"],
            documents=[Attachment.from_doc(d) for d in doc.get("documents", [])],
            created_at=doc.get("created_at") or datetime.utcnow(),
            updated_at=doc.get("updated_at") or datetime.utcnow(),
        )

    def to_doc(self):
        doc = {
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": self.due_date,
            "assigned_to": self.assigned_to,
            "created_by": self.created_by,
            "documents": [d.to_doc() for d in self.documents],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    def find_document(self, document_id) -> Optional[Attachment]:
        for doc in self.documents:
            if str(doc.id) == str(document_id):
                return doc
        return None

    def copy(self):
        return replace(self, documents=list(self.documents))

    def to_dict(self, users=None):
        """API representation; ``users`` maps user ids to ``{_id, name, email}``."""
        users = users or {}
        return {
            "_id": str(self.id) if self.id is not None else None,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "dueDate": self.due_date.isoformat(),
            "assignedTo": users.get(self.assigned_to) or str(self.assigned_to),
            "createdBy": users.get(self.created_by) or str(self.created_by),
            "documents": [d.to_dict() for d in self.documents],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
