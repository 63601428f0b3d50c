from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from bson import ObjectId

ROLES = ("user", "admin")


@dataclass
class User:
    name: str
    email: str
    password_hash: str = field(repr=False)
    role: str = "user"  # user | admin
    created_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[ObjectId] = None

    @property
    def is_admin(self):
        return self.role == "admin"

    @classmethod
    def from_doc(cls, doc):
        return cls(
            id=doc["_id"],
            name=doc["name"],
            email=doc["email"],
            password_hash=doc.get("password", ""),
            role=doc.get("role", "user"),
            created_at=doc.get("created_at") or datetime.utcnow(),
        )

    def to_doc(self):
        doc = {
            "name": self.name,
            "email": self.email,
            "password": self.password_hash,
            "role": self.role,
            "created_at": self.created_at,
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    def to_dict(self):
        # The password hash never leaves the server.
        return {
            "_id": str(self.id),
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "createdAt": self.created_at.isoformat(),
        }
