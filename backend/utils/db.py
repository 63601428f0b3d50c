import logging

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient

logger = logging.getLogger(__name__)


def init_app(app, client=None):
    """Attach a Mongo client to the app and make sure the indexes exist.

    ``client`` lets callers (tests, scripts) hand in an already-built client;
    otherwise one is created from ``MONGO_URI``.
    """
    if client is None:
        client = MongoClient(app.config["MONGO_URI"], serverSelectionTimeoutMS=2000)
    app.extensions["mongo_client"] = client
    db = client[app.config["MONGO_DB_NAME"]]
    app.extensions["mongo_db"] = db

    try:
        db.users.create_index([("email", ASCENDING)], unique=True)
        db.tasks.create_index([("assigned_to", ASCENDING), ("created_at", DESCENDING)])
        db.tasks.create_index([("created_by", ASCENDING), ("created_at", DESCENDING)])
    except Exception as exc:  # noqa: BLE001
        # The API still starts so /api/health can report the outage.
        logger.warning("Could not ensure MongoDB indexes: %s", exc)

    return db


def to_object_id(value):
    """Return an ObjectId for ``value`` or None if it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None
