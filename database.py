"""
MongoDB access for the waste pickup service.

Collections are named after the lowercase schema class (user, pickup, vehicle,
localgovernment). References between documents are stored as ObjectIds and
rendered as strings on the way out.
"""
import os
import logging
from datetime import datetime
from typing import Any, Iterable, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "waste_management")

client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000, connect=False)
db = client[DATABASE_NAME]

USER_SUMMARY = {"firstName": 1, "lastName": 1, "email": 1}


def get_db() -> Database:
    return db


def ensure_indexes(database: Database) -> None:
    try:
        database["user"].create_index([("email", ASCENDING)], unique=True)
        database["vehicle"].create_index([("registrationNumber", ASCENDING)], unique=True)
        database["pickup"].create_index([("scheduledDate", -1)])
        database["pickup"].create_index([("localGovernment", ASCENDING), ("status", ASCENDING)])
        database["pickup"].create_index([("assignedDriver", ASCENDING)])
    except PyMongoError as e:
        logger.warning("could not ensure indexes: %s", e)


# Helpers

def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid id")


def optional_oid(id_str: Any) -> Optional[ObjectId]:
    if id_str in (None, ""):
        return None
    return oid(id_str)


def serialize(value: Any) -> Any:
    """Make a document JSON friendly: ObjectIds become strings, recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


def create_document(database: Database, collection_name: str, data: dict) -> ObjectId:
    doc = dict(data)
    now = datetime.utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    res = database[collection_name].insert_one(doc)
    return res.inserted_id


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort: Optional[list] = None, projection: Optional[dict] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    return list(cursor)


def populate(database: Database, docs: Iterable[dict], field: str, collection_name: str,
             projection: Optional[dict] = None) -> List[dict]:
    """Replace the reference stored in ``field`` with the referenced document.

    Missing references are left as ``None``. Lookups are batched into a single
    ``$in`` query per call.
    """
    docs = list(docs)
    ids = {d.get(field) for d in docs if isinstance(d.get(field), ObjectId)}
    if not ids:
        return docs
    found = {x["_id"]: x for x in database[collection_name].find({"_id": {"$in": list(ids)}}, projection)}
    for d in docs:
        ref = d.get(field)
        if isinstance(ref, ObjectId):
            d[field] = found.get(ref)
    return docs


def populate_pickups(database: Database, pickups: Iterable[dict]) -> List[dict]:
    pickups = populate(database, pickups, "user", "user", USER_SUMMARY)
    pickups = populate(database, pickups, "assignedDriver", "user", USER_SUMMARY)
    pickups = populate(database, pickups, "vehicle", "vehicle")
    vehicles = [p["vehicle"] for p in pickups if isinstance(p.get("vehicle"), dict)]
    populate(database, vehicles, "driver", "user", USER_SUMMARY)
    return pickups


def public_user(user: Optional[dict], *, hide: Iterable[str] = ()) -> Optional[dict]:
    if user is None:
        return None
    data = {k: v for k, v in user.items() if k != "password" and k not in hide}
    return serialize(data)
