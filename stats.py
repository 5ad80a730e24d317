from datetime import datetime
from typing import Any, Dict

from pymongo.database import Database

from access import admin_local_government
from database import populate, populate_pickups, USER_SUMMARY

ADMIN_PENDING = ["requested", "scheduled", "assigned"]
DRIVER_PENDING = ["assigned", "in_progress"]
USER_PENDING = ["requested", "scheduled", "assigned", "in_progress"]


def total_waste(db: Database, match: Dict[str, Any]) -> float:
    waste = list(db["pickup"].aggregate([
        {"$match": {**match, "status": "completed", "actualWeight": {"$gt": 0}}},
        {"$group": {"_id": None, "total": {"$sum": "$actualWeight"}}},
    ]))
    return waste[0]["total"] if waste else 0


def pickups_by_month(db: Database, match: Dict[str, Any], year: int):
    rows = db["pickup"].aggregate([
        {"$match": {**match, "scheduledDate": {"$gte": datetime(year, 1, 1), "$lt": datetime(year + 1, 1, 1)}}},
        {"$group": {"_id": {"$month": "$scheduledDate"}, "count": {"$sum": 1}}},
    ])
    counts = {r["_id"]: r["count"] for r in rows}
    return [{"month": m, "count": counts.get(m, 0)} for m in range(1, 13)]


def admin_stats(db: Database, user: dict, local_government=None) -> Dict[str, Any]:
    lg = admin_local_government(user, local_government)
    scope = {"localGovernment": lg}
    pickups = db["pickup"]
    by_status = pickups.aggregate([
        {"$match": scope},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ])
    recent = list(pickups.find(scope).sort("scheduledDate", -1).limit(5))
    return {
        "pickupCount": pickups.count_documents(scope),
        "completedPickups": pickups.count_documents({**scope, "status": "completed"}),
        "pendingPickups": pickups.count_documents({**scope, "status": {"$in": ADMIN_PENDING}}),
        "vehicleCount": db["vehicle"].count_documents(scope),
        "userCount": db["user"].count_documents({**scope, "role": "user"}),
        "driverCount": db["user"].count_documents({**scope, "role": "driver"}),
        "totalWaste": total_waste(db, scope),
        "pickupStats": {x["_id"]: x["count"] for x in by_status},
        "pickupsByMonth": pickups_by_month(db, scope, datetime.utcnow().year),
        "recentPickups": populate_pickups(db, recent),
    }


def driver_stats(db: Database, user: dict) -> Dict[str, Any]:
    scope = {"assignedDriver": user["_id"]}
    pickups = db["pickup"]
    vehicle = db["vehicle"].find_one({"driver": user["_id"]})
    upcoming = list(pickups.find({
        **scope,
        "status": {"$in": DRIVER_PENDING},
        "scheduledDate": {"$gte": datetime.utcnow()},
    }).sort("scheduledDate", 1).limit(5))
    return {
        "vehicleInfo": {
            "_id": vehicle["_id"],
            "registrationNumber": vehicle.get("registrationNumber"),
            "type": vehicle.get("type"),
            "status": vehicle.get("status"),
        } if vehicle else None,
        "assignedPickups": pickups.count_documents(scope),
        "completedPickups": pickups.count_documents({**scope, "status": "completed"}),
        "pendingPickups": pickups.count_documents({**scope, "status": {"$in": DRIVER_PENDING}}),
        "totalWaste": total_waste(db, scope),
        "upcomingPickups": populate(db, upcoming, "user", "user", USER_SUMMARY),
    }


def user_stats(db: Database, user: dict) -> Dict[str, Any]:
    scope = {"user": user["_id"]}
    pickups = db["pickup"]
    next_pickup = pickups.find_one(
        {**scope, "status": {"$in": ADMIN_PENDING}, "scheduledDate": {"$gte": datetime.utcnow()}},
        sort=[("scheduledDate", 1)],
    )
    recent = list(pickups.find(scope).sort("scheduledDate", -1).limit(5))
    return {
        "userPickups": pickups.count_documents(scope),
        "completedPickups": pickups.count_documents({**scope, "status": "completed"}),
        "pendingPickups": pickups.count_documents({**scope, "status": {"$in": USER_PENDING}}),
        "totalWaste": total_waste(db, scope),
        "nextPickup": populate_pickups(db, [next_pickup])[0] if next_pickup else None,
        "recentPickups": populate_pickups(db, recent),
    }


def dashboard_stats(db: Database, user: dict, local_government=None) -> Dict[str, Any]:
    role = user.get("role")
    if role == "admin":
        return admin_stats(db, user, local_government)
    if role == "driver":
        return driver_stats(db, user)
    return user_stats(db, user)
