"""
Vehicle assignment for new pickups.

Distances are great-circle (Haversine) distances in kilometres. Claiming a
vehicle is a single compare-and-swap on its status, so two pickups created at
the same time can never both end up holding the same vehicle.
"""
import math
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: dict, b: dict) -> float:
    lat1, lng1 = math.radians(a["lat"]), math.radians(a["lng"])
    lat2, lng2 = math.radians(b["lat"]), math.radians(b["lng"])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def _has_location(vehicle: dict) -> bool:
    loc = vehicle.get("currentLocation")
    return isinstance(loc, dict) and loc.get("lat") is not None and loc.get("lng") is not None


def nearest_vehicle(coords: dict, vehicles: Iterable[dict]) -> Optional[dict]:
    """Closest vehicle to ``coords``; on equal distance the first one seen wins."""
    best = None
    best_distance = math.inf
    for v in vehicles:
        if not _has_location(v):
            continue
        d = haversine_km(coords, v["currentLocation"])
        if d < best_distance:
            best, best_distance = v, d
    return best


def rank_vehicles(coords: dict, vehicles: Iterable[dict]) -> List[dict]:
    located = [v for v in vehicles if _has_location(v)]
    # sorted() is stable, so ties keep iteration order like nearest_vehicle
    return sorted(located, key=lambda v: haversine_km(coords, v["currentLocation"]))


def claim_vehicle(db: Database, vehicle_id: ObjectId) -> Optional[dict]:
    claimed = db["vehicle"].find_one_and_update(
        {"_id": vehicle_id, "status": "available"},
        {"$set": {"status": "on_duty", "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if claimed:
        logger.info("vehicle %s claimed", vehicle_id)
    return claimed


def release_vehicle(db: Database, vehicle_id: Optional[ObjectId]) -> bool:
    if vehicle_id is None:
        return False
    res = db["vehicle"].update_one(
        {"_id": vehicle_id, "status": "on_duty"},
        {"$set": {"status": "available", "updated_at": datetime.utcnow()}},
    )
    if res.modified_count:
        logger.info("vehicle %s released", vehicle_id)
    return res.modified_count == 1


def claim_nearest_vehicle(db: Database, coords: dict, local_government: Optional[ObjectId]) -> Optional[dict]:
    query = {"status": "available", "currentLocation": {"$ne": None}}
    if local_government is not None:
        query["localGovernment"] = local_government
    candidates = list(db["vehicle"].find(query).sort("_id", 1))
    for v in rank_vehicles(coords, candidates):
        claimed = claim_vehicle(db, v["_id"])
        if claimed:
            return claimed
        logger.warning("vehicle %s taken by a concurrent request, trying next", v["_id"])
    return None


def covering_local_government(db: Database, coords: dict) -> Optional[dict]:
    """Nearest active local government whose coverage radius contains ``coords``."""
    best = None
    best_distance = math.inf
    for lg in db["localgovernment"].find({"status": {"$ne": "inactive"}}).sort("_id", 1):
        center = lg.get("coordinates")
        if not center:
            continue
        d = haversine_km(coords, center)
        if d <= float(lg.get("coverageArea") or 10) and d < best_distance:
            best, best_distance = lg, d
    return best
