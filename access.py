"""
Authorization for the REST routes.

Every route goes through ``authorize`` (or the ``require_roles`` dependency)
instead of repeating its own role and ownership checks. Pickup lifecycle rules
live here too: one transition table plus the fields each role may write.
"""
from typing import Any, Dict, Iterable, Optional, Set

from bson import ObjectId
from fastapi import Depends, HTTPException

from auth import get_current_user

TRANSITIONS: Dict[str, Set[str]] = {
    "requested": {"scheduled", "assigned", "cancelled"},
    "scheduled": {"assigned", "cancelled"},
    "assigned": {"requested", "in_progress", "completed", "cancelled"},
    "in_progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}
TERMINAL = {"completed", "cancelled"}

ROLE_TARGETS: Dict[str, Set[str]] = {
    "user": {"cancelled"},
    "driver": {"in_progress", "completed"},
    "admin": set(TRANSITIONS),
}
# users may only cancel before a vehicle or driver is attached
USER_CANCELLABLE = {"requested", "scheduled"}

PICKUP_FIELDS: Dict[str, Set[str]] = {
    "user": {"status", "notes", "feedback"},
    "driver": {"status", "notes", "actualWeight"},
    "admin": {
        "status", "notes", "actualWeight", "vehicle", "assignedDriver", "pickupType",
        "wasteDescription", "estimatedWeight", "location", "scheduledDate", "preferredTimeSlot",
    },
}


def same_id(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def authorize(user: dict, *, roles: Optional[Iterable[str]] = None, owner_id: Any = None,
              local_government: Any = None, message: str = "Forbidden") -> dict:
    """Capability check for ``user``.

    ``roles`` restricts who may act at all. When ``owner_id`` or
    ``local_government`` is given the caller must also own the resource, or be
    an admin of the resource's local government.
    """
    role = user.get("role")
    if roles is not None and role not in set(roles):
        raise HTTPException(status_code=403, detail=message)
    if owner_id is None and local_government is None:
        return user
    if owner_id is not None and same_id(owner_id, user.get("_id")):
        return user
    if role == "admin" and local_government is not None and same_id(local_government, user.get("localGovernment")):
        return user
    raise HTTPException(status_code=403, detail=message)


def require_roles(*roles: str):
    def dependency(user: dict = Depends(get_current_user)) -> dict:
        return authorize(user, roles=roles, message="Unauthorized - %s access required" % "/".join(r.capitalize() for r in roles))
    return dependency


require_admin = require_roles("admin")


def admin_local_government(user: dict, requested: Optional[str] = None) -> ObjectId:
    lg = user.get("localGovernment")
    if not lg:
        raise HTTPException(status_code=400, detail="Admin not assigned to a local government")
    if requested and not same_id(requested, lg):
        raise HTTPException(status_code=403, detail="Unauthorized for this local government")
    return lg


def pickup_scope(user: dict, local_government: Optional[str] = None) -> Dict[str, Any]:
    """Base filter on the pickup collection for what ``user`` may see."""
    role = user.get("role")
    if role == "admin":
        return {"localGovernment": admin_local_government(user, local_government)}
    if role == "driver":
        return {"assignedDriver": user["_id"]}
    return {"user": user["_id"]}


def authorize_pickup(user: dict, pickup: dict) -> dict:
    role = user.get("role")
    if role == "driver":
        if not same_id(pickup.get("assignedDriver"), user["_id"]):
            raise HTTPException(status_code=403, detail="Unauthorized - Not assigned to you")
        return user
    if role == "admin":
        return authorize(user, local_government=pickup.get("localGovernment"),
                         message="Unauthorized - Pickup belongs to another local government")
    return authorize(user, owner_id=pickup.get("user"), message="Unauthorized - Not your pickup")


def check_transition(role: str, current: str, target: str) -> bool:
    """Validate a status change; False means ``target`` is already the status."""
    if target == current:
        return False
    if target not in TRANSITIONS.get(current, set()):
        raise HTTPException(status_code=400, detail=f"Cannot change status from {current} to {target}")
    if target not in ROLE_TARGETS.get(role, set()):
        raise HTTPException(status_code=403, detail=f"Unauthorized - {role} cannot set status {target}")
    if role == "user" and current not in USER_CANCELLABLE:
        raise HTTPException(status_code=403, detail="Pickup can no longer be cancelled")
    return True


def allowed_pickup_fields(role: str, data: Dict[str, Any]) -> Dict[str, Any]:
    fields = PICKUP_FIELDS.get(role, set())
    return {k: v for k, v in data.items() if k in fields}
