import os
import logging
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from access import (
    admin_local_government, allowed_pickup_fields, authorize, authorize_pickup, check_transition,
    pickup_scope, require_admin, require_roles, same_id, TERMINAL,
)
from assignment import claim_nearest_vehicle, claim_vehicle, covering_local_government, release_vehicle
from auth import (
    authenticate, clear_session_cookie, create_session_token, get_current_user, get_password_hash,
    get_session, session_claims, set_session_cookie, verify_password,
)
from database import (
    db, ensure_indexes, get_db, oid, optional_oid, create_document, get_documents, populate,
    populate_pickups, public_user, serialize, USER_SUMMARY,
)
from schemas import (
    AdminUserCreate, AdminUserUpdate, LocalGovernment as LocalGovernmentSchema,
    LocalGovernmentUpdate, LoginRequest, naive_utc, OnboardingRequest, PasswordChange,
    Pickup as PickupSchema, PickupStatus, PickupUpdate, ProfileUpdate, SignupRequest,
    Vehicle as VehicleSchema, VehicleStatus, VehicleUpdate,
)
from stats import dashboard_stats

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("waste_pickup")

# FastAPI app
app = FastAPI(title="Waste Pickup API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    ensure_indexes(db)


# Error envelope
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"success": False, "message": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse({"success": False, "message": "Validation failed", "errors": errors}, status_code=400)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse({"success": False, "message": "Duplicate value for a unique field"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"success": False, "message": "Internal server error"}, status_code=500)


def ok(data=None, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = serialize(data)
    body.update(serialize(extra))
    return body


def find_or_404(db: Database, collection: str, _id: str, label: str) -> dict:
    doc = db[collection].find_one({"_id": oid(_id)})
    if not doc:
        raise HTTPException(404, f"{label} not found")
    return doc


# Root
@app.get("/")
def read_root():
    return {"message": "Waste Pickup Backend Running"}


# Auth routes
@app.post("/api/auth/signup", status_code=201)
def signup(payload: SignupRequest, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already in use")
    uid = create_document(db, "user", {
        "firstName": payload.firstName.strip(),
        "lastName": payload.lastName.strip(),
        "email": email,
        "password": get_password_hash(payload.password),
        "role": "user",
        "onboardingCompleted": False,
    })
    logger.info("user %s signed up", uid)
    return {
        "success": True,
        "message": "User registered successfully",
        "user": {"id": str(uid), "firstName": payload.firstName.strip(), "lastName": payload.lastName.strip(),
                 "email": email, "role": "user"},
    }


@app.post("/api/auth/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    token = create_session_token(user)
    set_session_cookie(response, token)
    return ok(access_token=token, token_type="bearer", user=session_claims(user))


@app.post("/api/auth/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True, "message": "Signed out"}


@app.post("/api/auth/onboarding")
def onboarding(payload: OnboardingRequest, response: Response, current: dict = Depends(get_current_user),
               db: Database = Depends(get_db)):
    update = {
        "location": payload.model_dump(),
        "onboardingCompleted": True,
        "updated_at": datetime.utcnow(),
    }
    if not current.get("localGovernment"):
        covering = covering_local_government(db, update["location"]["coordinates"])
        if covering:
            update["localGovernment"] = covering["_id"]
    db["user"].update_one({"_id": current["_id"]}, {"$set": update})
    user = db["user"].find_one({"_id": current["_id"]})
    token = create_session_token(user)
    set_session_cookie(response, token)
    return {
        "success": True,
        "message": "Onboarding completed successfully",
        "access_token": token,
        "user": serialize({
            "id": user["_id"],
            "firstName": user.get("firstName"),
            "lastName": user.get("lastName"),
            "onboardingCompleted": user.get("onboardingCompleted"),
            "location": user.get("location"),
            "localGovernment": user.get("localGovernment"),
        }),
    }


@app.get("/api/auth/session")
def read_session(update: bool = False, session: dict = Depends(get_session), db: Database = Depends(get_db)):
    claims = dict(session)
    if update:
        user = db["user"].find_one({"_id": oid(claims["sub"])})
        if user:
            claims.update(session_claims(user))
    expires = datetime.utcfromtimestamp(claims.pop("exp")) if "exp" in claims else None
    claims["id"] = claims.pop("sub")
    return ok(session={"user": claims, "expires": expires})


# Users
@app.get("/api/users/profile")
def get_profile(current: dict = Depends(get_current_user)):
    return ok(public_user(current, hide=("drivingLicense",)))


@app.put("/api/users/profile")
def update_profile(payload: ProfileUpdate, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not payload.firstName or not payload.lastName:
        raise HTTPException(400, "First name and last name are required")
    update = {"firstName": payload.firstName, "lastName": payload.lastName, "updated_at": datetime.utcnow()}
    if payload.phone is not None:
        update["phone"] = payload.phone
    if payload.address is not None:
        update["location.address"] = payload.address
    if payload.city is not None:
        update["location.city"] = payload.city
    db["user"].update_one({"_id": current["_id"]}, {"$set": update})
    user = db["user"].find_one({"_id": current["_id"]})
    return ok(public_user(user, hide=("drivingLicense",)), message="Profile updated successfully")


@app.put("/api/users/password")
def change_password(payload: PasswordChange, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not payload.currentPassword or not payload.newPassword:
        raise HTTPException(400, "All fields are required")
    if len(payload.newPassword) < 6:
        raise HTTPException(400, "Password must be at least 6 characters")
    if not verify_password(payload.currentPassword, current.get("password", "")):
        raise HTTPException(400, "Current password is incorrect")
    db["user"].update_one(
        {"_id": current["_id"]},
        {"$set": {"password": get_password_hash(payload.newPassword), "updated_at": datetime.utcnow()}},
    )
    return {"success": True, "message": "Password updated successfully"}


@app.get("/api/users/{uid}/local-government")
def user_local_government(uid: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if not same_id(uid, current["_id"]) and current.get("role") != "admin":
        raise HTTPException(403, "Unauthorized access")
    user = find_or_404(db, "user", uid, "User")
    lg = db["localgovernment"].find_one({"_id": user["localGovernment"]}) if user.get("localGovernment") else None
    return {"success": True, "data": serialize(lg)}


# Admin: users
def authorize_member(admin: dict, user: dict) -> None:
    # users without a local government are still manageable, e.g. fresh signups
    if user.get("localGovernment") and not same_id(user["localGovernment"], admin.get("localGovernment")):
        raise HTTPException(403, "Unauthorized - User belongs to another local government")


@app.get("/api/admin/users")
def admin_list_users(localGovernment: Optional[str] = None, role: Optional[str] = None,
                     current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    query = {"localGovernment": admin_local_government(current, localGovernment)}
    if role:
        query["role"] = role
    users = get_documents(db, "user", query, sort=[("created_at", -1)], projection={"password": 0})
    return ok(users)


@app.post("/api/admin/users", status_code=201)
def admin_create_user(payload: AdminUserCreate, current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    data = payload.model_dump(exclude_none=True)
    missing = [f for f in ("firstName", "lastName", "email", "password", "role") if not data.get(f)]
    if missing:
        raise HTTPException(400, f"Missing required fields: {', '.join(missing)}")
    email = data["email"].strip().lower()
    if len(data["password"]) < 6:
        raise HTTPException(400, "Password must be at least 6 characters")
    lg = admin_local_government(current)
    if db["user"].find_one({"email": email}):
        raise HTTPException(400, "Email already in use")
    data.update({
        "email": email,
        "password": get_password_hash(data["password"]),
        "localGovernment": lg,
        "onboardingCompleted": True,
    })
    uid = create_document(db, "user", data)
    logger.info("admin %s created %s %s", current["_id"], data["role"], uid)
    return ok(public_user(db["user"].find_one({"_id": uid})))


@app.get("/api/admin/drivers")
def admin_list_drivers(current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    lg = admin_local_government(current)
    drivers = get_documents(db, "user", {"role": "driver", "localGovernment": lg},
                            projection={**USER_SUMMARY, "assignedTruck": 1})
    return ok(drivers)


@app.get("/api/admin/users/{uid}")
def admin_get_user(uid: str, current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    user = find_or_404(db, "user", uid, "User")
    authorize_member(current, user)
    return ok(public_user(user))


@app.put("/api/admin/users/{uid}")
def admin_update_user(uid: str, payload: AdminUserUpdate, current: dict = Depends(require_admin),
                      db: Database = Depends(get_db)):
    user = find_or_404(db, "user", uid, "User")
    authorize_member(current, user)
    update = {k: v for k, v in payload.model_dump(exclude_none=True).items() if v != ""}
    if "password" in update:
        if len(update["password"]) < 6:
            raise HTTPException(400, "Password must be at least 6 characters")
        update["password"] = get_password_hash(update["password"])
    if update.get("role") in ("driver", "admin") and not user.get("localGovernment"):
        update["localGovernment"] = admin_local_government(current)
    update["updated_at"] = datetime.utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return ok(public_user(db["user"].find_one({"_id": user["_id"]})))


@app.delete("/api/admin/users/{uid}")
def admin_delete_user(uid: str, current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    user = find_or_404(db, "user", uid, "User")
    authorize_member(current, user)
    db["user"].delete_one({"_id": user["_id"]})
    if user.get("role") == "driver":
        db["vehicle"].update_many({"driver": user["_id"]}, {"$set": {"driver": None}})
    logger.info("admin %s deleted user %s", current["_id"], uid)
    return {"success": True, "message": "User deleted successfully"}


# Vehicles
def resolve_driver(db: Database, driver_id, lg) -> Optional[dict]:
    if driver_id is None:
        return None
    driver = db["user"].find_one({"_id": driver_id, "role": "driver"})
    if not driver:
        raise HTTPException(400, "Driver not found")
    if driver.get("localGovernment") and not same_id(driver["localGovernment"], lg):
        raise HTTPException(400, "Driver belongs to another local government")
    return driver


def sync_vehicle_driver(db: Database, vehicle_id, old_driver, new_driver) -> None:
    """Keep ``vehicle.driver`` and ``user.assignedTruck`` pointing at each other."""
    if old_driver and not same_id(old_driver, new_driver):
        db["user"].update_one({"_id": old_driver, "assignedTruck": vehicle_id}, {"$set": {"assignedTruck": None}})
    if new_driver:
        db["vehicle"].update_many({"driver": new_driver, "_id": {"$ne": vehicle_id}}, {"$set": {"driver": None}})
        db["user"].update_one({"_id": new_driver}, {"$set": {"assignedTruck": vehicle_id}})


def populate_vehicles(db: Database, vehicles):
    vehicles = populate(db, vehicles, "driver", "user", USER_SUMMARY)
    return populate(db, vehicles, "localGovernment", "localgovernment", {"name": 1, "region": 1})


@app.get("/api/vehicles")
def list_vehicles(localGovernment: Optional[str] = None, status: Optional[VehicleStatus] = None,
                  availableOnly: bool = False, current: dict = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    query = {}
    if current.get("role") == "admin":
        query["localGovernment"] = admin_local_government(current, localGovernment)
    elif localGovernment:
        query["localGovernment"] = oid(localGovernment)
    if status:
        query["status"] = status
    if availableOnly:
        query["status"] = "available"
        query["driver"] = None
    items = get_documents(db, "vehicle", query, sort=[("registrationNumber", 1)])
    return ok(populate_vehicles(db, items))


@app.post("/api/vehicles", status_code=201)
def create_vehicle(payload: VehicleSchema, current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    lg = admin_local_government(current)
    if db["vehicle"].find_one({"registrationNumber": payload.registrationNumber}):
        raise HTTPException(400, "Vehicle with this registration number already exists")
    data = payload.model_dump()
    driver = resolve_driver(db, optional_oid(data.pop("driver")), lg)
    data["driver"] = driver["_id"] if driver else None
    data["localGovernment"] = lg
    vid = create_document(db, "vehicle", data)
    sync_vehicle_driver(db, vid, None, data["driver"])
    logger.info("vehicle %s (%s) created", vid, payload.registrationNumber)
    return ok(db["vehicle"].find_one({"_id": vid}))


@app.get("/api/vehicles/{vid}")
def get_vehicle(vid: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    vehicle = find_or_404(db, "vehicle", vid, "Vehicle")
    return ok(populate_vehicles(db, [vehicle])[0])


@app.put("/api/vehicles/{vid}")
def update_vehicle(vid: str, payload: VehicleUpdate, current: dict = Depends(require_admin),
                   db: Database = Depends(get_db)):
    vehicle = find_or_404(db, "vehicle", vid, "Vehicle")
    authorize(current, local_government=vehicle.get("localGovernment"), message="Unauthorized to update this vehicle")
    data = payload.model_dump(exclude_unset=True)
    reg = data.get("registrationNumber")
    if reg is not None:
        reg = data["registrationNumber"] = reg.strip()
        if reg != vehicle.get("registrationNumber") and db["vehicle"].find_one({"registrationNumber": reg}):
            raise HTTPException(400, "Another vehicle with this registration number already exists")
    if "driver" in data:
        driver = resolve_driver(db, optional_oid(data["driver"]), vehicle["localGovernment"])
        data["driver"] = driver["_id"] if driver else None
    data["updated_at"] = datetime.utcnow()
    db["vehicle"].update_one({"_id": vehicle["_id"]}, {"$set": data})
    if "driver" in data:
        sync_vehicle_driver(db, vehicle["_id"], vehicle.get("driver"), data["driver"])
    updated = db["vehicle"].find_one({"_id": vehicle["_id"]})
    return ok(populate(db, [updated], "driver", "user", USER_SUMMARY)[0])


@app.delete("/api/vehicles/{vid}")
def delete_vehicle(vid: str, current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    vehicle = find_or_404(db, "vehicle", vid, "Vehicle")
    authorize(current, local_government=vehicle.get("localGovernment"), message="Unauthorized to delete this vehicle")
    db["vehicle"].delete_one({"_id": vehicle["_id"]})
    sync_vehicle_driver(db, vehicle["_id"], vehicle.get("driver"), None)
    return {"success": True, "message": "Vehicle deleted successfully"}


# Pickups
@app.get("/api/pickups")
def list_pickups(status: Optional[PickupStatus] = None, user: Optional[str] = None, vehicle: Optional[str] = None,
                 dateFrom: Optional[datetime] = None, dateTo: Optional[datetime] = None,
                 localGovernment: Optional[str] = None, current: dict = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    query = pickup_scope(current, localGovernment)
    if current.get("role") == "admin":
        if user:
            query["user"] = oid(user)
        if vehicle:
            query["vehicle"] = oid(vehicle)
    if status:
        query["status"] = status
    if dateFrom or dateTo:
        query["scheduledDate"] = {}
        if dateFrom:
            query["scheduledDate"]["$gte"] = naive_utc(dateFrom)
        if dateTo:
            query["scheduledDate"]["$lte"] = naive_utc(dateTo)
    items = get_documents(db, "pickup", query, sort=[("scheduledDate", -1)])
    return ok(populate_pickups(db, items))


@app.post("/api/pickups", status_code=201)
def create_pickup(payload: PickupSchema, current: dict = Depends(require_roles("user", "admin")),
                  db: Database = Depends(get_db)):
    data = payload.model_dump()
    coords = data["location"]["coordinates"]
    requested_lg = optional_oid(data.pop("localGovernment"))
    vehicle_id = optional_oid(data.pop("vehicle"))
    if vehicle_id is not None and current.get("role") != "admin":
        raise HTTPException(403, "Unauthorized - Only admins can pre-assign a vehicle")

    lg = requested_lg or current.get("localGovernment")
    if lg is None:
        covering = covering_local_government(db, coords)
        lg = covering["_id"] if covering else None
    if lg is None:
        raise HTTPException(400, "No local government covers this location")
    if not db["localgovernment"].find_one({"_id": lg}):
        raise HTTPException(400, "Local government not found")

    if vehicle_id is not None:
        vehicle = find_or_404(db, "vehicle", str(vehicle_id), "Vehicle")
        if not same_id(vehicle.get("localGovernment"), lg):
            raise HTTPException(400, "Vehicle belongs to another local government")
        claimed = claim_vehicle(db, vehicle_id)
        if not claimed:
            raise HTTPException(400, "Vehicle is not available")
    else:
        claimed = claim_nearest_vehicle(db, coords, lg)

    doc = {
        **data,
        "user": current["_id"],
        "localGovernment": lg,
        "status": "requested",
        "vehicle": None,
        "assignedDriver": None,
        "actualWeight": None,
        "completedAt": None,
        "feedback": None,
    }
    if claimed:
        doc.update({"vehicle": claimed["_id"], "assignedDriver": claimed.get("driver"), "status": "assigned"})
    try:
        pid = create_document(db, "pickup", doc)
    except PyMongoError:
        if claimed:
            release_vehicle(db, claimed["_id"])
        raise
    logger.info("pickup %s created with status %s", pid, doc["status"])
    return ok(populate_pickups(db, [db["pickup"].find_one({"_id": pid})])[0])


@app.get("/api/pickups/{pid}")
def get_pickup(pid: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    pickup = find_or_404(db, "pickup", pid, "Pickup")
    authorize_pickup(current, pickup)
    return ok(populate_pickups(db, [pickup])[0])


@app.put("/api/pickups/{pid}")
def update_pickup(pid: str, payload: PickupUpdate, current: dict = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    pickup = find_or_404(db, "pickup", pid, "Pickup")
    authorize_pickup(current, pickup)
    role = current.get("role")
    data = allowed_pickup_fields(role, payload.model_dump(exclude_unset=True))
    now = datetime.utcnow()
    previous = pickup.get("status", "requested")

    target = data.pop("status", None)
    changes_status = target is not None and check_transition(role, previous, target)

    update = {}
    if "assignedDriver" in data:
        driver_id = optional_oid(data.pop("assignedDriver"))
        if driver_id is not None:
            resolve_driver(db, driver_id, pickup.get("localGovernment"))
        update["assignedDriver"] = driver_id

    claimed = None
    if "vehicle" in data:
        vehicle_id = optional_oid(data.pop("vehicle"))
        if not same_id(vehicle_id, pickup.get("vehicle")):
            if vehicle_id is not None:
                if previous in TERMINAL:
                    raise HTTPException(400, f"Pickup is already {previous}")
                vehicle = find_or_404(db, "vehicle", str(vehicle_id), "Vehicle")
                if not same_id(vehicle.get("localGovernment"), pickup.get("localGovernment")):
                    raise HTTPException(400, "Vehicle belongs to another local government")
                claimed = claim_vehicle(db, vehicle_id)
                if not claimed:
                    raise HTTPException(400, "Vehicle is not available")
            update["vehicle"] = vehicle_id
            if "assignedDriver" not in update and previous not in TERMINAL:
                replaced = db["vehicle"].find_one({"_id": pickup["vehicle"]}) if pickup.get("vehicle") else None
                if claimed and claimed.get("driver"):
                    update["assignedDriver"] = claimed["driver"]
                elif replaced and same_id(replaced.get("driver"), pickup.get("assignedDriver")):
                    update["assignedDriver"] = None

    if target is None and previous in ("requested", "scheduled") and (update.get("vehicle") or update.get("assignedDriver")):
        target, changes_status = "assigned", True
    if target is None and previous == "assigned" and "vehicle" in update:
        if not update["vehicle"] and not update.get("assignedDriver", pickup.get("assignedDriver")):
            target, changes_status = "requested", check_transition(role, previous, "requested")

    if "feedback" in data:
        feedback = data.pop("feedback")
        update["feedback"] = {**feedback, "createdAt": now} if feedback else None
    update.update(data)
    if changes_status:
        update["status"] = target
        if target == "completed":
            update["completedAt"] = now
    update["updated_at"] = now

    res = db["pickup"].update_one({"_id": pickup["_id"], "status": previous}, {"$set": update})
    if res.matched_count == 0:
        if claimed:
            release_vehicle(db, claimed["_id"])
        raise HTTPException(409, "Pickup was modified by another request, please retry")

    old_vehicle = pickup.get("vehicle")
    if "vehicle" in update and old_vehicle and previous not in TERMINAL:
        release_vehicle(db, old_vehicle)
    if changes_status and target in TERMINAL:
        release_vehicle(db, update.get("vehicle", old_vehicle))
    if changes_status:
        logger.info("pickup %s %s -> %s by %s %s", pid, previous, target, role, current["_id"])

    updated = db["pickup"].find_one({"_id": pickup["_id"]})
    return ok(populate_pickups(db, [updated])[0])


@app.delete("/api/pickups/{pid}")
def delete_pickup(pid: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    pickup = find_or_404(db, "pickup", pid, "Pickup")
    if current.get("role") == "driver":
        raise HTTPException(403, "Unauthorized to delete this pickup")
    authorize_pickup(current, pickup)
    db["pickup"].delete_one({"_id": pickup["_id"]})
    if pickup.get("status") not in TERMINAL:
        release_vehicle(db, pickup.get("vehicle"))
    return {"success": True, "data": {}}


# Local governments
@app.get("/api/local-governments")
def list_local_governments(current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    items = get_documents(db, "localgovernment", sort=[("name", 1)])
    for lg in items:
        lg["admins"] = list(db["user"].find({"_id": {"$in": lg.get("admins") or []}}, USER_SUMMARY))
    return ok(items)


@app.post("/api/local-governments", status_code=201)
def create_local_government(payload: LocalGovernmentSchema, current: dict = Depends(require_admin),
                            db: Database = Depends(get_db)):
    data = payload.model_dump()
    data["admins"] = [oid(a) for a in data["admins"]]
    lid = create_document(db, "localgovernment", data)
    logger.info("local government %s (%s) created", lid, payload.name)
    return ok(db["localgovernment"].find_one({"_id": lid}))


@app.get("/api/local-governments/{lid}")
def get_local_government(lid: str, current: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    lg = find_or_404(db, "localgovernment", lid, "Local government")
    lg["admins"] = list(db["user"].find({"_id": {"$in": lg.get("admins") or []}}, USER_SUMMARY))
    return ok(lg)


@app.put("/api/local-governments/{lid}")
def update_local_government(lid: str, payload: LocalGovernmentUpdate, current: dict = Depends(require_admin),
                            db: Database = Depends(get_db)):
    lg = find_or_404(db, "localgovernment", lid, "Local government")
    authorize(current, local_government=lg["_id"], message="Unauthorized for this local government")
    data = payload.model_dump(exclude_unset=True)
    if data.get("admins") is not None:
        data["admins"] = [oid(a) for a in data["admins"]]
    data["updated_at"] = datetime.utcnow()
    db["localgovernment"].update_one({"_id": lg["_id"]}, {"$set": data})
    return ok(db["localgovernment"].find_one({"_id": lg["_id"]}))


@app.delete("/api/local-governments/{lid}")
def delete_local_government(lid: str, current: dict = Depends(require_admin), db: Database = Depends(get_db)):
    lg = find_or_404(db, "localgovernment", lid, "Local government")
    authorize(current, local_government=lg["_id"], message="Unauthorized for this local government")
    db["localgovernment"].delete_one({"_id": lg["_id"]})
    return {"success": True, "data": {}}


# Dashboard
@app.get("/api/dashboard/stats")
def get_dashboard_stats(localGovernment: Optional[str] = None, current: dict = Depends(get_current_user),
                        db: Database = Depends(get_db)):
    return ok(dashboard_stats(db, current, localGovernment))


# Database diagnostics
@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": db.name,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
