"""
Database Schemas for the Waste Pickup service

Each Pydantic model corresponds to a MongoDB collection (collection name is the lowercase of the class name).
Request bodies for the REST routes live below the collection models.
"""
import re
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator, AfterValidator
from typing import Annotated, Optional, List, Literal
from datetime import datetime, timezone

Role = Literal["user", "driver", "admin"]
PickupType = Literal["regular", "bulky", "recycling", "hazardous", "other"]
TimeSlot = Literal["morning", "afternoon", "evening"]
PickupStatus = Literal["requested", "scheduled", "assigned", "in_progress", "completed", "cancelled"]
VehicleType = Literal["truck", "van", "other"]
VehicleStatus = Literal["available", "on_duty", "maintenance", "inactive"]


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Mongo hands datetimes back without tzinfo; keep everything naive UTC.
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(naive_utc)]


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PickupLocation(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    coordinates: Coordinates


class DrivingLicense(BaseModel):
    number: Optional[str] = None
    expiryDate: Optional[UtcDatetime] = None
    verified: bool = False


class Feedback(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


# Collections
class LocalGovernment(BaseModel):
    name: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    contactEmail: EmailStr
    contactPhone: str = Field(..., min_length=1)
    coordinates: Coordinates
    admins: List[str] = []
    coverageArea: float = Field(10, gt=0)  # radius in km
    status: Literal["active", "inactive"] = "active"


class Vehicle(BaseModel):
    registrationNumber: str = Field(..., min_length=1)
    type: VehicleType = "truck"
    capacity: float = Field(..., gt=0)  # kg
    driver: Optional[str] = None
    currentLocation: Optional[Coordinates] = None
    status: VehicleStatus = "available"
    lastMaintenance: Optional[UtcDatetime] = None
    nextMaintenance: Optional[UtcDatetime] = None

    @field_validator("registrationNumber")
    @classmethod
    def strip_registration(cls, v: str) -> str:
        return v.strip()


class Pickup(BaseModel):
    pickupType: PickupType = "regular"
    wasteDescription: str = Field(..., min_length=1)
    estimatedWeight: float = Field(0, ge=0)  # kg
    location: PickupLocation
    scheduledDate: UtcDatetime
    preferredTimeSlot: TimeSlot = "morning"
    notes: str = ""
    vehicle: Optional[str] = None
    localGovernment: Optional[str] = None


# Request bodies

class LocalGovernmentUpdate(BaseModel):
    name: Optional[str] = None
    region: Optional[str] = None
    address: Optional[str] = None
    contactEmail: Optional[EmailStr] = None
    contactPhone: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    admins: Optional[List[str]] = None
    coverageArea: Optional[float] = Field(None, gt=0)
    status: Optional[Literal["active", "inactive"]] = None


class VehicleUpdate(BaseModel):
    registrationNumber: Optional[str] = None
    type: Optional[VehicleType] = None
    capacity: Optional[float] = Field(None, gt=0)
    driver: Optional[str] = None
    currentLocation: Optional[Coordinates] = None
    status: Optional[VehicleStatus] = None
    lastMaintenance: Optional[UtcDatetime] = None
    nextMaintenance: Optional[UtcDatetime] = None


class PickupUpdate(BaseModel):
    status: Optional[PickupStatus] = None
    notes: Optional[str] = None
    feedback: Optional[Feedback] = None
    actualWeight: Optional[float] = Field(None, ge=0)
    vehicle: Optional[str] = None
    assignedDriver: Optional[str] = None
    pickupType: Optional[PickupType] = None
    wasteDescription: Optional[str] = None
    estimatedWeight: Optional[float] = Field(None, ge=0)
    location: Optional[PickupLocation] = None
    scheduledDate: Optional[UtcDatetime] = None
    preferredTimeSlot: Optional[TimeSlot] = None


class SignupRequest(BaseModel):
    firstName: str = Field(..., min_length=2, max_length=50)
    lastName: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)
    confirmPassword: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        if not re.search(r"[a-z]", v):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"[A-Z]", v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[0-9]", v):
            raise ValueError("Password must contain at least one number")
        if not re.search(r"[^a-zA-Z0-9]", v):
            raise ValueError("Password must contain at least one special character")
        return v

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirmPassword:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class OnboardingRequest(BaseModel):
    address: str = Field(..., min_length=5, max_length=100)
    city: str = Field(..., min_length=2, max_length=50)
    coordinates: Coordinates


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None


class PasswordChange(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class AdminUserCreate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[Role] = None
    phone: Optional[str] = None
    drivingLicense: Optional[DrivingLicense] = None


class AdminUserUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[Role] = None
    password: Optional[str] = None
    drivingLicense: Optional[DrivingLicense] = None
