# schemas/donor.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from hemolink.models.donor import DonorAvailability
from hemolink.schemas.inventory import BloodType, OrganType

PhoneStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=6, max_length=32),
]


class DonorCreate(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    phone: PhoneStr
    blood_type: BloodType
    organ_donation: list[OrganType] = Field(default_factory=list)
    postal_code: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=20)]
    country: str | None = None

    model_config = ConfigDict(extra="forbid")


class DonorAvailabilityUpdate(BaseModel):
    availability: DonorAvailability


class DonorVerificationUpdate(BaseModel):
    is_verified: bool = True


class DonorResponse(BaseModel):
    id: UUID
    name: str
    blood_type: str
    organ_donation: list[str]
    postal_code: str
    latitude: float | None
    longitude: float | None
    is_verified: bool
    availability: DonorAvailability
    last_donation_at: datetime | None
    last_pinged_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class NearbyDonorResponse(BaseModel):
    id: UUID
    name: str
    blood_type: str
    is_verified: bool
    distance_km: float
    last_donation_at: datetime | None


class NearbyRequestResponse(BaseModel):
    hospital_id: UUID
    hospital_name: str
    distance_km: float
    blood_type: str
    available_units: int
    status: Literal["CRITICAL", "LOW", "OK"]
