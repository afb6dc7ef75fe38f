# schemas/hospital.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, StringConstraints

from hemolink.models.hospital import HospitalType

NameStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=2, max_length=120),
]
CodeStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=100),
]
PostalCodeStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=3, max_length=20),
]


class HospitalCreate(BaseModel):
    name: NameStr
    type: HospitalType = HospitalType.HOSPITAL
    license_no: CodeStr
    postal_code: PostalCodeStr
    country: CodeStr

    model_config = ConfigDict(extra="forbid")


class HospitalResponse(BaseModel):
    id: UUID
    name: str
    type: HospitalType
    license_no: str
    postal_code: str
    country: str
    latitude: float | None
    longitude: float | None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HospitalOverviewResponse(BaseModel):
    hospital_id: UUID
    pending_units: int
    available_units: int
    urgency_ratio: float
    pending_proposals: int


class FunnelResponse(BaseModel):
    proposals: dict[str, int]
    appointments: dict[str, int]
