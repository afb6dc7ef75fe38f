# schemas/demand.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from hemolink.models.appointment import AppointmentStatus
from hemolink.models.demand import DemandStatus
from hemolink.models.proposal import ProposalStatus
from hemolink.schemas.inventory import BloodType


class DemandUnitCreate(BaseModel):
    hospital_id: UUID
    patient_name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    blood_type: BloodType
    units_needed: int = Field(ge=1)

    model_config = ConfigDict(extra="forbid")


class DemandUnitResponse(BaseModel):
    id: UUID
    hospital_id: UUID
    patient_name: str
    blood_type: str
    units_needed: int
    status: DemandStatus
    confirmed_count: int
    created_at: datetime
    fulfilled_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class ProposalResponse(BaseModel):
    """The token is deliberately absent: it only travels to the donor."""

    id: UUID
    demand_unit_id: UUID
    donor_id: UUID
    status: ProposalStatus
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DemandUnitCreatedResponse(BaseModel):
    demand_unit: DemandUnitResponse
    proposals: list[ProposalResponse]


class SOSRequest(BaseModel):
    blood_type: BloodType
    radius_km: float = Field(default=25.0, gt=0, le=200)
    limit: int = Field(default=5, ge=1, le=50)
    demand_unit_id: UUID | None = None

    model_config = ConfigDict(extra="forbid")


class SOSResponse(BaseModel):
    created: int
    proposals: list[ProposalResponse]


class AppointmentResponse(BaseModel):
    id: UUID
    proposal_id: UUID
    donor_id: UUID
    hospital_id: UUID
    scheduled_at: datetime
    status: AppointmentStatus
    completed_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class AppointmentStatusUpdate(BaseModel):
    """Plain string so an unknown status reaches the service and is rejected there."""

    status: str
