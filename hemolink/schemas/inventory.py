# schemas/inventory.py
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter

from hemolink.models.inventory import ItemKind, ItemStatus

BloodType = Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]
OrganType = Literal[
    "Kidney",
    "Liver",
    "Heart",
    "Lungs",
    "Pancreas",
    "Cornea",
    "Bone Marrow",
    "Other",
]

ReasonStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=100),
]


class _ItemCreateBase(BaseModel):
    quantity: int = Field(ge=1)
    expires_at: datetime
    received_at: datetime | None = None
    donor_id: UUID | None = None

    model_config = ConfigDict(extra="forbid")


class BloodItemCreate(_ItemCreateBase):
    """A blood batch. organ_type may only be sent as null."""

    type: Literal["BLOOD"]
    blood_type: BloodType
    organ_type: None = None


class OrganItemCreate(_ItemCreateBase):
    """An organ. blood_type may only be sent as null."""

    type: Literal["ORGAN"]
    organ_type: OrganType
    blood_type: None = None


ItemCreate = Annotated[
    Union[BloodItemCreate, OrganItemCreate],
    Field(discriminator="type"),
]

item_create_adapter: TypeAdapter[BloodItemCreate | OrganItemCreate] = TypeAdapter(ItemCreate)


class AddItemsRequest(BaseModel):
    """
    Raw item payloads; the ledger validates them one by one so the error can
    name the offending index.
    """

    items: list[dict[str, Any]]


class ConsumeItemRequest(BaseModel):
    quantity: int = Field(ge=1)
    demand_unit_id: UUID | None = None

    model_config = ConfigDict(extra="forbid")


class DiscardItemRequest(BaseModel):
    reason: ReasonStr | None = None

    model_config = ConfigDict(extra="forbid")


class InventoryItemResponse(BaseModel):
    id: UUID
    type: ItemKind
    blood_type: str | None
    organ_type: str | None
    quantity: int
    received_at: datetime
    expires_at: datetime
    status: ItemStatus
    donor_id: UUID | None
    demand_unit_id: UUID | None
    discard_reason: str | None

    model_config = ConfigDict(from_attributes=True)


class StockStatusEntry(BaseModel):
    type: ItemKind
    sub_type: str
    available_quantity: int

    model_config = ConfigDict(from_attributes=True)


class LedgerResponse(BaseModel):
    id: UUID
    hospital_id: UUID
    version: int
    items: list[InventoryItemResponse]
    stock_status: list[StockStatusEntry]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StockSnapshotResponse(BaseModel):
    ledger_id: UUID
    blood: dict[str, int]
    organ: dict[str, int]


class KindSummary(BaseModel):
    total_available: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)


class ExpiringSummary(BaseModel):
    in_24h: int = 0
    in_3d: int = 0
    in_7d: int = 0


class TodaySummary(BaseModel):
    used: int = 0
    received: int = 0


class InventorySummaryResponse(BaseModel):
    blood: KindSummary
    organs: KindSummary
    expiring: ExpiringSummary
    today: TodaySummary


class UsagePoint(BaseModel):
    day: date
    used: int


class LedgerCreate(BaseModel):
    hospital_id: UUID

    model_config = ConfigDict(extra="forbid")
