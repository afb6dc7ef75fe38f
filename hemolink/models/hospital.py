# hemolink/models/hospital.py
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Enum, Float, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hemolink.models.base import Base, UTCDateTime
from hemolink.utils.datetime_utils import utc_now


class HospitalType(str, PyEnum):
    HOSPITAL = "HOSPITAL"
    BLOOD_BANK = "BLOOD_BANK"
    CLINIC = "CLINIC"


class Hospital(Base):
    """
    A facility that holds inventory and raises demand.

    latitude/longitude are resolved from the postal code at intake; a hospital
    without coordinates can keep a ledger but cannot receive donor proposals.
    """

    __tablename__ = "hospitals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[HospitalType] = mapped_column(
        Enum(HospitalType, name="hospital_type_enum"),
        nullable=False,
        default=HospitalType.HOSPITAL,
    )
    license_no: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
