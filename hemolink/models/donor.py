# hemolink/models/donor.py
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import JSON, Boolean, Enum, Float, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hemolink.models.base import Base, UTCDateTime
from hemolink.utils.datetime_utils import utc_now


class DonorAvailability(str, PyEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Donor(Base):
    __tablename__ = "donors"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    blood_type: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    organ_donation: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Organ types the donor is willing to donate.",
    )

    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    availability: Mapped[DonorAvailability] = mapped_column(
        Enum(
            DonorAvailability,
            name="donor_availability_enum",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=DonorAvailability.UNAVAILABLE,
    )

    last_donation_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="Drives the rest period between donations.",
    )
    last_pinged_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="Drives the cooldown between two proposals to the same donor.",
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )
