# hemolink/models/demand.py
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hemolink.models.base import Base, UTCDateTime
from hemolink.models.hospital import Hospital
from hemolink.utils.datetime_utils import utc_now


class DemandStatus(str, PyEnum):
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"


class DemandUnit(Base):
    """
    A hospital's request for units of one blood type on behalf of a patient.
    """

    __tablename__ = "demand_units"
    __table_args__ = (
        CheckConstraint("units_needed >= 1", name="ck_demand_units_units_needed"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    hospital_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("hospitals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    patient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    blood_type: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    units_needed: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[DemandStatus] = mapped_column(
        Enum(DemandStatus, name="demand_status_enum"),
        nullable=False,
        default=DemandStatus.PENDING,
        index=True,
    )
    confirmed_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )
    fulfilled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    hospital: Mapped["Hospital"] = relationship("Hospital")

    @property
    def deficit(self) -> int:
        return max(self.units_needed - (self.confirmed_count or 0), 0)
