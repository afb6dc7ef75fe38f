# hemolink/models/proposal.py
import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Enum, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hemolink.models.base import Base, UTCDateTime
from hemolink.models.demand import DemandUnit
from hemolink.models.donor import Donor
from hemolink.utils.datetime_utils import utc_now


class ProposalStatus(str, PyEnum):
    PROPOSED = "PROPOSED"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"


class Proposal(Base):
    """
    Time-boxed offer to one donor to cover one unit of a demand.

    PROPOSED is initial; CONFIRMED and EXPIRED are terminal. Status changes
    only go through compare-and-swap updates in proposal_service.
    """

    __tablename__ = "proposals"
    __table_args__ = (
        Index("ix_proposals_demand_unit_status", "demand_unit_id", "status"),
        Index("ix_proposals_status_expires_at", "status", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    demand_unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("demand_units.id", ondelete="CASCADE"),
        nullable=False,
    )
    donor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("donors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[ProposalStatus] = mapped_column(
        Enum(ProposalStatus, name="proposal_status_enum"),
        nullable=False,
        default=ProposalStatus.PROPOSED,
    )
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    demand_unit: Mapped["DemandUnit"] = relationship("DemandUnit")
    donor: Mapped["Donor"] = relationship("Donor")
