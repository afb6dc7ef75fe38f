# hemolink/models/inventory.py
import uuid
from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hemolink.models.base import Base, UTCDateTime
from hemolink.utils.datetime_utils import utc_now


class ItemKind(str, PyEnum):
    BLOOD = "BLOOD"
    ORGAN = "ORGAN"


class ItemStatus(str, PyEnum):
    AVAILABLE = "AVAILABLE"
    USED = "USED"
    EXPIRED = "EXPIRED"


ORGAN_TYPES: tuple[str, ...] = (
    "Kidney",
    "Liver",
    "Heart",
    "Lungs",
    "Pancreas",
    "Cornea",
    "Bone Marrow",
    "Other",
)


class InventoryLedger(Base):
    """
    A hospital's inventory aggregate: items, daily usage log and stock snapshot.

    Mutations lock this row and bump `version`, so concurrent writers to the
    same ledger are serialized.
    """

    __tablename__ = "inventory_ledgers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    hospital_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("hospitals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    version: Mapped[int] = mapped_column(
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
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    items: Mapped[list["InventoryItem"]] = relationship(
        "InventoryItem",
        back_populates="ledger",
        order_by="InventoryItem.received_at",
    )
    daily_usage: Mapped[list["DailyUsage"]] = relationship(
        "DailyUsage",
        back_populates="ledger",
        order_by="DailyUsage.day",
    )
    stock_status: Mapped[list["StockSnapshot"]] = relationship(
        "StockSnapshot",
        back_populates="ledger",
        cascade="all, delete-orphan",
    )


class InventoryItem(Base):
    """
    One received unit batch. Never deleted: USED and EXPIRED items stay as the
    audit trail.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint(
            "(type = 'BLOOD' AND blood_type IS NOT NULL AND organ_type IS NULL) OR "
            "(type = 'ORGAN' AND organ_type IS NOT NULL AND blood_type IS NULL)",
            name="ck_inventory_items_sub_type",
        ),
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    ledger_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_ledgers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type: Mapped[ItemKind] = mapped_column(
        Enum(ItemKind, name="item_kind_enum"),
        nullable=False,
    )
    blood_type: Mapped[str | None] = mapped_column(String(3), nullable=True)
    organ_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    received_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        index=True,
    )
    status: Mapped[ItemStatus] = mapped_column(
        Enum(ItemStatus, name="item_status_enum"),
        nullable=False,
        default=ItemStatus.AVAILABLE,
        index=True,
    )

    donor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("donors.id", ondelete="SET NULL"),
        nullable=True,
    )
    demand_unit_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("demand_units.id", ondelete="SET NULL"),
        nullable=True,
        doc="Demand unit that consumed this item.",
    )
    discard_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)

    ledger: Mapped["InventoryLedger"] = relationship("InventoryLedger", back_populates="items")

    @property
    def sub_type(self) -> str:
        return self.blood_type if self.type == ItemKind.BLOOD else self.organ_type


class DailyUsage(Base):
    """Consumption log of one ledger for one UTC calendar day."""

    __tablename__ = "inventory_daily_usage"
    __table_args__ = (
        UniqueConstraint("ledger_id", "day", name="uq_inventory_daily_usage_ledger_day"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    ledger_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_ledgers.id", ondelete="CASCADE"),
        nullable=False,
    )
    day: Mapped[date] = mapped_column(Date, nullable=False)

    ledger: Mapped["InventoryLedger"] = relationship("InventoryLedger", back_populates="daily_usage")
    items_used: Mapped[list["UsageEntry"]] = relationship(
        "UsageEntry",
        back_populates="daily_usage",
        cascade="all, delete-orphan",
    )


class UsageEntry(Base):
    __tablename__ = "inventory_usage_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    daily_usage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_daily_usage.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_items.id", ondelete="RESTRICT"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    daily_usage: Mapped["DailyUsage"] = relationship("DailyUsage", back_populates="items_used")
    item: Mapped["InventoryItem"] = relationship("InventoryItem")


class StockSnapshot(Base):
    """
    Derived read-model: AVAILABLE quantity per (kind, sub-type).

    Rebuilt from the item list on every recompute; never the source of truth.
    """

    __tablename__ = "inventory_stock_status"
    __table_args__ = (
        UniqueConstraint("ledger_id", "type", "sub_type", name="uq_inventory_stock_status_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    ledger_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inventory_ledgers.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[ItemKind] = mapped_column(
        Enum(ItemKind, name="item_kind_enum"),
        nullable=False,
    )
    sub_type: Mapped[str] = mapped_column(String(32), nullable=False)
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    ledger: Mapped["InventoryLedger"] = relationship("InventoryLedger", back_populates="stock_status")
