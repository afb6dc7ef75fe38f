"""initial_schema

Revision ID: initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "hospitals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column(
            "type",
            sa.Enum("HOSPITAL", "BLOOD_BANK", "CLINIC", name="hospital_type_enum"),
            nullable=False,
        ),
        sa.Column("license_no", sa.String(length=100), nullable=False),
        sa.Column("postal_code", sa.String(length=20), nullable=False),
        sa.Column("country", sa.String(length=100), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("license_no"),
    )
    op.create_index(op.f("ix_hospitals_latitude"), "hospitals", ["latitude"])
    op.create_index(op.f("ix_hospitals_longitude"), "hospitals", ["longitude"])

    op.create_table(
        "donors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("blood_type", sa.String(length=3), nullable=False),
        sa.Column("organ_donation", sa.JSON(), nullable=False),
        sa.Column("postal_code", sa.String(length=20), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column(
            "availability",
            sa.Enum("available", "unavailable", name="donor_availability_enum"),
            nullable=False,
        ),
        sa.Column("last_donation_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_pinged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone"),
    )
    op.create_index(op.f("ix_donors_blood_type"), "donors", ["blood_type"])
    op.create_index(op.f("ix_donors_latitude"), "donors", ["latitude"])
    op.create_index(op.f("ix_donors_longitude"), "donors", ["longitude"])

    op.create_table(
        "demand_units",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("hospital_id", sa.Uuid(), nullable=False),
        sa.Column("patient_name", sa.String(length=255), nullable=False),
        sa.Column("blood_type", sa.String(length=3), nullable=False),
        sa.Column("units_needed", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "FULFILLED", name="demand_status_enum"),
            nullable=False,
        ),
        sa.Column(
            "confirmed_count", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("units_needed >= 1", name="ck_demand_units_units_needed"),
        sa.ForeignKeyConstraint(["hospital_id"], ["hospitals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_demand_units_hospital_id"), "demand_units", ["hospital_id"])
    op.create_index(op.f("ix_demand_units_blood_type"), "demand_units", ["blood_type"])
    op.create_index(op.f("ix_demand_units_status"), "demand_units", ["status"])

    op.create_table(
        "inventory_ledgers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("hospital_id", sa.Uuid(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["hospital_id"], ["hospitals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("hospital_id"),
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("ledger_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.Enum("BLOOD", "ORGAN", name="item_kind_enum"), nullable=False),
        sa.Column("blood_type", sa.String(length=3), nullable=True),
        sa.Column("organ_type", sa.String(length=32), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("AVAILABLE", "USED", "EXPIRED", name="item_status_enum"),
            nullable=False,
        ),
        sa.Column("donor_id", sa.Uuid(), nullable=True),
        sa.Column("demand_unit_id", sa.Uuid(), nullable=True),
        sa.Column("discard_reason", sa.String(length=100), nullable=True),
        sa.CheckConstraint(
            "(type = 'BLOOD' AND blood_type IS NOT NULL AND organ_type IS NULL) OR "
            "(type = 'ORGAN' AND organ_type IS NOT NULL AND blood_type IS NULL)",
            name="ck_inventory_items_sub_type",
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity"),
        sa.ForeignKeyConstraint(["ledger_id"], ["inventory_ledgers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["donor_id"], ["donors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["demand_unit_id"], ["demand_units.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_inventory_items_ledger_id"), "inventory_items", ["ledger_id"])
    op.create_index(op.f("ix_inventory_items_expires_at"), "inventory_items", ["expires_at"])
    op.create_index(op.f("ix_inventory_items_status"), "inventory_items", ["status"])

    op.create_table(
        "inventory_daily_usage",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("ledger_id", sa.Uuid(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(["ledger_id"], ["inventory_ledgers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ledger_id", "day", name="uq_inventory_daily_usage_ledger_day"),
    )

    op.create_table(
        "inventory_usage_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("daily_usage_id", sa.Uuid(), nullable=False),
        sa.Column("item_id", sa.Uuid(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["daily_usage_id"], ["inventory_daily_usage.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_inventory_usage_entries_daily_usage_id"),
        "inventory_usage_entries",
        ["daily_usage_id"],
    )

    op.create_table(
        "inventory_stock_status",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("ledger_id", sa.Uuid(), nullable=False),
        # item_kind_enum already exists from inventory_items
        sa.Column(
            "type",
            postgresql.ENUM("BLOOD", "ORGAN", name="item_kind_enum", create_type=False),
            nullable=False,
        ),
        sa.Column("sub_type", sa.String(length=32), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["ledger_id"], ["inventory_ledgers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "ledger_id", "type", "sub_type", name="uq_inventory_stock_status_key"
        ),
    )

    op.create_table(
        "proposals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("demand_unit_id", sa.Uuid(), nullable=False),
        sa.Column("donor_id", sa.Uuid(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PROPOSED", "CONFIRMED", "EXPIRED", name="proposal_status_enum"),
            nullable=False,
        ),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["demand_unit_id"], ["demand_units.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["donor_id"], ["donors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_proposals_token"), "proposals", ["token"], unique=True)
    op.create_index(op.f("ix_proposals_donor_id"), "proposals", ["donor_id"])
    op.create_index(
        "ix_proposals_demand_unit_status", "proposals", ["demand_unit_id", "status"]
    )
    op.create_index("ix_proposals_status_expires_at", "proposals", ["status", "expires_at"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("proposal_id", sa.Uuid(), nullable=False),
        sa.Column("donor_id", sa.Uuid(), nullable=False),
        sa.Column("hospital_id", sa.Uuid(), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum("SCHEDULED", "COMPLETED", "CANCELLED", name="appointment_status_enum"),
            nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["donor_id"], ["donors.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["hospital_id"], ["hospitals.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("proposal_id"),
    )
    op.create_index(op.f("ix_appointments_donor_id"), "appointments", ["donor_id"])
    op.create_index(
        "ix_appointments_hospital_scheduled_at",
        "appointments",
        ["hospital_id", "scheduled_at"],
    )


def downgrade() -> None:
    op.drop_table("appointments")
    op.drop_table("proposals")
    op.drop_table("inventory_stock_status")
    op.drop_table("inventory_usage_entries")
    op.drop_table("inventory_daily_usage")
    op.drop_table("inventory_items")
    op.drop_table("inventory_ledgers")
    op.drop_table("demand_units")
    op.drop_table("donors")
    op.drop_table("hospitals")

    for enum_name in (
        "appointment_status_enum",
        "proposal_status_enum",
        "item_status_enum",
        "item_kind_enum",
        "demand_status_enum",
        "donor_availability_enum",
        "hospital_type_enum",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
