"""Scheduling schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


booking_status_enum = sa.Enum(
    "hold",
    "confirmed",
    "cancelled",
    "expired",
    name="booking_status_enum",
    native_enum=False,
)
booking_source_enum = sa.Enum(
    "student",
    "external_calendar",
    name="booking_source_enum",
    native_enum=False,
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "availability_slots",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("qari_id", sa.Integer(), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.CheckConstraint("capacity > 0", name="ck_availability_slots_capacity_positive"),
        sa.CheckConstraint("end_time > start_time", name="ck_availability_slots_end_after_start"),
        sa.UniqueConstraint(
            "qari_id",
            "slot_date",
            "start_time",
            "end_time",
            name="uq_availability_slots_qari_id_slot_date_start_time_end_time",
        ),
    )
    op.create_index("ix_availability_slots_qari_id", "availability_slots", ["qari_id"], unique=False)
    op.create_index("ix_availability_slots_slot_date", "availability_slots", ["slot_date"], unique=False)

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("qari_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=True),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("source", booking_source_enum, nullable=False),
        sa.Column("hold_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("external_ref", sa.String(length=512), nullable=True),
        sa.UniqueConstraint("external_ref", name="uq_bookings_external_ref"),
    )
    op.create_index("ix_bookings_qari_id", "bookings", ["qari_id"], unique=False)
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index(
        "ix_bookings_window",
        "bookings",
        ["qari_id", "slot_date", "start_time", "end_time", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_bookings_window", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_student_id", table_name="bookings")
    op.drop_index("ix_bookings_qari_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_availability_slots_slot_date", table_name="availability_slots")
    op.drop_index("ix_availability_slots_qari_id", table_name="availability_slots")
    op.drop_table("availability_slots")
