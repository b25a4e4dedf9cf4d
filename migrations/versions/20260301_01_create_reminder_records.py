"""create reminder_records ledger

Revision ID: 20260301_01
Revises:
Create Date: 2026-03-01 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20260301_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "reminder_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("appointment_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("target_phone", sa.String(length=32), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="scheduled"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scheduled_send_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("external_message_id", sa.String(length=128), nullable=True),
        sa.Column("message_body", sa.Text(), nullable=True),
        sa.Column("error_details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("appointment_id", "type", name="uq_reminder_records_appointment_type"),
    )
    op.create_index(
        "ix_reminder_records_status_send_time",
        "reminder_records",
        ["status", "scheduled_send_time"],
    )
    op.create_index("ix_reminder_records_appointment", "reminder_records", ["appointment_id"])
    op.create_index("ix_reminder_records_location", "reminder_records", ["location_id"])


def downgrade() -> None:
    op.drop_index("ix_reminder_records_location", table_name="reminder_records")
    op.drop_index("ix_reminder_records_appointment", table_name="reminder_records")
    op.drop_index("ix_reminder_records_status_send_time", table_name="reminder_records")
    op.drop_table("reminder_records")
