"""Initial schema: leads, predictions, photos.

Revision ID: 001
Revises: (none)
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # --- leads ---
    op.create_table(
        "leads",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("status", sa.String(32), server_default="new", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(40), nullable=True),
        sa.Column("address_raw", sa.String(500), nullable=False),
        sa.Column("formatted_address", sa.String(500), nullable=True),
        sa.Column("property_data", JSONB(), nullable=True),
        sa.Column("has_attic", sa.String(20), nullable=True),
        sa.Column("basement_type", sa.String(20), nullable=True),
        sa.Column("has_ductwork", sa.String(20), nullable=True),
        sa.Column("number_of_floors", sa.String(10), nullable=True),
        sa.Column("corrections", sa.Text(), nullable=True),
        sa.Column("ownership_status", sa.String(20), nullable=True),
        sa.Column("current_heating", sa.String(20), nullable=True),
        sa.Column("install_timeline", sa.String(20), nullable=True),
        sa.Column("electricity_provider", sa.String(200), nullable=True),
        sa.Column("gas_provider", sa.String(200), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
    )
    op.create_index("idx_leads_created_at", "leads", ["created_at"])

    # --- predictions ---
    op.create_table(
        "predictions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lead_id",
            UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("variant", sa.String(20), nullable=False),
        sa.Column("number_of_odu", sa.Integer(), nullable=False),
        sa.Column("type_of_odu", sa.String(50), nullable=False),
        sa.Column("odu_size", sa.String(50), nullable=False),
        sa.Column("number_of_idu", sa.Integer(), nullable=False),
        sa.Column("type_of_idu", sa.String(50), nullable=False),
        sa.Column("idu_size", sa.String(100), nullable=False),
        sa.Column("electrical_work_estimate", sa.Float(), nullable=True),
        sa.Column("hvac_work_estimate", sa.Float(), nullable=True),
        sa.Column("confidence", sa.String(10), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("idx_predictions_lead", "predictions", ["lead_id", "variant"])

    # --- photos ---
    op.create_table(
        "photos",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "lead_id",
            UUID(as_uuid=True),
            sa.ForeignKey("leads.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slot_key", sa.String(100), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("idx_photos_lead_slot", "photos", ["lead_id", "slot_key"])


def downgrade() -> None:
    op.drop_table("photos")
    op.drop_table("predictions")
    op.drop_table("leads")
