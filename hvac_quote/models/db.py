"""SQLAlchemy ORM models for the quote service.

A lead owns its predictions and photos; both cascade on lead deletion.
Photo slot keys are intentionally not unique per lead: a re-upload to the
same slot adds a row.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (Index("idx_leads_created_at", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)

    address_raw: Mapped[str] = mapped_column(String(500), nullable=False)
    formatted_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    property_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    has_attic: Mapped[str | None] = mapped_column(String(20), nullable=True)
    basement_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    has_ductwork: Mapped[str | None] = mapped_column(String(20), nullable=True)
    number_of_floors: Mapped[str | None] = mapped_column(String(10), nullable=True)
    corrections: Mapped[str | None] = mapped_column(Text, nullable=True)

    ownership_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    current_heating: Mapped[str | None] = mapped_column(String(20), nullable=True)
    install_timeline: Mapped[str | None] = mapped_column(String(20), nullable=True)
    electricity_provider: Mapped[str | None] = mapped_column(String(200), nullable=True)
    gas_provider: Mapped[str | None] = mapped_column(String(200), nullable=True)

    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    predictions: Mapped[list["Prediction"]] = relationship(
        back_populates="lead", cascade="all, delete", order_by="Prediction.created_at"
    )
    photos: Mapped[list["Photo"]] = relationship(
        back_populates="lead", cascade="all, delete", order_by="Photo.created_at"
    )


class Prediction(Base):
    __tablename__ = "predictions"
    __table_args__ = (Index("idx_predictions_lead", "lead_id", "variant"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    variant: Mapped[str] = mapped_column(String(20), nullable=False)
    number_of_odu: Mapped[int] = mapped_column(Integer, nullable=False)
    type_of_odu: Mapped[str] = mapped_column(String(50), nullable=False)
    odu_size: Mapped[str] = mapped_column(String(50), nullable=False)
    number_of_idu: Mapped[int] = mapped_column(Integer, nullable=False)
    type_of_idu: Mapped[str] = mapped_column(String(50), nullable=False)
    idu_size: Mapped[str] = mapped_column(String(100), nullable=False)
    electrical_work_estimate: Mapped[float | None] = mapped_column(Float, nullable=True)
    hvac_work_estimate: Mapped[float | None] = mapped_column(Float, nullable=True)
    confidence: Mapped[str | None] = mapped_column(String(10), nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    lead: Mapped["Lead"] = relationship(back_populates="predictions")


class Photo(Base):
    __tablename__ = "photos"
    __table_args__ = (Index("idx_photos_lead_slot", "lead_id", "slot_key"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    slot_key: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    lead: Mapped["Lead"] = relationship(back_populates="photos")
