"""Lead persistence: the CRUD contract plus two implementations.

``InMemoryLeadStore`` backs local development and the test suite;
``SqlLeadStore`` runs against Postgres through SQLAlchemy's async ORM.
Both return the contract records from ``hvac_quote.models.contracts`` and
share these guarantees:

- ``patch_lead`` is a partial update and never touches ``address_raw``.
- ``replace_predictions`` swaps the whole prediction set in one step; a
  reader sees either the old set or the new one, never an empty gap.
- ``save_photo`` never dedupes slot keys.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import selectinload

from hvac_quote.errors import NotFound, ValidationFailed
from hvac_quote.models import db
from hvac_quote.models.contracts import (
    HVACPrediction,
    LeadCreate,
    LeadRecord,
    LeadSummary,
    PhotoRecord,
    PredictionRecord,
    PropertySnapshot,
    Variant,
)

logger = structlog.get_logger()

PATCHABLE_FIELDS = frozenset(
    {
        "status",
        "first_name",
        "last_name",
        "email",
        "phone",
        "formatted_address",
        "property_data",
        "has_attic",
        "basement_type",
        "has_ductwork",
        "number_of_floors",
        "corrections",
        "ownership_status",
        "current_heating",
        "install_timeline",
        "electricity_provider",
        "gas_provider",
        "admin_notes",
    }
)

_LEAD_COLUMNS = ("id", "created_at", "updated_at", "address_raw", *sorted(PATCHABLE_FIELDS))

_PREDICTION_COLUMNS = (
    "number_of_odu",
    "type_of_odu",
    "odu_size",
    "number_of_idu",
    "type_of_idu",
    "idu_size",
    "electrical_work_estimate",
    "hvac_work_estimate",
    "confidence",
    "reasoning",
)


class LeadStore(Protocol):
    async def create_lead(self, data: LeadCreate) -> LeadRecord: ...

    async def patch_lead(self, lead_id: str, fields: dict[str, Any]) -> LeadRecord: ...

    async def get_lead(self, lead_id: str) -> LeadRecord | None: ...

    async def list_leads(self) -> list[LeadSummary]: ...

    async def replace_predictions(
        self, lead_id: str, predictions: Sequence[tuple[Variant, HVACPrediction]]
    ) -> list[PredictionRecord]: ...

    async def save_photo(
        self,
        lead_id: str,
        slot_key: str,
        storage_key: str,
        size_bytes: int,
        mime_type: str,
    ) -> PhotoRecord: ...

    async def get_photo(self, photo_id: str) -> PhotoRecord | None: ...


def _clean_patch(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - PATCHABLE_FIELDS
    if unknown:
        raise ValidationFailed({name: "This field cannot be changed" for name in sorted(unknown)})
    cleaned = dict(fields)
    snapshot = cleaned.get("property_data")
    if isinstance(snapshot, PropertySnapshot):
        cleaned["property_data"] = snapshot.model_dump(mode="json")
    return cleaned


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryLeadStore:
    """Dict-backed store. A single lock serializes writes."""

    def __init__(self) -> None:
        self._leads: dict[str, LeadRecord] = {}
        self._lock = asyncio.Lock()

    async def create_lead(self, data: LeadCreate) -> LeadRecord:
        now = _now()
        lead = LeadRecord(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        async with self._lock:
            self._leads[lead.id] = lead
        return lead.model_copy(deep=True)

    async def patch_lead(self, lead_id: str, fields: dict[str, Any]) -> LeadRecord:
        cleaned = _clean_patch(fields)
        async with self._lock:
            current = self._leads.get(lead_id)
            if current is None:
                raise NotFound(f"Lead {lead_id} not found")
            merged = current.model_dump() | cleaned | {"updated_at": _now()}
            updated = LeadRecord.model_validate(merged)
            self._leads[lead_id] = updated
        return updated.model_copy(deep=True)

    async def get_lead(self, lead_id: str) -> LeadRecord | None:
        lead = self._leads.get(lead_id)
        return lead.model_copy(deep=True) if lead is not None else None

    async def list_leads(self) -> list[LeadSummary]:
        # reversed() keeps insertion order as the tiebreak for equal timestamps
        leads = sorted(
            reversed(self._leads.values()), key=lambda lead: lead.created_at, reverse=True
        )
        return [
            LeadSummary(
                **lead.model_dump(include=set(LeadSummary.model_fields)),
                prediction_count=len(lead.predictions),
                photo_count=len(lead.photos),
            )
            for lead in leads
        ]

    async def replace_predictions(
        self, lead_id: str, predictions: Sequence[tuple[Variant, HVACPrediction]]
    ) -> list[PredictionRecord]:
        now = _now()
        records = [
            PredictionRecord(
                id=str(uuid.uuid4()),
                lead_id=lead_id,
                variant=variant,
                created_at=now,
                **prediction.model_dump(),
            )
            for variant, prediction in predictions
        ]
        async with self._lock:
            lead = self._leads.get(lead_id)
            if lead is None:
                raise NotFound(f"Lead {lead_id} not found")
            self._leads[lead_id] = lead.model_copy(update={"predictions": records})
        return [r.model_copy() for r in records]

    async def save_photo(
        self,
        lead_id: str,
        slot_key: str,
        storage_key: str,
        size_bytes: int,
        mime_type: str,
    ) -> PhotoRecord:
        photo = PhotoRecord(
            id=str(uuid.uuid4()),
            lead_id=lead_id,
            slot_key=slot_key,
            storage_key=storage_key,
            size_bytes=size_bytes,
            mime_type=mime_type,
            created_at=_now(),
        )
        async with self._lock:
            lead = self._leads.get(lead_id)
            if lead is None:
                raise NotFound(f"Lead {lead_id} not found")
            self._leads[lead_id] = lead.model_copy(update={"photos": [*lead.photos, photo]})
        return photo.model_copy()

    async def get_photo(self, photo_id: str) -> PhotoRecord | None:
        for lead in self._leads.values():
            for photo in lead.photos:
                if photo.id == photo_id:
                    return photo.model_copy()
        return None


# ---------------------------------------------------------------------------
# SQLAlchemy (Postgres)
# ---------------------------------------------------------------------------


def _parse_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return None


def _prediction_record(row: db.Prediction) -> PredictionRecord:
    return PredictionRecord(
        id=str(row.id),
        lead_id=str(row.lead_id),
        variant=row.variant,  # type: ignore[arg-type]
        created_at=row.created_at,
        **{col: getattr(row, col) for col in _PREDICTION_COLUMNS},
    )


def _photo_record(row: db.Photo) -> PhotoRecord:
    return PhotoRecord(
        id=str(row.id),
        lead_id=str(row.lead_id),
        slot_key=row.slot_key,
        storage_key=row.storage_key,
        size_bytes=row.size_bytes,
        mime_type=row.mime_type,
        created_at=row.created_at,
    )


def _lead_record(row: db.Lead) -> LeadRecord:
    values = {col: getattr(row, col) for col in _LEAD_COLUMNS}
    values["id"] = str(row.id)
    return LeadRecord(
        **values,
        predictions=[_prediction_record(p) for p in row.predictions],
        photos=[_photo_record(p) for p in row.photos],
    )


class SqlLeadStore:
    """Async SQLAlchemy store. Each operation runs in its own session."""

    def __init__(
        self, sessions: async_sessionmaker[AsyncSession], engine: AsyncEngine | None = None
    ) -> None:
        self._sessions = sessions
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> SqlLeadStore:
        engine = create_async_engine(database_url, pool_pre_ping=True)
        return cls(async_sessionmaker(engine, expire_on_commit=False), engine)

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def create_lead(self, data: LeadCreate) -> LeadRecord:
        row = db.Lead(id=uuid.uuid4(), status="new", **data.model_dump())
        async with self._sessions() as session, session.begin():
            session.add(row)
        lead = await self.get_lead(str(row.id))
        assert lead is not None
        return lead

    async def patch_lead(self, lead_id: str, fields: dict[str, Any]) -> LeadRecord:
        cleaned = _clean_patch(fields)
        key = _parse_id(lead_id)
        async with self._sessions() as session, session.begin():
            row = await session.get(db.Lead, key) if key else None
            if row is None:
                raise NotFound(f"Lead {lead_id} not found")
            for name, value in cleaned.items():
                setattr(row, name, value)
        lead = await self.get_lead(lead_id)
        if lead is None:
            raise NotFound(f"Lead {lead_id} not found")
        return lead

    async def get_lead(self, lead_id: str) -> LeadRecord | None:
        key = _parse_id(lead_id)
        if key is None:
            return None
        async with self._sessions() as session:
            result = await session.execute(
                select(db.Lead)
                .where(db.Lead.id == key)
                .options(selectinload(db.Lead.predictions), selectinload(db.Lead.photos))
            )
            row = result.scalar_one_or_none()
            return _lead_record(row) if row is not None else None

    async def list_leads(self) -> list[LeadSummary]:
        prediction_count = (
            select(func.count(db.Prediction.id))
            .where(db.Prediction.lead_id == db.Lead.id)
            .correlate(db.Lead)
            .scalar_subquery()
        )
        photo_count = (
            select(func.count(db.Photo.id))
            .where(db.Photo.lead_id == db.Lead.id)
            .correlate(db.Lead)
            .scalar_subquery()
        )
        async with self._sessions() as session:
            result = await session.execute(
                select(db.Lead, prediction_count, photo_count).order_by(db.Lead.created_at.desc())
            )
            return [
                LeadSummary(
                    id=str(row.id),
                    created_at=row.created_at,
                    status=row.status,  # type: ignore[arg-type]
                    first_name=row.first_name,
                    last_name=row.last_name,
                    email=row.email,
                    phone=row.phone,
                    address_raw=row.address_raw,
                    formatted_address=row.formatted_address,
                    prediction_count=n_predictions,
                    photo_count=n_photos,
                )
                for row, n_predictions, n_photos in result.all()
            ]

    async def replace_predictions(
        self, lead_id: str, predictions: Sequence[tuple[Variant, HVACPrediction]]
    ) -> list[PredictionRecord]:
        key = _parse_id(lead_id)
        rows = [
            db.Prediction(id=uuid.uuid4(), lead_id=key, variant=variant, **p.model_dump())
            for variant, p in predictions
        ]
        async with self._sessions() as session, session.begin():
            if key is None or await session.get(db.Lead, key) is None:
                raise NotFound(f"Lead {lead_id} not found")
            await session.execute(delete(db.Prediction).where(db.Prediction.lead_id == key))
            session.add_all(rows)
        async with self._sessions() as session:
            result = await session.execute(
                select(db.Prediction)
                .where(db.Prediction.lead_id == key)
                .order_by(db.Prediction.created_at)
            )
            stored = [_prediction_record(r) for r in result.scalars()]
        logger.info("predictions_replaced", lead_id=lead_id, count=len(stored))
        return stored

    async def save_photo(
        self,
        lead_id: str,
        slot_key: str,
        storage_key: str,
        size_bytes: int,
        mime_type: str,
    ) -> PhotoRecord:
        key = _parse_id(lead_id)
        row = db.Photo(
            id=uuid.uuid4(),
            lead_id=key,
            slot_key=slot_key,
            storage_key=storage_key,
            size_bytes=size_bytes,
            mime_type=mime_type,
        )
        async with self._sessions() as session, session.begin():
            if key is None or await session.get(db.Lead, key) is None:
                raise NotFound(f"Lead {lead_id} not found")
            session.add(row)
        photo = await self.get_photo(str(row.id))
        assert photo is not None
        return photo

    async def get_photo(self, photo_id: str) -> PhotoRecord | None:
        key = _parse_id(photo_id)
        if key is None:
            return None
        async with self._sessions() as session:
            row = await session.get(db.Photo, key)
            return _photo_record(row) if row is not None else None
