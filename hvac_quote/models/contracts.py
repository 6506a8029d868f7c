"""Contract models shared by the API, the orchestrator, the stores, and the wizards.

Both lead store implementations return these records, and the wizard client
parses API responses into them, so every layer speaks the same shapes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# === Enumerations ===

LeadStatus = Literal[
    "new",
    "property_loaded",
    "survey_done",
    "quoted",
    "photos_submitted",
    "contacted",
    "followed_up",
    "scheduled",
    "completed",
    "lost",
]

LEAD_STATUSES: tuple[str, ...] = (
    "new",
    "property_loaded",
    "survey_done",
    "quoted",
    "photos_submitted",
    "contacted",
    "followed_up",
    "scheduled",
    "completed",
    "lost",
)

Variant = Literal["ducted", "ductless"]

TRI_STATE = ("yes", "no", "not-sure")
BASEMENT_TYPES = ("full", "partial", "crawlspace", "slab", "none")
FLOOR_COUNTS = ("1", "2", "3+")
OWNERSHIP_STATUSES = ("own", "rent", "buying")
HEATING_SOURCES = ("oil", "gas", "propane", "electric", "wood", "other")
INSTALL_TIMELINES = ("asap", "1-3-months", "3-6-months", "exploring")

UploadStatus = Literal["idle", "uploading", "success", "error"]


# === Property data ===


class PropertySnapshot(BaseModel):
    """Canonical subset of the property provider's record.

    Consumed fields are typed; everything else the provider returns lands in
    ``extra`` untouched for display.
    """

    formatted_address: str
    address_line1: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    bedrooms: int | None = None
    bathrooms: float | None = None
    square_footage: int | None = None
    lot_size: int | None = None
    year_built: int | None = None
    property_type: str | None = None
    last_sale_price: float | None = None
    last_sale_date: str | None = None
    assessed_value: float | None = None
    provider_id: str | None = None
    features: dict[str, Any] = {}
    extra: dict[str, Any] = {}


# === Predictions ===


class PredictionHints(BaseModel):
    has_existing_ductwork: bool | None = None
    number_of_rooms: int | None = Field(default=None, ge=1)


class HVACPrediction(BaseModel):
    number_of_odu: int = Field(ge=0)
    type_of_odu: str = Field(min_length=1)  # "Multi", "Duct", "Single", "Multi+Single"
    odu_size: str = Field(min_length=1)  # "42", "36+27"
    number_of_idu: int = Field(ge=0)
    type_of_idu: str = Field(min_length=1)  # "Head", "AHU", "Head+AHU"
    idu_size: str = Field(min_length=1)  # "12,9,9,9"
    electrical_work_estimate: float | None = None
    hvac_work_estimate: float | None = None
    confidence: Literal["high", "medium", "low"] | None = None
    reasoning: str | None = None


class PredictionRecord(HVACPrediction):
    id: str
    lead_id: str
    variant: Variant
    created_at: datetime


class CostBreakdown(BaseModel):
    electrical: float
    hvac: float
    permit_fee: float
    subtotal: float
    rebate: float
    total: float


# === Photos ===


class PhotoRecord(BaseModel):
    id: str
    lead_id: str
    slot_key: str
    storage_key: str
    size_bytes: int = Field(ge=0)
    mime_type: str
    created_at: datetime
    url: str | None = None


# === Leads ===


class LeadCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address_raw: str = Field(min_length=1, max_length=500)
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator("address_raw")
    @classmethod
    def _address_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("address must not be blank")
        return v


class LeadPatch(BaseModel):
    """Fields the customer-facing wizard may change after creation.

    ``address_raw`` is deliberately absent: the raw address is immutable once
    the lead exists. The only status the wizard may set directly is
    ``survey_done``; ``property_loaded`` and ``quoted`` are set server-side.
    """

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    has_attic: Literal["yes", "no", "not-sure"] | None = None
    basement_type: Literal["full", "partial", "crawlspace", "slab", "none"] | None = None
    has_ductwork: Literal["yes", "no", "not-sure"] | None = None
    number_of_floors: Literal["1", "2", "3+"] | None = None
    corrections: str | None = None
    ownership_status: Literal["own", "rent", "buying"] | None = None
    current_heating: Literal["oil", "gas", "propane", "electric", "wood", "other"] | None = None
    install_timeline: Literal["asap", "1-3-months", "3-6-months", "exploring"] | None = None
    electricity_provider: str | None = None
    gas_provider: str | None = None
    status: Literal["survey_done"] | None = None


class AdminLeadPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: LeadStatus | None = None
    admin_notes: str | None = None


class LeadSummary(BaseModel):
    id: str
    created_at: datetime
    status: LeadStatus
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address_raw: str
    formatted_address: str | None = None
    prediction_count: int = 0
    photo_count: int = 0


class LeadRecord(BaseModel):
    id: str
    created_at: datetime
    updated_at: datetime
    status: LeadStatus = "new"

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None

    address_raw: str
    formatted_address: str | None = None
    property_data: PropertySnapshot | None = None

    has_attic: str | None = None
    basement_type: str | None = None
    has_ductwork: str | None = None
    number_of_floors: str | None = None
    corrections: str | None = None

    ownership_status: str | None = None
    current_heating: str | None = None
    install_timeline: str | None = None
    electricity_provider: str | None = None
    gas_provider: str | None = None

    admin_notes: str | None = None

    predictions: list[PredictionRecord] = []
    photos: list[PhotoRecord] = []


# === Wizard ===


class QuoteForm(BaseModel):
    """In-memory form state of the quote wizard; every field starts empty."""

    model_config = ConfigDict(validate_assignment=True)

    address: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    has_attic: str = ""
    basement_type: str = ""
    has_ductwork: str = ""
    number_of_floors: str = ""
    corrections: str = ""
    ownership_status: str = ""
    current_heating: str = ""
    install_timeline: str = ""
    electricity_provider: str = ""
    gas_provider: str = ""
    confirmed: bool = False


class StepValidation(BaseModel):
    valid: bool
    errors: dict[str, str] = {}


# === API Request/Response Models ===


class PredictResponse(BaseModel):
    predictions: list[PredictionRecord]


class LoginRequest(BaseModel):
    password: str


class LoginResponse(BaseModel):
    token: str


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None
