"""Public lead endpoints used by the quote and photo wizards.

Lead lifecycle calls go through the orchestrator; plain field edits and
photo rows go straight to the store.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, Form, Path, UploadFile
from fastapi.responses import JSONResponse

from hvac_quote.api.deps import get_orchestrator, get_store
from hvac_quote.errors import NotFound
from hvac_quote.models.contracts import (
    ErrorResponse,
    LeadCreate,
    LeadPatch,
    LeadRecord,
    PhotoRecord,
    PredictResponse,
    PropertySnapshot,
    QuoteForm,
    StepValidation,
)
from hvac_quote.services.lead_store import LeadStore
from hvac_quote.services.orchestrator import LeadOrchestrator
from hvac_quote.utils.image import MAX_PHOTO_BYTES, check_photo
from hvac_quote.utils.r2 import delete_object, photo_storage_key, r2_configured, upload_object
from hvac_quote.wizards.quote import validate_step

logger = structlog.get_logger()

router = APIRouter(tags=["leads"])

_READ_CHUNK = 65_536
_SLOT_KEY_PATTERN = r"^[a-z0-9][a-z0-9-]*$"


def _error(status: int, code: str, message: str, *, retryable: bool = False) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=retryable).model_dump(),
    )


async def _require_lead(store: LeadStore, lead_id: str) -> LeadRecord:
    lead = await store.get_lead(lead_id)
    if lead is None:
        raise NotFound(f"Lead {lead_id} not found")
    return lead


@router.post("/leads", status_code=201, response_model=LeadRecord)
async def create_lead(
    body: LeadCreate, orchestrator: LeadOrchestrator = Depends(get_orchestrator)
) -> LeadRecord:
    return await orchestrator.create_lead(body)


@router.get(
    "/leads/{lead_id}",
    response_model=LeadRecord,
    responses={404: {"model": ErrorResponse}},
)
async def get_lead(lead_id: str, store: LeadStore = Depends(get_store)) -> LeadRecord:
    lead = await _require_lead(store, lead_id)
    # Storage keys are admin-only.
    return lead.model_copy(update={"photos": []})


@router.patch(
    "/leads/{lead_id}",
    response_model=LeadRecord,
    responses={404: {"model": ErrorResponse}},
)
async def patch_lead(
    lead_id: str, body: LeadPatch, store: LeadStore = Depends(get_store)
) -> LeadRecord:
    # An explicit null clears the column; omitted fields stay as they are.
    fields = body.model_dump(exclude_unset=True)
    if fields.get("status", "") is None:
        del fields["status"]
    if not fields:
        lead = await _require_lead(store, lead_id)
    else:
        lead = await store.patch_lead(lead_id, fields)
        logger.info("lead_patched", lead_id=lead_id, fields=sorted(fields))
    return lead.model_copy(update={"photos": []})


@router.post(
    "/leads/{lead_id}/property",
    response_model=PropertySnapshot,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def load_property(
    lead_id: str, orchestrator: LeadOrchestrator = Depends(get_orchestrator)
) -> PropertySnapshot:
    return await orchestrator.load_property(lead_id)


@router.post(
    "/leads/{lead_id}/predict",
    response_model=PredictResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def predict(
    lead_id: str, orchestrator: LeadOrchestrator = Depends(get_orchestrator)
) -> PredictResponse:
    return PredictResponse(predictions=await orchestrator.predict(lead_id))


@router.post(
    "/leads/{lead_id}/photos",
    status_code=201,
    response_model=PhotoRecord,
    responses={
        404: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def upload_photo(
    lead_id: str,
    photo: UploadFile,
    slot_key: str = Form(min_length=1, max_length=100, pattern=_SLOT_KEY_PATTERN),
    store: LeadStore = Depends(get_store),
):
    """Upload photo -> check -> store blob in R2 -> record row."""
    await _require_lead(store, lead_id)

    # Stream-read with early termination to avoid buffering unbounded uploads
    chunks: list[bytes] = []
    total = 0
    while chunk := await photo.read(_READ_CHUNK):
        total += len(chunk)
        if total > MAX_PHOTO_BYTES:
            mb = MAX_PHOTO_BYTES // (1024 * 1024)
            return _error(413, "file_too_large", f"Photo exceeds {mb} MB limit")
        chunks.append(chunk)
    data = b"".join(chunks)

    content_type = (photo.content_type or "").lower()
    check = await asyncio.to_thread(check_photo, data, content_type)
    if not check.passed:
        assert check.failure is not None and check.message is not None
        return _error(422, check.failure, check.message)

    storage_key = photo_storage_key(lead_id, slot_key, content_type)
    stored = r2_configured()
    if stored:
        try:
            await asyncio.to_thread(upload_object, storage_key, data, content_type)
        except Exception:
            logger.exception(
                "r2_upload_failed",
                storage_key=storage_key,
                lead_id=lead_id,
                content_type=content_type,
                size_bytes=len(data),
            )
            return _error(502, "upload_failed", "Photo upload failed. Please try again.", retryable=True)
    else:
        logger.warning("r2_not_configured_skipping_upload", storage_key=storage_key, lead_id=lead_id)

    try:
        record = await store.save_photo(lead_id, slot_key, storage_key, len(data), content_type)
    except Exception:
        if stored:
            # Rollback: remove the orphaned blob
            try:
                await asyncio.to_thread(delete_object, storage_key)
            except Exception:
                logger.error("r2_rollback_failed", storage_key=storage_key, exc_info=True)
        raise

    logger.info(
        "photo_uploaded",
        lead_id=lead_id,
        photo_id=record.id,
        slot_key=slot_key,
        size_bytes=len(data),
    )
    # Storage keys are admin-only.
    return record.model_copy(update={"storage_key": ""})


@router.post("/quote/steps/{step}/validate", response_model=StepValidation)
async def validate_quote_step(
    body: QuoteForm, step: int = Path(ge=1, le=7)
) -> StepValidation:
    return validate_step(step, body)
