"""Admin dashboard endpoints: login, lead list/detail, status and notes edits.

Everything except login requires a bearer token from ``POST /admin/login``.
The photo proxy takes the token as a query parameter instead, since it is
loaded from ``<img src>`` tags that cannot set headers.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse, Response

from hvac_quote.api.deps import get_sessions, get_store, require_admin
from hvac_quote.errors import NotFound, Unauthorized
from hvac_quote.models.contracts import (
    AdminLeadPatch,
    ErrorResponse,
    LeadRecord,
    LeadSummary,
    LoginRequest,
    LoginResponse,
)
from hvac_quote.services.auth import AdminSessions
from hvac_quote.services.lead_store import LeadStore
from hvac_quote.utils.r2 import r2_configured, resolve_url

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])

_UNAUTHORIZED = {401: {"model": ErrorResponse}}


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=False).model_dump(),
    )


@router.post("/login", response_model=LoginResponse, responses=_UNAUTHORIZED)
async def login(body: LoginRequest, sessions: AdminSessions = Depends(get_sessions)):
    token = sessions.authenticate(body.password)
    if token is None:
        return _error(401, "invalid_credentials", "Incorrect password")
    return LoginResponse(token=token)


@router.post("/logout", status_code=204, responses=_UNAUTHORIZED)
async def logout(
    token: str = Depends(require_admin), sessions: AdminSessions = Depends(get_sessions)
) -> Response:
    sessions.revoke(token)
    return Response(status_code=204)


@router.get(
    "/leads",
    response_model=list[LeadSummary],
    responses=_UNAUTHORIZED,
    dependencies=[Depends(require_admin)],
)
async def list_leads(store: LeadStore = Depends(get_store)) -> list[LeadSummary]:
    return await store.list_leads()


async def _with_photo_urls(lead: LeadRecord) -> LeadRecord:
    if not r2_configured() or not lead.photos:
        return lead
    photos = []
    for photo in lead.photos:
        try:
            url = await asyncio.to_thread(resolve_url, photo.storage_key)
        except Exception:
            logger.warning("photo_url_unavailable", photo_id=photo.id, exc_info=True)
            url = None
        photos.append(photo.model_copy(update={"url": url}))
    return lead.model_copy(update={"photos": photos})


@router.get(
    "/leads/{lead_id}",
    response_model=LeadRecord,
    responses={**_UNAUTHORIZED, 404: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)],
)
async def get_lead(lead_id: str, store: LeadStore = Depends(get_store)) -> LeadRecord:
    lead = await store.get_lead(lead_id)
    if lead is None:
        raise NotFound(f"Lead {lead_id} not found")
    return await _with_photo_urls(lead)


@router.patch(
    "/leads/{lead_id}",
    response_model=LeadRecord,
    responses={**_UNAUTHORIZED, 404: {"model": ErrorResponse}},
    dependencies=[Depends(require_admin)],
)
async def update_lead(
    lead_id: str, body: AdminLeadPatch, store: LeadStore = Depends(get_store)
) -> LeadRecord:
    fields = body.model_dump(exclude_unset=True)
    if fields.get("status", "") is None:
        del fields["status"]
    if not fields:
        lead = await store.get_lead(lead_id)
        if lead is None:
            raise NotFound(f"Lead {lead_id} not found")
        return lead
    lead = await store.patch_lead(lead_id, fields)
    logger.info("admin_lead_updated", lead_id=lead_id, status=lead.status)
    return lead


@router.get(
    "/photos/{photo_id}",
    status_code=307,
    responses={**_UNAUTHORIZED, 404: {"model": ErrorResponse}},
)
async def photo_redirect(
    photo_id: str,
    token: str = Query(default=""),
    sessions: AdminSessions = Depends(get_sessions),
    store: LeadStore = Depends(get_store),
):
    if not sessions.check(token):
        raise Unauthorized()
    photo = await store.get_photo(photo_id)
    if photo is None:
        return _error(404, "photo_not_found", "Photo not found")
    if not r2_configured():
        return _error(404, "photo_not_stored", "Photo storage is not configured")
    url = await asyncio.to_thread(resolve_url, photo.storage_key)
    return RedirectResponse(url, status_code=307)
