"""HTTP client the wizards use to reach the quote API.

Every non-2xx response is raised as ``ApiError`` carrying the server's
``ErrorResponse`` code; transport failures surface as ``httpx.HTTPError``.
The wizards catch both and turn them into inline notices.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from hvac_quote.models.contracts import (
    LeadRecord,
    PhotoRecord,
    PredictionRecord,
    PredictResponse,
    PropertySnapshot,
)

log = structlog.get_logger("wizard_client")

DEFAULT_TIMEOUT = 90.0  # predict waits on two model calls


class ApiError(Exception):
    def __init__(self, status: int, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message
        self.retryable = retryable


def _raise_for_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    raise ApiError(
        response.status_code,
        str(body.get("error", "http_error")),
        str(body.get("message", response.reason_phrase)),
        bool(body.get("retryable", response.status_code >= 500)),
    )


class QuoteApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/api/v1",
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.status_code >= 400:
            log.info("api_error", method=method, path=path, status=response.status_code)
        _raise_for_error(response)
        return response.json()

    async def create_lead(self, address: str, **contact: str | None) -> LeadRecord:
        body = {"address_raw": address, **{k: v for k, v in contact.items() if v}}
        return LeadRecord.model_validate(await self._request("POST", "/leads", json=body))

    async def patch_lead(self, lead_id: str, fields: dict[str, Any]) -> LeadRecord:
        data = await self._request("PATCH", f"/leads/{lead_id}", json=fields)
        return LeadRecord.model_validate(data)

    async def get_lead(self, lead_id: str) -> LeadRecord:
        return LeadRecord.model_validate(await self._request("GET", f"/leads/{lead_id}"))

    async def load_property(self, lead_id: str) -> PropertySnapshot:
        data = await self._request("POST", f"/leads/{lead_id}/property")
        return PropertySnapshot.model_validate(data)

    async def predict(self, lead_id: str) -> list[PredictionRecord]:
        data = await self._request("POST", f"/leads/{lead_id}/predict")
        return PredictResponse.model_validate(data).predictions

    async def upload_photo(
        self,
        lead_id: str,
        slot_key: str,
        data: bytes,
        *,
        filename: str = "photo.jpg",
        content_type: str = "image/jpeg",
    ) -> PhotoRecord:
        payload = await self._request(
            "POST",
            f"/leads/{lead_id}/photos",
            data={"slot_key": slot_key},
            files={"photo": (filename, data, content_type)},
        )
        return PhotoRecord.model_validate(payload)
