"""RentCast property lookup: address in, PropertySnapshot out.

Only the fields the predictor and the wizard consume are typed; the rest of
the provider record is carried in ``PropertySnapshot.extra`` so the admin view
can still show it.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from hvac_quote.errors import LookupUnavailable
from hvac_quote.models.contracts import PropertySnapshot

log = structlog.get_logger("property_lookup")

# provider key -> snapshot field
_FIELD_MAP: dict[str, str] = {
    "id": "provider_id",
    "formattedAddress": "formatted_address",
    "addressLine1": "address_line1",
    "city": "city",
    "state": "state",
    "zipCode": "zip_code",
    "latitude": "latitude",
    "longitude": "longitude",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "squareFootage": "square_footage",
    "lotSize": "lot_size",
    "yearBuilt": "year_built",
    "propertyType": "property_type",
    "lastSalePrice": "last_sale_price",
    "lastSaleDate": "last_sale_date",
    "assessedValue": "assessed_value",
}


class PropertyLookup(Protocol):
    async def lookup_property(self, address: str) -> PropertySnapshot: ...


def normalize_property(data: dict[str, Any]) -> PropertySnapshot:
    """Map one provider record onto the canonical snapshot."""
    fields: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        if key in _FIELD_MAP:
            if value is not None:
                fields[_FIELD_MAP[key]] = value
        elif key == "features":
            if isinstance(value, dict):
                fields["features"] = value
        else:
            extra[key] = value

    if not fields.get("formatted_address"):
        fallback = fields.get("address_line1")
        if not fallback:
            raise LookupUnavailable("Provider record has no usable address")
        fields["formatted_address"] = fallback

    return PropertySnapshot(**fields, extra=extra)


class RentCastLookup:
    """Async client for ``GET /properties?address=...``."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.rentcast.io/v1",
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("RentCast API key is not configured")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def lookup_property(self, address: str) -> PropertySnapshot:
        if self._client is not None:
            return await self._fetch(self._client, address)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch(client, address)

    async def _fetch(self, client: httpx.AsyncClient, address: str) -> PropertySnapshot:
        try:
            response = await client.get(
                f"{self._base_url}/properties",
                params={"address": address},
                headers={"X-Api-Key": self._api_key, "Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            log.warning("rentcast_request_failed", error_type=type(exc).__name__, error=str(exc))
            raise LookupUnavailable(f"RentCast request failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            log.warning(
                "rentcast_http_error",
                status=response.status_code,
                body=response.text[:200],
            )
            raise LookupUnavailable(f"RentCast API error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise LookupUnavailable("RentCast returned a non-JSON body") from exc

        records = payload if isinstance(payload, list) else [payload]
        if not records or not isinstance(records[0], dict):
            log.info("rentcast_no_match", address=address)
            raise LookupUnavailable("No property found for this address")

        snapshot = normalize_property(records[0])
        log.info(
            "rentcast_lookup_complete",
            formatted_address=snapshot.formatted_address,
            bedrooms=snapshot.bedrooms,
            square_footage=snapshot.square_footage,
        )
        return snapshot
