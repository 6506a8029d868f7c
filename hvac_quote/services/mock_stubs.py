"""Deterministic lookup and predictor stand-ins for local development.

Selected when USE_MOCK_SERVICES is on or an API key is missing, so the whole
quote flow can be clicked through without RentCast or Anthropic credentials.
"""

from __future__ import annotations

import hashlib

from hvac_quote.errors import LookupUnavailable
from hvac_quote.models.contracts import HVACPrediction, PredictionHints, PropertySnapshot

# Addresses containing this marker simulate a provider miss.
NO_MATCH_MARKER = "nowhere"


class MockPropertyLookup:
    async def lookup_property(self, address: str) -> PropertySnapshot:
        if NO_MATCH_MARKER in address.lower():
            raise LookupUnavailable("No property found for this address")
        seed = int(hashlib.sha256(address.encode()).hexdigest()[:8], 16)
        bedrooms = 2 + seed % 4
        return PropertySnapshot(
            formatted_address=address.strip(),
            address_line1=address.split(",")[0].strip(),
            city="Newton",
            state="MA",
            zip_code="02458",
            bedrooms=bedrooms,
            bathrooms=1.5 + (seed % 3) * 0.5,
            square_footage=900 + bedrooms * 350,
            year_built=1920 + seed % 90,
            property_type="Single Family",
        )


class MockPredictor:
    async def predict_configuration(
        self, prop: PropertySnapshot, hints: PredictionHints | None = None
    ) -> HVACPrediction:
        rooms = (hints.number_of_rooms if hints else None) or (prop.bedrooms or 3) + 2
        if hints and hints.has_existing_ductwork:
            size = "36" if (prop.square_footage or 0) < 2000 else "48"
            return HVACPrediction(
                number_of_odu=1,
                type_of_odu="Duct",
                odu_size=size,
                number_of_idu=1,
                type_of_idu="AHU",
                idu_size=size,
                electrical_work_estimate=1200,
                hvac_work_estimate=3800,
                confidence="medium",
                reasoning="Mock ducted design sized from square footage.",
            )
        heads = ",".join(["12"] + ["9"] * (rooms - 1))
        two_odus = rooms > 5
        return HVACPrediction(
            number_of_odu=2 if two_odus else 1,
            type_of_odu="Multi",
            odu_size="36+27" if two_odus else "42",
            number_of_idu=rooms,
            type_of_idu="Head",
            idu_size=heads,
            electrical_work_estimate=1500 if two_odus else 800,
            hvac_work_estimate=7000 if two_odus else 4500,
            confidence="medium",
            reasoning="Mock ductless design with one head per zone.",
        )
