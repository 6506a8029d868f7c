"""Lead lifecycle: creation, property lookup, and the predict operation.

The orchestrator is the only place that turns a lead into predictions. It
normalizes every collaborator failure into an ``hvac_quote.errors`` kind so the
API layer never sees a raw SDK or HTTP exception.
"""

from __future__ import annotations

import asyncio

import structlog

from hvac_quote.errors import (
    LookupUnavailable,
    NotFound,
    PredictionFailed,
    PreconditionFailed,
    QuoteError,
)
from hvac_quote.models.contracts import (
    HVACPrediction,
    LeadCreate,
    LeadRecord,
    PredictionHints,
    PredictionRecord,
    PropertySnapshot,
    Variant,
)
from hvac_quote.services.lead_store import LeadStore
from hvac_quote.services.predictor import Predictor
from hvac_quote.services.property_lookup import PropertyLookup

logger = structlog.get_logger()

DEFAULT_BEDROOMS = 3
EXTRA_ZONES = 2


def zone_count(prop: PropertySnapshot) -> int:
    """Bedrooms plus the shared living spaces."""
    return (prop.bedrooms or DEFAULT_BEDROOMS) + EXTRA_ZONES


def plan_variants(has_ductwork: str | None, rooms: int) -> list[tuple[Variant, PredictionHints]]:
    """Which predictor calls to make for a survey answer.

    A confirmed "no" gets a single ductless design; "yes", "not-sure" and an
    unanswered survey get both so the homeowner can compare.
    """
    ductless = ("ductless", PredictionHints(has_existing_ductwork=False, number_of_rooms=rooms))
    if has_ductwork == "no":
        return [ductless]
    ducted = ("ducted", PredictionHints(has_existing_ductwork=True, number_of_rooms=rooms))
    return [ducted, ductless]


class LeadOrchestrator:
    def __init__(
        self,
        store: LeadStore,
        lookup: PropertyLookup,
        predictor: Predictor,
        max_concurrent_predictions: int = 4,
    ) -> None:
        self.store = store
        self.lookup = lookup
        self.predictor = predictor
        self._prediction_slots = asyncio.Semaphore(max_concurrent_predictions)

    async def create_lead(self, data: LeadCreate) -> LeadRecord:
        lead = await self.store.create_lead(data)
        logger.info("lead_created", lead_id=lead.id)
        return lead

    async def _require_lead(self, lead_id: str) -> LeadRecord:
        lead = await self.store.get_lead(lead_id)
        if lead is None:
            raise NotFound(f"Lead {lead_id} not found")
        return lead

    async def load_property(self, lead_id: str) -> PropertySnapshot:
        """Look up the lead's address and merge the snapshot into the lead.

        On failure the lead is left as it was and ``LookupUnavailable`` is
        raised; the caller decides whether that blocks anything.
        """
        lead = await self._require_lead(lead_id)
        try:
            snapshot = await self.lookup.lookup_property(lead.address_raw)
        except LookupUnavailable:
            logger.warning("property_lookup_failed", lead_id=lead_id)
            raise
        except Exception as exc:
            logger.exception("property_lookup_failed", lead_id=lead_id, error_type=type(exc).__name__)
            raise LookupUnavailable() from exc

        fields: dict[str, object] = {
            "formatted_address": snapshot.formatted_address,
            "property_data": snapshot,
        }
        if lead.status == "new":
            fields["status"] = "property_loaded"
        await self.store.patch_lead(lead_id, fields)
        logger.info(
            "property_loaded",
            lead_id=lead_id,
            formatted_address=snapshot.formatted_address,
            bedrooms=snapshot.bedrooms,
        )
        return snapshot

    async def _predict_one(
        self, prop: PropertySnapshot, hints: PredictionHints
    ) -> HVACPrediction:
        async with self._prediction_slots:
            return await self.predictor.predict_configuration(prop, hints)

    async def predict(self, lead_id: str) -> list[PredictionRecord]:
        """Generate and persist the lead's prediction set.

        Both variants must succeed before anything is written; a failure
        leaves any earlier predictions in place.
        """
        lead = await self._require_lead(lead_id)
        prop = lead.property_data
        if prop is None or not prop.formatted_address:
            raise PreconditionFailed("Lead has no property data yet")

        plan = plan_variants(lead.has_ductwork, zone_count(prop))
        logger.info(
            "prediction_requested",
            lead_id=lead_id,
            variants=[variant for variant, _ in plan],
            has_ductwork=lead.has_ductwork,
        )

        try:
            results = await asyncio.gather(
                *(self._predict_one(prop, hints) for _, hints in plan)
            )
        except PredictionFailed:
            logger.warning("prediction_failed", lead_id=lead_id)
            raise
        except QuoteError as exc:
            logger.warning("prediction_failed", lead_id=lead_id, error=exc.code)
            raise PredictionFailed() from exc
        except Exception as exc:
            logger.exception("prediction_failed", lead_id=lead_id, error_type=type(exc).__name__)
            raise PredictionFailed() from exc

        records = await self.store.replace_predictions(
            lead_id, [(variant, result) for (variant, _), result in zip(plan, results)]
        )
        await self.store.patch_lead(lead_id, {"status": "quoted"})
        logger.info("prediction_complete", lead_id=lead_id, count=len(records))
        return records
