"""Tests for LeadOrchestrator: property loading and the predict operation.

Lookup and predictor are AsyncMocks over the real in-memory store.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from hvac_quote.errors import LookupUnavailable, NotFound, PredictionFailed, PreconditionFailed
from hvac_quote.models.contracts import HVACPrediction, LeadCreate, PropertySnapshot
from hvac_quote.services.orchestrator import LeadOrchestrator, plan_variants, zone_count

SNAPSHOT = PropertySnapshot(formatted_address="12 Elm St, Newton, MA 02458", bedrooms=4)


def _prediction(kind: str) -> HVACPrediction:
    if kind == "ducted":
        return HVACPrediction(
            number_of_odu=1,
            type_of_odu="Duct",
            odu_size="36",
            number_of_idu=1,
            type_of_idu="AHU",
            idu_size="36",
            electrical_work_estimate=1200,
            hvac_work_estimate=3800,
        )
    return HVACPrediction(
        number_of_odu=1,
        type_of_odu="Multi",
        odu_size="42",
        number_of_idu=6,
        type_of_idu="Head",
        idu_size="12,9,9,9,9,9",
        electrical_work_estimate=1200,
        hvac_work_estimate=4500,
    )


async def _by_hint(prop, hints):
    return _prediction("ducted" if hints.has_existing_ductwork else "ductless")


@pytest.fixture
def lookup():
    return AsyncMock(lookup_property=AsyncMock(return_value=SNAPSHOT))


@pytest.fixture
def predictor():
    return AsyncMock(predict_configuration=AsyncMock(side_effect=_by_hint))


@pytest.fixture
def orch(store, lookup, predictor) -> LeadOrchestrator:
    return LeadOrchestrator(store, lookup, predictor)


@pytest.fixture
async def lead_id(orch):
    lead = await orch.create_lead(LeadCreate(address_raw="12 Elm St, Newton MA"))
    return lead.id


@pytest.fixture
async def loaded_lead_id(orch, lead_id):
    await orch.load_property(lead_id)
    return lead_id


class TestHelpers:
    def test_zone_count_defaults_to_three_bedrooms(self):
        assert zone_count(PropertySnapshot(formatted_address="x")) == 5
        assert zone_count(SNAPSHOT) == 6

    @pytest.mark.parametrize(
        ("answer", "variants"),
        [
            ("no", ["ductless"]),
            ("yes", ["ducted", "ductless"]),
            ("not-sure", ["ducted", "ductless"]),
            (None, ["ducted", "ductless"]),
        ],
    )
    def test_plan_variants(self, answer, variants):
        assert [v for v, _ in plan_variants(answer, 5)] == variants


class TestLoadProperty:
    @pytest.mark.asyncio
    async def test_success_merges_snapshot_and_advances(self, orch, store, lead_id, lookup):
        snap = await orch.load_property(lead_id)

        assert snap == SNAPSHOT
        lookup.lookup_property.assert_awaited_once_with("12 Elm St, Newton MA")
        lead = await store.get_lead(lead_id)
        assert lead.status == "property_loaded"
        assert lead.formatted_address == SNAPSHOT.formatted_address
        assert lead.property_data == SNAPSHOT

    @pytest.mark.asyncio
    async def test_status_only_advances_from_new(self, orch, store, lead_id):
        await store.patch_lead(lead_id, {"status": "survey_done"})
        await orch.load_property(lead_id)
        assert (await store.get_lead(lead_id)).status == "survey_done"

    @pytest.mark.asyncio
    async def test_failure_leaves_lead_untouched(self, orch, store, lead_id, lookup):
        lookup.lookup_property.side_effect = LookupUnavailable("No property found")
        with pytest.raises(LookupUnavailable):
            await orch.load_property(lead_id)

        lead = await store.get_lead(lead_id)
        assert lead.status == "new"
        assert lead.property_data is None

    @pytest.mark.asyncio
    async def test_unexpected_error_normalized(self, orch, lead_id, lookup):
        lookup.lookup_property.side_effect = RuntimeError("socket closed")
        with pytest.raises(LookupUnavailable):
            await orch.load_property(lead_id)

    @pytest.mark.asyncio
    async def test_unknown_lead(self, orch):
        with pytest.raises(NotFound):
            await orch.load_property("missing")


class TestPredict:
    @pytest.mark.asyncio
    async def test_unknown_lead(self, orch):
        with pytest.raises(NotFound):
            await orch.predict("missing")

    @pytest.mark.asyncio
    async def test_requires_property_snapshot(self, orch, lead_id, predictor):
        with pytest.raises(PreconditionFailed):
            await orch.predict(lead_id)
        predictor.predict_configuration.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_ductwork_gives_single_ductless(self, orch, store, loaded_lead_id, predictor):
        await store.patch_lead(loaded_lead_id, {"has_ductwork": "no"})

        records = await orch.predict(loaded_lead_id)

        assert [r.variant for r in records] == ["ductless"]
        predictor.predict_configuration.assert_awaited_once()
        hints = predictor.predict_configuration.call_args.args[1]
        assert hints.has_existing_ductwork is False
        assert hints.number_of_rooms == 6

    @pytest.mark.asyncio
    async def test_not_sure_gives_both_variants(self, orch, store, loaded_lead_id, predictor):
        await store.patch_lead(loaded_lead_id, {"has_ductwork": "not-sure"})

        records = await orch.predict(loaded_lead_id)

        assert sorted(r.variant for r in records) == ["ducted", "ductless"]
        ducted = next(r for r in records if r.variant == "ducted")
        assert ducted.type_of_idu == "AHU"
        assert predictor.predict_configuration.await_count == 2

    @pytest.mark.asyncio
    async def test_success_sets_quoted(self, orch, store, loaded_lead_id):
        await orch.predict(loaded_lead_id)
        assert (await store.get_lead(loaded_lead_id)).status == "quoted"

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, orch, loaded_lead_id, predictor):
        """Both variant calls are in flight at the same time."""
        in_flight = 0
        peak = 0

        async def slow(prop, hints):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await _by_hint(prop, hints)

        predictor.predict_configuration.side_effect = slow
        await orch.predict(loaded_lead_id)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_one_variant_failing_writes_nothing(self, orch, store, loaded_lead_id, predictor):
        """Dual join: a failed ducted call keeps the ductless result out too."""

        async def ducted_fails(prop, hints):
            if hints.has_existing_ductwork:
                raise PredictionFailed("Claude API error (503)")
            return _prediction("ductless")

        predictor.predict_configuration.side_effect = ducted_fails
        with pytest.raises(PredictionFailed):
            await orch.predict(loaded_lead_id)

        lead = await store.get_lead(loaded_lead_id)
        assert lead.predictions == []
        assert lead.status == "property_loaded"

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_predictions(self, orch, store, loaded_lead_id, predictor):
        first = await orch.predict(loaded_lead_id)

        predictor.predict_configuration.side_effect = RuntimeError("boom")
        with pytest.raises(PredictionFailed):
            await orch.predict(loaded_lead_id)

        kept = (await store.get_lead(loaded_lead_id)).predictions
        assert [p.id for p in kept] == [p.id for p in first]

    @pytest.mark.asyncio
    async def test_repredict_replaces_set(self, orch, store, loaded_lead_id):
        first = await orch.predict(loaded_lead_id)
        await store.patch_lead(loaded_lead_id, {"has_ductwork": "no"})
        second = await orch.predict(loaded_lead_id)

        stored = (await store.get_lead(loaded_lead_id)).predictions
        assert len(first) == 2
        assert [p.id for p in stored] == [p.id for p in second]
        assert not {p.id for p in first} & {p.id for p in stored}

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_semaphore(self, store, lookup, predictor):
        orch = LeadOrchestrator(store, lookup, predictor, max_concurrent_predictions=1)
        lead = await orch.create_lead(LeadCreate(address_raw="12 Elm St"))
        await orch.load_property(lead.id)
        in_flight = 0
        peak = 0

        async def slow(prop, hints):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await _by_hint(prop, hints)

        predictor.predict_configuration.side_effect = slow
        records = await orch.predict(lead.id)
        assert len(records) == 2
        assert peak == 1
