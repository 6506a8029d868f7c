"""Tests for the in-memory lead store contract."""

import asyncio

import pytest

from hvac_quote.errors import NotFound, ValidationFailed
from hvac_quote.models.contracts import HVACPrediction, LeadCreate, PropertySnapshot
from hvac_quote.services.lead_store import InMemoryLeadStore

DUCTED = HVACPrediction(
    number_of_odu=1,
    type_of_odu="Duct",
    odu_size="36",
    number_of_idu=1,
    type_of_idu="AHU",
    idu_size="36",
)
DUCTLESS = HVACPrediction(
    number_of_odu=1,
    type_of_odu="Multi",
    odu_size="42",
    number_of_idu=4,
    type_of_idu="Head",
    idu_size="12,9,9,9",
)


@pytest.fixture
async def lead(store):
    return await store.create_lead(LeadCreate(address_raw="  12 Elm St, Newton MA  ", first_name="Ada"))


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_new_lead_defaults(self, lead):
        assert lead.status == "new"
        assert lead.address_raw == "12 Elm St, Newton MA"
        assert lead.first_name == "Ada"
        assert lead.predictions == []
        assert lead.photos == []

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store):
        assert await store.get_lead("missing") is None

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store, lead):
        fetched = await store.get_lead(lead.id)
        fetched.first_name = "Mutated"
        assert (await store.get_lead(lead.id)).first_name == "Ada"


class TestPatch:
    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, store, lead):
        updated = await store.patch_lead(lead.id, {"has_ductwork": "no"})
        assert updated.has_ductwork == "no"
        assert updated.first_name == "Ada"

    @pytest.mark.asyncio
    async def test_property_snapshot_stored(self, store, lead):
        snap = PropertySnapshot(formatted_address="12 Elm St, Newton, MA 02458", bedrooms=3)
        updated = await store.patch_lead(lead.id, {"property_data": snap})
        assert updated.property_data == snap

    @pytest.mark.asyncio
    async def test_address_raw_cannot_be_patched(self, store, lead):
        with pytest.raises(ValidationFailed) as exc_info:
            await store.patch_lead(lead.id, {"address_raw": "elsewhere"})
        assert set(exc_info.value.errors) == {"address_raw"}
        assert (await store.get_lead(lead.id)).address_raw == "12 Elm St, Newton MA"

    @pytest.mark.asyncio
    async def test_unknown_lead_is_not_found(self, store):
        with pytest.raises(NotFound):
            await store.patch_lead("missing", {"first_name": "X"})


class TestReplacePredictions:
    @pytest.mark.asyncio
    async def test_replaces_whole_set(self, store, lead):
        await store.replace_predictions(lead.id, [("ducted", DUCTED), ("ductless", DUCTLESS)])
        records = await store.replace_predictions(lead.id, [("ductless", DUCTLESS)])

        assert [r.variant for r in records] == ["ductless"]
        stored = await store.get_lead(lead.id)
        assert [p.variant for p in stored.predictions] == ["ductless"]
        assert stored.predictions[0].lead_id == lead.id

    @pytest.mark.asyncio
    async def test_unknown_lead_is_not_found(self, store):
        with pytest.raises(NotFound):
            await store.replace_predictions("missing", [("ductless", DUCTLESS)])


class TestPhotosAndListing:
    @pytest.mark.asyncio
    async def test_same_slot_twice_adds_two_rows(self, store, lead):
        first = await store.save_photo(lead.id, "main-breaker", "leads/x/a.jpg", 10, "image/jpeg")
        second = await store.save_photo(lead.id, "main-breaker", "leads/x/b.jpg", 12, "image/jpeg")

        assert first.id != second.id
        assert len((await store.get_lead(lead.id)).photos) == 2
        assert await store.get_photo(second.id) == second

    @pytest.mark.asyncio
    async def test_concurrent_uploads_all_recorded(self, store, lead):
        await asyncio.gather(
            *(
                store.save_photo(lead.id, f"additional-{n}", f"leads/x/{n}.jpg", n, "image/jpeg")
                for n in range(5)
            )
        )
        assert len((await store.get_lead(lead.id)).photos) == 5

    @pytest.mark.asyncio
    async def test_save_photo_unknown_lead(self, store):
        with pytest.raises(NotFound):
            await store.save_photo("missing", "main-breaker", "k", 1, "image/jpeg")

    @pytest.mark.asyncio
    async def test_list_newest_first_with_counts(self, store, lead):
        newer = await store.create_lead(LeadCreate(address_raw="5 Oak Rd"))
        await store.replace_predictions(lead.id, [("ducted", DUCTED), ("ductless", DUCTLESS)])
        await store.save_photo(lead.id, "outdoor-unit", "k", 1, "image/jpeg")

        summaries = await store.list_leads()

        assert [s.id for s in summaries] == [newer.id, lead.id]
        assert summaries[1].prediction_count == 2
        assert summaries[1].photo_count == 1
        assert summaries[0].prediction_count == 0
