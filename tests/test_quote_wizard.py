"""Tests for the seven-step quote wizard, driven against the in-process API."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from hvac_quote.models.contracts import QuoteForm
from hvac_quote.wizards.quote import (
    LEAD_FAILED_NOTICE,
    PREDICT_FAILED_NOTICE,
    QuoteWizard,
    Step,
    validate_step,
)
from hvac_quote.wizards.sync import PatchQueue

ADDRESS = "12 Elm St, Newton, MA 02458"
CONTACT = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "(617) 555-0142",
}
HOME = {
    "has_attic": "yes",
    "basement_type": "full",
    "has_ductwork": "not-sure",
    "number_of_floors": "2",
}
QUALIFICATION = {"ownership_status": "own", "current_heating": "oil", "install_timeline": "asap"}


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def wizard(api) -> QuoteWizard:
    queue = PatchQueue(api.patch_lead, sleep=_no_sleep)
    return QuoteWizard(api, patch_queue=queue, progress_interval=0.001)


async def _advance_to(wizard: QuoteWizard, target: Step, address: str = ADDRESS) -> None:
    answers = {
        Step.ADDRESS: {"address": address},
        Step.CONTACT: CONTACT,
        Step.HOME_DETAILS: HOME,
        Step.QUALIFICATION: QUALIFICATION,
        Step.UTILITIES: {"electricity_provider": "Eversource"},
        Step.OVERVIEW: {"confirmed": True},
    }
    while wizard.step < target:
        wizard.update(**answers[wizard.step])
        result = await wizard.advance()
        assert result.advanced, result.errors or wizard.notice


class TestValidateStep:
    def test_address_required(self):
        result = validate_step(1, QuoteForm(address="   "))
        assert not result.valid
        assert result.errors == {"address": "Please enter your address"}

    def test_contact_rules(self):
        form = QuoteForm(first_name="Ada", last_name="", email="not-an-email", phone="555-0142")
        errors = validate_step(2, form).errors
        assert set(errors) == {"last_name", "email", "phone"}
        assert errors["email"] == "Please enter a valid email address"
        assert errors["phone"] == "Please enter a valid phone number"

    def test_phone_counts_digits_only(self):
        form = QuoteForm(**CONTACT)
        assert validate_step(2, form).valid

    def test_choice_fields_must_be_known_values(self):
        form = QuoteForm(has_attic="yes", basement_type="cellar", has_ductwork="", number_of_floors="2")
        errors = validate_step(3, form).errors
        assert errors == {
            "basement_type": "Please select an option",
            "has_ductwork": "Please select an option",
        }

    def test_gas_provider_optional(self):
        assert validate_step(5, QuoteForm(electricity_provider="Eversource")).valid
        assert "electricity_provider" in validate_step(5, QuoteForm(gas_provider="NG")).errors

    def test_overview_requires_confirmation(self):
        assert validate_step(6, QuoteForm()).errors == {
            "confirmed": "Please confirm your details are accurate"
        }
        assert validate_step(6, QuoteForm(confirmed=True)).valid

    def test_quote_step_always_valid(self):
        assert validate_step(7, QuoteForm()).valid

    @pytest.mark.parametrize("step", [0, 8])
    def test_unknown_step_raises(self, step):
        with pytest.raises(ValueError):
            validate_step(step, QuoteForm())


class TestAdvance:
    @pytest.mark.asyncio
    async def test_invalid_step_blocks_without_side_effects(self, wizard, store):
        result = await wizard.advance()
        assert not result.advanced
        assert wizard.step == Step.ADDRESS
        assert "address" in wizard.errors

        wizard.update(address=ADDRESS)
        await wizard.advance()
        wizard.update(first_name="Ada")
        result = await wizard.advance()
        assert not result.advanced
        assert wizard.step == Step.CONTACT
        assert wizard.lead_id is None
        assert await store.list_leads() == []

    @pytest.mark.asyncio
    async def test_contact_step_creates_lead_and_loads_property(self, wizard, store):
        await _advance_to(wizard, Step.HOME_DETAILS)
        assert wizard.lead_id is not None
        assert wizard.property is not None
        assert wizard.lookup_unavailable is False
        lead = await store.get_lead(wizard.lead_id)
        assert lead.address_raw == ADDRESS
        assert lead.first_name == "Ada"
        assert lead.status == "property_loaded"

    @pytest.mark.asyncio
    async def test_lookup_failure_does_not_block(self, wizard, store):
        await _advance_to(wizard, Step.HOME_DETAILS, address="1 Nowhere Lane")
        assert wizard.property is None
        assert wizard.lookup_unavailable is True
        lead = await store.get_lead(wizard.lead_id)
        assert lead.status == "new"

    @pytest.mark.asyncio
    async def test_survey_answers_persisted_in_background(self, wizard, store):
        await _advance_to(wizard, Step.UTILITIES)
        await wizard.sync.drain()
        lead = await store.get_lead(wizard.lead_id)
        assert lead.status == "survey_done"
        assert lead.has_ductwork == "not-sure"
        assert lead.number_of_floors == "2"
        assert lead.ownership_status == "own"
        assert lead.install_timeline == "asap"

    @pytest.mark.asyncio
    async def test_full_flow_produces_two_quotes(self, wizard, store):
        await _advance_to(wizard, Step.QUOTE)
        assert set(wizard.predictions) == {"ducted", "ductless"}
        quotes = wizard.quotes
        assert set(quotes) == {"ducted", "ductless"}
        for cost in quotes.values():
            assert cost.total == cost.subtotal - cost.rebate
        lead = await store.get_lead(wizard.lead_id)
        assert lead.status == "quoted"
        assert lead.electricity_provider == "Eversource"
        assert wizard.busy is False
        assert wizard.progress_message is None

    @pytest.mark.asyncio
    async def test_no_ductwork_gives_single_quote(self, wizard):
        await _advance_to(wizard, Step.HOME_DETAILS)
        wizard.update(**{**HOME, "has_ductwork": "no"})
        assert (await wizard.advance()).advanced
        await _advance_to(wizard, Step.QUOTE)
        assert set(wizard.predictions) == {"ductless"}

    @pytest.mark.asyncio
    async def test_quote_step_is_terminal(self, wizard):
        await _advance_to(wizard, Step.QUOTE)
        result = await wizard.advance()
        assert not result.advanced
        assert wizard.step == Step.QUOTE

    @pytest.mark.asyncio
    async def test_predict_failure_stays_on_overview(self, wizard, orchestrator):
        await _advance_to(wizard, Step.OVERVIEW)
        wizard.update(confirmed=True)
        with patch.object(
            orchestrator.predictor,
            "predict_configuration",
            new_callable=AsyncMock,
            side_effect=RuntimeError("model overloaded"),
        ):
            result = await wizard.advance()
        assert not result.advanced
        assert wizard.step == Step.OVERVIEW
        assert wizard.notice == PREDICT_FAILED_NOTICE
        assert wizard.predictions == {}
        assert wizard.busy is False

        result = await wizard.advance()
        assert result.advanced
        assert wizard.notice is None
        assert wizard.step == Step.QUOTE

    @pytest.mark.asyncio
    async def test_predict_without_property_shows_notice(self, wizard):
        await _advance_to(wizard, Step.OVERVIEW, address="1 Nowhere Lane")
        wizard.update(confirmed=True)
        result = await wizard.advance()
        assert not result.advanced
        assert wizard.notice == PREDICT_FAILED_NOTICE

    @pytest.mark.asyncio
    async def test_create_failure_blocks_contact_step(self, wizard, api):
        await _advance_to(wizard, Step.CONTACT)
        wizard.update(**CONTACT)
        with patch.object(
            api, "create_lead", new_callable=AsyncMock, side_effect=httpx.ConnectError("down")
        ):
            result = await wizard.advance()
        assert not result.advanced
        assert wizard.step == Step.CONTACT
        assert wizard.lead_id is None
        assert wizard.notice == LEAD_FAILED_NOTICE

    @pytest.mark.asyncio
    async def test_progress_messages_rotate_while_predicting(self, api, orchestrator):
        seen: list[str | None] = []
        wizard = QuoteWizard(api, progress_interval=0.001)
        original = orchestrator.predictor.predict_configuration

        async def slow_predict(prop, hints=None):
            await asyncio.sleep(0.02)
            seen.append(wizard.progress_message)
            return await original(prop, hints)

        await _advance_to(wizard, Step.OVERVIEW)
        wizard.update(confirmed=True)
        with patch.object(orchestrator.predictor, "predict_configuration", side_effect=slow_predict):
            await wizard.advance()
        assert all(message is not None for message in seen)
        assert wizard.progress_message is None


class TestBack:
    @pytest.mark.asyncio
    async def test_back_has_no_side_effects(self, wizard, store):
        await _advance_to(wizard, Step.HOME_DETAILS)
        lead_id = wizard.lead_id
        assert wizard.back() == Step.CONTACT
        assert wizard.back() == Step.ADDRESS
        assert wizard.back() == Step.ADDRESS
        assert wizard.lead_id == lead_id
        assert len(await store.list_leads()) == 1

    @pytest.mark.asyncio
    async def test_readvance_same_address_reuses_lead(self, wizard, store):
        await _advance_to(wizard, Step.HOME_DETAILS)
        lead_id = wizard.lead_id
        wizard.back()
        wizard.update(phone="617-555-9999")
        await wizard.advance()
        await wizard.sync.drain()
        assert wizard.lead_id == lead_id
        assert len(await store.list_leads()) == 1
        assert (await store.get_lead(lead_id)).phone == "617-555-9999"

    @pytest.mark.asyncio
    async def test_changed_address_starts_new_lead(self, wizard, store):
        await _advance_to(wizard, Step.HOME_DETAILS)
        first = wizard.lead_id
        wizard.back()
        wizard.back()
        await _advance_to(wizard, Step.HOME_DETAILS, address="48 Oak Ave, Brookline, MA")
        assert wizard.lead_id != first
        assert len(await store.list_leads()) == 2
        assert wizard.property.formatted_address == "48 Oak Ave, Brookline, MA"


BLANK = {
    Step.ADDRESS: {"address": "  "},
    Step.CONTACT: {"first_name": "", "last_name": "", "email": "", "phone": ""},
    Step.HOME_DETAILS: {"has_attic": "", "basement_type": "", "has_ductwork": "", "number_of_floors": ""},
    Step.QUALIFICATION: {"ownership_status": "", "current_heating": "", "install_timeline": ""},
    Step.UTILITIES: {"electricity_provider": ""},
    Step.OVERVIEW: {"confirmed": False},
}


class TestIncompleteSteps:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("step", list(BLANK))
    async def test_incomplete_step_keeps_index(self, wizard, store, step):
        await _advance_to(wizard, step)
        await wizard.sync.drain()
        before = await store.get_lead(wizard.lead_id) if wizard.lead_id else None

        wizard.update(**BLANK[step])
        result = await wizard.advance()
        await wizard.sync.drain()

        assert not result.advanced
        assert wizard.step == step
        assert set(result.errors) == set(BLANK[step])
        if before is not None:
            assert await store.get_lead(wizard.lead_id) == before
        else:
            assert await store.list_leads() == []


class TestClearedAnswers:
    @pytest.mark.asyncio
    async def test_cleared_field_reaches_lead(self, wizard, store):
        await _advance_to(wizard, Step.UTILITIES)
        wizard.update(gas_provider="National Grid")
        await _advance_to(wizard, Step.OVERVIEW)
        await wizard.sync.drain()
        assert (await store.get_lead(wizard.lead_id)).gas_provider == "National Grid"

        wizard.back()
        wizard.update(gas_provider="")
        assert (await wizard.advance()).advanced
        await wizard.sync.drain()
        lead = await store.get_lead(wizard.lead_id)
        assert lead.gas_provider is None
        assert lead.electricity_provider == "Eversource"

    @pytest.mark.asyncio
    async def test_optional_corrections_cleared(self, wizard, store):
        await _advance_to(wizard, Step.HOME_DETAILS)
        wizard.update(**HOME, corrections="Finished attic")
        await wizard.advance()
        await wizard.sync.drain()
        assert (await store.get_lead(wizard.lead_id)).corrections == "Finished attic"

        wizard.back()
        wizard.update(corrections="")
        await wizard.advance()
        await wizard.sync.drain()
        assert (await store.get_lead(wizard.lead_id)).corrections is None
