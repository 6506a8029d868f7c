"""Quote wizard: seven linear steps from address to priced quote.

The wizard owns the in-memory form and drives the API through
``QuoteApiClient``. Step validation is a pure function shared with the
server (``POST /quote/steps/{step}/validate``). Network trouble never escapes
``advance()``: it becomes ``notice`` (blocking steps) or a logged degraded
patch (best-effort steps).
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import re
from dataclasses import dataclass, field
from enum import IntEnum

import httpx
import structlog

from hvac_quote.models.contracts import (
    BASEMENT_TYPES,
    FLOOR_COUNTS,
    HEATING_SOURCES,
    INSTALL_TIMELINES,
    OWNERSHIP_STATUSES,
    TRI_STATE,
    CostBreakdown,
    HVACPrediction,
    PropertySnapshot,
    QuoteForm,
    StepValidation,
    Variant,
)
from hvac_quote.wizards.client import ApiError, QuoteApiClient
from hvac_quote.wizards.pricing import compute_cost_breakdown
from hvac_quote.wizards.sync import PatchQueue

logger = structlog.get_logger()


class Step(IntEnum):
    ADDRESS = 1
    CONTACT = 2
    HOME_DETAILS = 3
    QUALIFICATION = 4
    UTILITIES = 5
    OVERVIEW = 6
    QUOTE = 7


# Fields each step sends to the lead once it is completed.
STEP_FIELDS: dict[Step, tuple[str, ...]] = {
    Step.CONTACT: ("first_name", "last_name", "email", "phone"),
    Step.HOME_DETAILS: ("has_attic", "basement_type", "has_ductwork", "number_of_floors", "corrections"),
    Step.QUALIFICATION: ("ownership_status", "current_heating", "install_timeline"),
    Step.UTILITIES: ("electricity_provider", "gas_provider"),
}

PROGRESS_INTERVAL = 2.5  # seconds
PROGRESS_MESSAGES = (
    "Analyzing your home...",
    "Sizing your heat pump system...",
    "Estimating installation costs...",
    "Applying available rebates...",
)

LEAD_FAILED_NOTICE = "We couldn't save your details. Please check your connection and try again."
PREDICT_FAILED_NOTICE = "We couldn't generate your quote. Please try again."

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_MIN_PHONE_DIGITS = 10

# ValueError covers a response body that fails model validation.
_CLIENT_ERRORS = (ApiError, httpx.HTTPError, ValueError)


def _choice(errors: dict[str, str], form: QuoteForm, name: str, allowed: tuple[str, ...]) -> None:
    if getattr(form, name) not in allowed:
        errors[name] = "Please select an option"


def _required(errors: dict[str, str], form: QuoteForm, name: str, message: str) -> None:
    if not getattr(form, name).strip():
        errors[name] = message


def validate_step(step: int, form: QuoteForm) -> StepValidation:
    """Check the fields a step requires. Pure: no I/O, no mutation."""
    errors: dict[str, str] = {}
    if step == Step.ADDRESS:
        _required(errors, form, "address", "Please enter your address")
    elif step == Step.CONTACT:
        _required(errors, form, "first_name", "Please enter your first name")
        _required(errors, form, "last_name", "Please enter your last name")
        if not _EMAIL.match(form.email.strip()):
            errors["email"] = "Please enter a valid email address"
        if sum(ch.isdigit() for ch in form.phone) < _MIN_PHONE_DIGITS:
            errors["phone"] = "Please enter a valid phone number"
    elif step == Step.HOME_DETAILS:
        _choice(errors, form, "has_attic", TRI_STATE)
        _choice(errors, form, "basement_type", BASEMENT_TYPES)
        _choice(errors, form, "has_ductwork", TRI_STATE)
        _choice(errors, form, "number_of_floors", FLOOR_COUNTS)
    elif step == Step.QUALIFICATION:
        _choice(errors, form, "ownership_status", OWNERSHIP_STATUSES)
        _choice(errors, form, "current_heating", HEATING_SOURCES)
        _choice(errors, form, "install_timeline", INSTALL_TIMELINES)
    elif step == Step.UTILITIES:
        _required(errors, form, "electricity_provider", "Please enter your electricity provider")
    elif step == Step.OVERVIEW:
        if not form.confirmed:
            errors["confirmed"] = "Please confirm your details are accurate"
    elif step != Step.QUOTE:
        raise ValueError(f"Unknown quote step: {step}")
    return StepValidation(valid=not errors, errors=errors)


@dataclass
class AdvanceResult:
    step: int
    advanced: bool
    errors: dict[str, str] = field(default_factory=dict)


class QuoteWizard:
    """State machine behind the quote flow; one instance per browser session."""

    def __init__(
        self,
        client: QuoteApiClient,
        *,
        patch_queue: PatchQueue | None = None,
        progress_interval: float = PROGRESS_INTERVAL,
        progress_messages: tuple[str, ...] = PROGRESS_MESSAGES,
    ) -> None:
        self.client = client
        self.sync = patch_queue or PatchQueue(client.patch_lead)
        self.form = QuoteForm()
        self.step = Step.ADDRESS
        self.lead_id: str | None = None
        self.errors: dict[str, str] = {}

        # display state
        self.property: PropertySnapshot | None = None
        self.lookup_unavailable = False
        self.predictions: dict[Variant, HVACPrediction] = {}
        self.notice: str | None = None
        self.busy = False
        self.progress_message: str | None = None

        self._progress_interval = progress_interval
        self._progress_messages = progress_messages
        self._lead_address: str | None = None

    @property
    def quotes(self) -> dict[Variant, CostBreakdown]:
        return {variant: compute_cost_breakdown(p) for variant, p in self.predictions.items()}

    def update(self, **values: object) -> None:
        """Set form fields; unknown names raise."""
        for name, value in values.items():
            setattr(self.form, name, value)

    def _fields(self, step: Step) -> dict[str, str | None]:
        """Every field the step collects; a blank answer is sent as None so it clears."""
        return {name: getattr(self.form, name).strip() or None for name in STEP_FIELDS[step]}

    async def advance(self) -> AdvanceResult:
        """Validate the current step, run its side effect, and move forward."""
        if self.busy or self.step == Step.QUOTE:
            return AdvanceResult(self.step, False)

        result = validate_step(self.step, self.form)
        self.errors = result.errors
        if not result.valid:
            return AdvanceResult(self.step, False, result.errors)

        self.notice = None
        if self.step == Step.CONTACT:
            ok = await self._register_lead()
        elif self.step == Step.OVERVIEW:
            ok = await self._generate_quote()
        else:
            self._save_answers(self.step)
            ok = True

        if ok:
            self.step = Step(self.step + 1)
        return AdvanceResult(self.step, ok)

    def back(self) -> int:
        """Step back one; never validates or re-runs side effects."""
        if not self.busy and self.step > Step.ADDRESS:
            self.step = Step(self.step - 1)
            self.errors = {}
            self.notice = None
        return self.step

    def _save_answers(self, step: Step) -> None:
        if step not in STEP_FIELDS or self.lead_id is None:
            return
        fields: dict[str, str | None] = self._fields(step)
        if step == Step.HOME_DETAILS:
            fields["status"] = "survey_done"
        self.sync.submit(self.lead_id, fields)

    async def _register_lead(self) -> bool:
        address = self.form.address.strip()
        if self.lead_id is not None and address != self._lead_address:
            # A new address is a new lead.
            logger.info("quote_address_changed", previous_lead_id=self.lead_id)
            self.lead_id = None
            self.property = None
            self.lookup_unavailable = False

        self.busy = True
        try:
            if self.lead_id is None:
                try:
                    lead = await self.client.create_lead(address, **self._fields(Step.CONTACT))
                except _CLIENT_ERRORS as exc:
                    logger.warning("quote_lead_create_failed", error_type=type(exc).__name__)
                    self.notice = LEAD_FAILED_NOTICE
                    return False
                self.lead_id = lead.id
                self._lead_address = address
            else:
                self._save_answers(Step.CONTACT)

            if self.property is None:
                await self._lookup_property(self.lead_id)
            return True
        finally:
            self.busy = False

    async def _lookup_property(self, lead_id: str) -> None:
        try:
            self.property = await self.client.load_property(lead_id)
            self.lookup_unavailable = False
        except _CLIENT_ERRORS as exc:
            logger.warning("quote_property_unavailable", lead_id=lead_id, error_type=type(exc).__name__)
            self.lookup_unavailable = True

    async def _rotate_progress(self) -> None:
        for message in itertools.cycle(self._progress_messages):
            self.progress_message = message
            await asyncio.sleep(self._progress_interval)

    async def _generate_quote(self) -> bool:
        if self.lead_id is None:
            self.notice = PREDICT_FAILED_NOTICE
            return False

        self.busy = True
        ticker = asyncio.create_task(self._rotate_progress())
        try:
            await self.sync.drain()
            try:
                records = await self.client.predict(self.lead_id)
            except _CLIENT_ERRORS as exc:
                logger.warning("quote_predict_failed", lead_id=self.lead_id, error_type=type(exc).__name__)
                self.notice = PREDICT_FAILED_NOTICE
                return False
            self.predictions = {record.variant: record for record in records}
            logger.info("quote_ready", lead_id=self.lead_id, variants=sorted(self.predictions))
            return True
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
            self.progress_message = None
            self.busy = False
