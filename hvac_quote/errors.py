"""Error kinds shared by the orchestrator, the API layer, and the wizards.

Collaborator failures (HTTP, SDK, database) are caught at the orchestrator or
wizard boundary and re-raised as one of these. The original exception stays
chained for logging; its text is never shown to the customer.
"""

from __future__ import annotations


class QuoteError(Exception):
    """Base class. ``code`` is the stable machine-readable error name."""

    code = "quote_error"
    retryable = False
    public_message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class ValidationFailed(QuoteError):
    code = "validation_error"
    public_message = "Some fields need your attention"

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()) or None)
        self.errors = errors


class LookupUnavailable(QuoteError):
    code = "lookup_unavailable"
    retryable = True
    public_message = "Property data is unavailable for this address"


class PredictionFailed(QuoteError):
    code = "prediction_failed"
    retryable = True
    public_message = "We couldn't generate your quote. Please try again."


class PersistenceDegraded(QuoteError):
    """A best-effort lead patch that was given up on."""

    code = "persistence_degraded"
    retryable = True
    public_message = "Your answers could not be saved"

    def __init__(self, lead_id: str, fields: dict[str, object]) -> None:
        super().__init__(f"Patch for lead {lead_id} dropped: {', '.join(sorted(fields))}")
        self.lead_id = lead_id
        self.fields = fields


class NotFound(QuoteError):
    code = "lead_not_found"
    public_message = "Lead not found"


class Unauthorized(QuoteError):
    code = "unauthorized"
    public_message = "Admin login required"


class PreconditionFailed(QuoteError):
    code = "precondition_failed"
    public_message = "This lead is not ready for that step"
