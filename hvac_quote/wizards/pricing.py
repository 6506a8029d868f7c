"""Customer-facing cost breakdown for one predicted configuration."""

from __future__ import annotations

from hvac_quote.models.contracts import CostBreakdown, HVACPrediction

PERMIT_FEE = 450.0
REBATE_THRESHOLD = 6000.0
HIGH_REBATE = 3500.0
STANDARD_REBATE = 2500.0


def compute_cost_breakdown(prediction: HVACPrediction) -> CostBreakdown:
    """Price a prediction; a missing estimate counts as zero."""
    electrical = prediction.electrical_work_estimate or 0.0
    hvac = prediction.hvac_work_estimate or 0.0
    subtotal = electrical + hvac + PERMIT_FEE
    rebate = HIGH_REBATE if subtotal > REBATE_THRESHOLD else STANDARD_REBATE
    return CostBreakdown(
        electrical=electrical,
        hvac=hvac,
        permit_fee=PERMIT_FEE,
        subtotal=subtotal,
        rebate=rebate,
        total=subtotal - rebate,
    )
