"""HVAC configuration predictor backed by Claude.

Stateless: property snapshot plus optional homeowner hints in, one
HVACPrediction out. The sizing guidance lives in the system prompt
(hvac_quote/prompts/hvac_system.txt); the structured answer comes back through
a forced tool call so the six equipment fields are always machine-readable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import anthropic
import structlog
from pydantic import ValidationError

from hvac_quote.errors import PredictionFailed
from hvac_quote.models.contracts import HVACPrediction, PredictionHints, PropertySnapshot

log = structlog.get_logger("predictor")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

TOOL_NAME = "record_hvac_prediction"

REQUIRED_FIELDS = (
    "number_of_odu",
    "type_of_odu",
    "odu_size",
    "number_of_idu",
    "type_of_idu",
    "idu_size",
)

PREDICTION_TOOL: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": "Record the proposed heat pump configuration and cost estimate.",
    "input_schema": {
        "type": "object",
        "properties": {
            "number_of_odu": {"type": "integer", "description": "Number of outdoor units"},
            "type_of_odu": {
                "type": "string",
                "description": "Single, Multi, Duct, or a combination like Multi+Single",
            },
            "odu_size": {
                "type": "string",
                "description": "ODU size(s) in k BTU, e.g. '42' or '36+27'",
            },
            "number_of_idu": {"type": "integer", "description": "Number of indoor units"},
            "type_of_idu": {"type": "string", "description": "Head, AHU, or Head+AHU"},
            "idu_size": {
                "type": "string",
                "description": "Comma-separated IDU sizes in k BTU, e.g. '12,9,9,9'",
            },
            "electrical_work_estimate": {
                "type": "number",
                "description": "Electrical work estimate in USD",
            },
            "hvac_work_estimate": {"type": "number", "description": "HVAC work estimate in USD"},
            "confidence": {"type": "string", "enum": ["high", "medium", "low"]},
            "reasoning": {"type": "string", "description": "Two or three sentences"},
        },
        "required": list(REQUIRED_FIELDS),
    },
}

_HVAC_FEATURE_MARKERS = ("hvac", "heating", "cooling", "ac", "air")


class Predictor(Protocol):
    async def predict_configuration(
        self, prop: PropertySnapshot, hints: PredictionHints | None = None
    ) -> HVACPrediction: ...


_system_prompt_cache: str | None = None


def load_prompt() -> str:
    """Load the HVAC sizing system prompt."""
    global _system_prompt_cache  # noqa: PLW0603
    if _system_prompt_cache is None:
        _system_prompt_cache = (PROMPTS_DIR / "hvac_system.txt").read_text()
    return _system_prompt_cache


def build_user_message(prop: PropertySnapshot, hints: PredictionHints | None = None) -> str:
    """Render the property and homeowner hints as the user turn."""
    lines = ["# Property Information", f"Address: {prop.formatted_address}"]
    locality = " ".join(p for p in (prop.state, prop.zip_code) if p)
    if prop.city or locality:
        lines.append(f"City: {', '.join(p for p in (prop.city, locality) if p)}")
    if prop.property_type:
        lines.append(f"Property Type: {prop.property_type}")
    if prop.square_footage:
        lines.append(f"Square Footage: {prop.square_footage:,} sq ft")
    if prop.bedrooms:
        lines.append(f"Bedrooms: {prop.bedrooms}")
    if prop.bathrooms:
        lines.append(f"Bathrooms: {prop.bathrooms:g}")
    if prop.year_built:
        lines.append(f"Year Built: {prop.year_built}")
    if prop.lot_size:
        lines.append(f"Lot Size: {prop.lot_size:,} sq ft")

    hvac_features = [
        f"{key}: {value}"
        for key, value in prop.features.items()
        if any(marker in key.lower() for marker in _HVAC_FEATURE_MARKERS)
    ]
    if hvac_features:
        lines.append("")
        lines.append("## Existing HVAC Features")
        lines.extend(hvac_features)

    if hints and (hints.has_existing_ductwork is not None or hints.number_of_rooms is not None):
        lines.append("")
        lines.append("## Additional Information from Homeowner")
        if hints.has_existing_ductwork is True:
            lines.append(
                "The homeowner confirmed the home HAS existing ductwork. "
                "Design a ducted system (Duct ODU + AHU IDU)."
            )
        elif hints.has_existing_ductwork is False:
            lines.append(
                "The homeowner confirmed the home does NOT have existing ductwork. "
                "Design a ductless mini-split system (Multi/Single ODU + Head IDU)."
            )
        if hints.number_of_rooms is not None:
            lines.append(
                f"The homeowner wants {hints.number_of_rooms} rooms/zones heated and cooled. "
                "Use this as the number of indoor units."
            )

    lines.append("")
    lines.append("## Task")
    lines.append(
        f"Predict the optimal configuration for this property and record it with {TOOL_NAME}."
    )
    return "\n".join(lines)


def extract_prediction(response: anthropic.types.Message) -> dict[str, Any]:
    """Pull the tool input out of the response, or {} when there is none."""
    for block in response.content:
        if block.type == "tool_use" and block.name == TOOL_NAME:
            return block.input  # type: ignore[return-value]
    return {}


def parse_prediction(data: dict[str, Any]) -> HVACPrediction:
    """Validate tool output; any missing mandatory field is a failed prediction."""
    missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
    if missing:
        raise PredictionFailed(f"Incomplete prediction, missing: {', '.join(missing)}")
    try:
        return HVACPrediction.model_validate(data)
    except ValidationError as exc:
        raise PredictionFailed(f"Malformed prediction: {exc.error_count()} invalid field(s)") from exc


class ClaudePredictor:
    """Calls the Messages API with a forced tool call."""

    def __init__(self, api_key: str, model: str, max_tokens: int = 2048) -> None:
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY is not configured")
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens

    async def predict_configuration(
        self, prop: PropertySnapshot, hints: PredictionHints | None = None
    ) -> HVACPrediction:
        log.info(
            "prediction_start",
            formatted_address=prop.formatted_address,
            has_existing_ductwork=hints.has_existing_ductwork if hints else None,
            number_of_rooms=hints.number_of_rooms if hints else None,
        )
        try:
            response = await self._client.messages.create(  # type: ignore[call-overload]
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=0,
                system=load_prompt(),
                tools=[PREDICTION_TOOL],
                tool_choice={"type": "tool", "name": TOOL_NAME},
                messages=[{"role": "user", "content": build_user_message(prop, hints)}],
            )
        except anthropic.RateLimitError as e:
            log.warning("prediction_rate_limited")
            raise PredictionFailed("Claude rate limited") from e
        except anthropic.APIStatusError as e:
            log.error("prediction_api_error", status=e.status_code)
            raise PredictionFailed(f"Claude API error ({e.status_code})") from e
        except anthropic.APIConnectionError as e:
            log.error("prediction_connection_error", error=str(e))
            raise PredictionFailed("Claude connection error") from e

        data = extract_prediction(response)
        if not data:
            log.warning("prediction_no_tool_call", stop_reason=response.stop_reason)
            raise PredictionFailed(f"Claude did not call {TOOL_NAME}")

        prediction = parse_prediction(data)
        log.info(
            "prediction_complete",
            type_of_odu=prediction.type_of_odu,
            number_of_idu=prediction.number_of_idu,
            confidence=prediction.confidence,
        )
        return prediction
