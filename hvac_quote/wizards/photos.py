"""Photo submission wizard.

After a quote, the homeowner photographs their equipment so the install can
be confirmed. The flow is a fixed list of steps with two yes/no gates; a gate
answered "no" skips the photo step right after it, in both directions.

Each picked file uploads on its own task. An upload in flight never blocks
navigation; a failed one blocks only a required step. Uploads are never
retried automatically; picking the file again re-uploads it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

import httpx
import structlog

from hvac_quote.models.contracts import UploadStatus
from hvac_quote.wizards.client import ApiError, QuoteApiClient

logger = structlog.get_logger()

StepKind = Literal["intro", "photo", "gate", "additional", "done"]

PHOTO_REQUIRED = "Please upload a photo to continue"
UPLOAD_FAILED = "This photo didn't upload. Please choose it again to retry"
ANSWER_REQUIRED = "Please select an option"


@dataclass(frozen=True)
class PhotoStep:
    id: str
    kind: StepKind
    title: str
    progress_label: str = ""
    slot_key: str | None = None
    required: bool = False


STEPS: tuple[PhotoStep, ...] = (
    PhotoStep("intro", "intro", "Help Us See Your Home", progress_label="Intro"),
    PhotoStep(
        "mechanical-room",
        "photo",
        "Your Mechanical Room",
        progress_label="Furnace",
        slot_key="mechanical-room",
        required=True,
    ),
    PhotoStep("second-furnace-q", "gate", "Do you have a second furnace or air handler?"),
    PhotoStep(
        "second-furnace-photo",
        "photo",
        "Second Furnace",
        slot_key="second-furnace",
        required=True,
    ),
    PhotoStep(
        "electrical-panel",
        "photo",
        "Your Electrical Panel",
        progress_label="Electrical",
        slot_key="electrical-panel",
        required=True,
    ),
    PhotoStep(
        "main-breaker",
        "photo",
        "Main Breaker Close-Up",
        progress_label="Breaker",
        slot_key="main-breaker",
        required=True,
    ),
    PhotoStep("sub-panel-q", "gate", "Do you have any additional electrical sub-panels?"),
    PhotoStep(
        "sub-panel-photo",
        "photo",
        "Additional Panel",
        slot_key="sub-panel",
        required=True,
    ),
    PhotoStep(
        "outdoor-unit",
        "photo",
        "Outdoor Unit or Installation Location",
        progress_label="Outdoor",
        slot_key="outdoor-unit",
        required=True,
    ),
    PhotoStep(
        "ac-nameplate",
        "photo",
        "AC / Heat Pump Nameplate",
        progress_label="Nameplate",
        slot_key="ac-nameplate",
    ),
    PhotoStep("additional", "additional", "Anything Else?", progress_label="Extras"),
    PhotoStep("done", "done", "Photos Submitted!"),
)


@dataclass(frozen=True)
class Transition:
    next: int
    prev: int


def _gated_off(steps: Sequence[PhotoStep], answers: Mapping[str, bool], index: int) -> bool:
    """True for a photo step whose preceding gate was not answered yes."""
    if index <= 0 or steps[index].kind != "photo":
        return False
    gate = steps[index - 1]
    return gate.kind == "gate" and answers.get(gate.id) is not True


def build_transitions(
    steps: Sequence[PhotoStep], answers: Mapping[str, bool]
) -> dict[int, Transition]:
    """Forward and backward targets for every step index.

    A gate answered no jumps two steps forward; stepping back onto its
    dependent photo step lands on the gate instead.
    """
    last = len(steps) - 1
    table: dict[int, Transition] = {}
    for index, step in enumerate(steps):
        stride = 2 if step.kind == "gate" and answers.get(step.id) is False else 1
        prev = max(index - 1, 0)
        if _gated_off(steps, answers, prev):
            prev -= 1
        table[index] = Transition(next=min(index + stride, last), prev=prev)
    return table


def progress_steps(steps: Sequence[PhotoStep]) -> list[PhotoStep]:
    return [step for step in steps if step.progress_label]


def progress_index(steps: Sequence[PhotoStep], index: int) -> int:
    """Position in the progress bar: nearest labeled step at or before ``index``."""
    labeled = [step.id for step in progress_steps(steps)]
    for i in range(index, -1, -1):
        if steps[i].progress_label:
            return labeled.index(steps[i].id)
    return 0


@dataclass(frozen=True)
class PhotoFile:
    data: bytes
    filename: str = "photo.jpg"
    content_type: str = "image/jpeg"


class PhotoWizard:
    def __init__(
        self,
        client: QuoteApiClient,
        lead_id: str,
        steps: Sequence[PhotoStep] = STEPS,
    ) -> None:
        self.client = client
        self.lead_id = lead_id
        self.steps = tuple(steps)
        self.index = 0
        self.answers: dict[str, bool] = {}
        self.files: dict[str, PhotoFile] = {}
        self.status: dict[str, UploadStatus] = {}
        self.errors: dict[str, str] = {}
        self.additional_slots: list[str] = []
        self._next_additional = 0
        self._generation: dict[str, int] = {}
        self._uploads: set[asyncio.Task[None]] = set()

    @property
    def current(self) -> PhotoStep:
        return self.steps[self.index]

    @property
    def is_done(self) -> bool:
        return self.current.kind == "done"

    @property
    def progress(self) -> tuple[int, int]:
        """(active label index, number of labels) for the progress bar."""
        return progress_index(self.steps, self.index), len(progress_steps(self.steps))

    def answer(self, yes: bool) -> None:
        if self.current.kind != "gate":
            raise ValueError(f"Step {self.current.id!r} is not a yes/no question")
        self.answers[self.current.id] = yes
        self.errors.pop(self.current.id, None)

    def next(self) -> int:
        self.errors = {}
        step = self.current
        if step.kind == "photo" and step.required:
            assert step.slot_key is not None
            if step.slot_key not in self.files:
                self.errors[step.slot_key] = PHOTO_REQUIRED
                return self.index
            if self.status.get(step.slot_key) == "error":
                self.errors[step.slot_key] = UPLOAD_FAILED
                return self.index
        if step.kind == "gate" and step.id not in self.answers:
            self.errors[step.id] = ANSWER_REQUIRED
            return self.index
        self.index = build_transitions(self.steps, self.answers)[self.index].next
        return self.index

    def back(self) -> int:
        self.errors = {}
        self.index = build_transitions(self.steps, self.answers)[self.index].prev
        return self.index

    # --- uploads ---

    def select_file(self, slot_key: str, file: PhotoFile) -> asyncio.Task[None]:
        """Attach a file to a slot and start uploading it in the background."""
        self.files[slot_key] = file
        self.errors.pop(slot_key, None)
        self.status[slot_key] = "uploading"
        generation = self._generation.get(slot_key, 0) + 1
        self._generation[slot_key] = generation
        task = asyncio.create_task(self._upload(slot_key, file, generation))
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)
        return task

    def clear_file(self, slot_key: str) -> None:
        self.files.pop(slot_key, None)
        self.status[slot_key] = "idle"
        # Orphan any in-flight upload for this slot.
        self._generation[slot_key] = self._generation.get(slot_key, 0) + 1

    async def _upload(self, slot_key: str, file: PhotoFile, generation: int) -> None:
        outcome: UploadStatus
        try:
            await self.client.upload_photo(
                self.lead_id,
                slot_key,
                file.data,
                filename=file.filename,
                content_type=file.content_type,
            )
            outcome = "success"
        except (ApiError, httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "photo_upload_failed",
                lead_id=self.lead_id,
                slot_key=slot_key,
                error_type=type(exc).__name__,
            )
            outcome = "error"
        if self._generation.get(slot_key) == generation:
            self.status[slot_key] = outcome
        else:
            logger.debug("photo_upload_superseded", slot_key=slot_key)

    async def wait_for_uploads(self) -> None:
        while self._uploads:
            await asyncio.gather(*list(self._uploads))

    # --- additional photos ---

    def add_additional_slot(self) -> str:
        slot_key = f"additional-{self._next_additional}"
        self._next_additional += 1
        self.additional_slots.append(slot_key)
        self.status[slot_key] = "idle"
        return slot_key

    def select_additional_file(self, slot_key: str, file: PhotoFile) -> asyncio.Task[None]:
        if slot_key not in self.additional_slots:
            raise KeyError(slot_key)
        return self.select_file(slot_key, file)

    def remove_additional_slot(self, slot_key: str) -> None:
        self.additional_slots.remove(slot_key)
        self.clear_file(slot_key)
        self.status.pop(slot_key, None)
