"""Parse, validate and repair generated proofs.

The generation/validation flow is a bounded state machine::

    PARSING_RAW -> SCHEMA_CHECKED -> CROSS_REFERENCE_CHECKED -> ACCEPTED
         ^                 |                    |
         |                 v                    v
    REPAIR_REQUESTED <---- (any check failed, budget left)
                           (any check failed, budget spent) -> REJECTED

Each state runs one check. A failing check moves to REPAIR_REQUESTED
while repairs remain, otherwise to REJECTED. The repair budget is per
request: at most ``1 + repair_budget`` generation calls are made.
"""
import json
import re
from enum import Enum
from typing import Any, Iterator, List, Optional

import pydantic
import structlog

from proofrag import config
from proofrag.errors import (
    OutputValidationError,
    ParseError,
    ReferenceValidationError,
    SchemaValidationError,
    ValidationError,
)
from proofrag.models import Proof, VerificationStep
from proofrag.verify.generation import GenerationClient
from proofrag.verify.prompt_builder import build_repair_prompt

logger = structlog.get_logger()

FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
JSON_START_RE = re.compile(r"[\[{]")


class ValidationState(str, Enum):
    PARSING_RAW = "parsing_raw"
    SCHEMA_CHECKED = "schema_checked"
    CROSS_REFERENCE_CHECKED = "cross_reference_checked"
    ACCEPTED = "accepted"
    REPAIR_REQUESTED = "repair_requested"
    REJECTED = "rejected"


def _iter_json_values(text: str) -> Iterator[Any]:
    """Yield the top-level JSON arrays and objects embedded in ``text``."""
    decoder = json.JSONDecoder()
    position = 0
    while True:
        match = JSON_START_RE.search(text, position)
        if match is None:
            return
        try:
            value, end = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            position = match.start() + 1
            continue
        yield value
        position = end


def _as_records(value: Any) -> Optional[List[Any]]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict) and isinstance(value.get("steps"), list):
        return value["steps"]
    return None


def extract_records(raw: str) -> List[Any]:
    """Extract the list of step records from a model response.

    Accepts a bare JSON array, an object with a ``steps`` array, and either
    of those inside a fenced code block with surrounding prose. Arrays that
    hold objects win over stray arrays such as ``[1]`` in the prose.

    Raises:
        ParseError: If no such structure can be found
    """
    if not raw or not raw.strip():
        raise ParseError("Response was empty")

    candidates = [m.group(1) for m in FENCED_BLOCK_RE.finditer(raw)] + [raw]
    fallback = None

    for candidate in candidates:
        for value in _iter_json_values(candidate):
            records = _as_records(value)
            if records is None:
                continue
            if any(isinstance(record, dict) for record in records):
                return records
            if fallback is None:
                fallback = records

    if fallback is not None:
        return fallback

    raise ParseError(
        "Response does not contain a JSON array of step objects",
        problems=[f"response starts with: {raw.strip()[:120]!r}"],
    )


def check_schema(records: List[Any]) -> List[VerificationStep]:
    """Validate each record against the step schema.

    Raises:
        SchemaValidationError: Listing every record problem found
    """
    if not records:
        raise SchemaValidationError("Proof contains no steps")

    steps = []
    problems = []

    for index, record in enumerate(records):
        if not isinstance(record, dict):
            problems.append(f"record {index}: expected an object, got {type(record).__name__}")
            continue

        try:
            steps.append(VerificationStep.model_validate(record))
        except pydantic.ValidationError as e:
            label = f"record {index} (id={record.get('id')!r})"
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"]) or "step"
                problems.append(f"{label}: {location}: {error['msg']}")

    if problems:
        raise SchemaValidationError(
            f"{len(problems)} schema problem(s) in {len(records)} step(s)",
            problems=problems,
        )

    return steps


def check_references(
    steps: List[VerificationStep],
    strict_phase_order: bool = False,
) -> List[str]:
    """Check id uniqueness, dependency order and phase order.

    Returns:
        Advisory warnings (phase order problems when not strict)

    Raises:
        ReferenceValidationError: On duplicate ids, references to unknown,
            later or the same step, or (when strict) a phase going backwards
    """
    all_ids = {step.id for step in steps}
    seen = set()
    problems = []
    phase_problems = []
    highest_phase = None

    for position, step in enumerate(steps):
        if step.id in seen:
            problems.append(f"step {position}: duplicate id {step.id!r}")

        for dependency in step.dependencies or []:
            if dependency == step.id:
                problems.append(f"{step.id}: depends on itself")
            elif dependency not in seen:
                if dependency in all_ids:
                    problems.append(f"{step.id}: depends on later step {dependency!r}")
                else:
                    problems.append(f"{step.id}: depends on unknown step {dependency!r}")

        seen.add(step.id)

        phase = step.type.phase
        if highest_phase is not None and phase < highest_phase[0]:
            phase_problems.append(
                f"{step.id}: {step.type.value} step after {highest_phase[1]} step"
            )
        if highest_phase is None or phase > highest_phase[0]:
            highest_phase = (phase, step.type.value)

    if strict_phase_order:
        problems.extend(phase_problems)
        phase_problems = []

    if problems:
        raise ReferenceValidationError(
            f"{len(problems)} reference problem(s)",
            problems=problems,
        )

    return phase_problems


class ProofValidator:
    """Single-pass validator: raw text to Proof, or an OutputValidationError."""

    def __init__(self, strict_phase_order: Optional[bool] = None):
        self.strict_phase_order = (
            config.STRICT_PHASE_ORDER if strict_phase_order is None else strict_phase_order
        )

    def validate(self, raw: str) -> Proof:
        records = extract_records(raw)
        steps = check_schema(records)
        warnings = self.check_references(steps)
        return Proof(steps=tuple(steps), warnings=tuple(warnings))

    def check_references(self, steps: List[VerificationStep]) -> List[str]:
        warnings = check_references(steps, strict_phase_order=self.strict_phase_order)
        for warning in warnings:
            logger.warning("proof_phase_order_advisory", problem=warning)
        return warnings


class RepairLoop:
    """Drives generation and validation until ACCEPTED or REJECTED."""

    def __init__(
        self,
        generator: GenerationClient,
        validator: Optional[ProofValidator] = None,
        repair_budget: Optional[int] = None,
    ):
        self.generator = generator
        self.validator = validator or ProofValidator()
        self.repair_budget = config.REPAIR_BUDGET if repair_budget is None else repair_budget

        if self.repair_budget < 0:
            raise ValueError(f"repair_budget must not be negative, got {self.repair_budget}")

    async def run(self, prompt: str) -> Proof:
        """Generate and validate a proof for ``prompt``.

        Raises:
            ValidationError: Once the repair budget is exhausted
            ProviderFatalError: If generation fails (never repaired)
        """
        trace: List[ValidationState] = []
        attempts = 1
        raw = await self.generator.generate(prompt)

        state = ValidationState.PARSING_RAW
        records: List[Any] = []
        steps: List[VerificationStep] = []
        warnings: List[str] = []
        error: Optional[OutputValidationError] = None

        while True:
            trace.append(state)

            if state is ValidationState.ACCEPTED:
                logger.info("proof_accepted", attempts=attempts, step_count=len(steps))
                return Proof(steps=tuple(steps), attempts=attempts, warnings=tuple(warnings))

            if state is ValidationState.REJECTED:
                logger.error(
                    "proof_rejected",
                    attempts=attempts,
                    error_kind=error.kind,
                    problems=error.problems,
                )
                raise ValidationError(
                    f"Generated proof failed validation after {attempts} attempt(s): {error.message}",
                    attempts=attempts,
                    last_error=error,
                    trace=[s.value for s in trace],
                )

            if state is ValidationState.REPAIR_REQUESTED:
                logger.warning(
                    "proof_repair_requested",
                    attempt=attempts,
                    error_kind=error.kind,
                    problem_count=len(error.problems),
                )
                raw = await self.generator.generate(build_repair_prompt(prompt, raw, error.describe()))
                attempts += 1
                state = ValidationState.PARSING_RAW
                continue

            try:
                if state is ValidationState.PARSING_RAW:
                    records = extract_records(raw)
                    state = ValidationState.SCHEMA_CHECKED
                elif state is ValidationState.SCHEMA_CHECKED:
                    steps = check_schema(records)
                    state = ValidationState.CROSS_REFERENCE_CHECKED
                elif state is ValidationState.CROSS_REFERENCE_CHECKED:
                    warnings = self.validator.check_references(steps)
                    state = ValidationState.ACCEPTED
            except OutputValidationError as e:
                error = e
                state = self._after_failure(attempts)

    def _after_failure(self, attempts: int) -> ValidationState:
        if attempts <= self.repair_budget:
            return ValidationState.REPAIR_REQUESTED
        return ValidationState.REJECTED
