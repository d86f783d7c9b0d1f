"""Generative agent: prompt, call, extract, validate, retry with feedback.

Every specialized agent pairs a system prompt with a declared output shape.
``generate`` submits the accumulated prompt, parses JSON out of the response
and validates it. Invalid output is fed back to the model as an error report
appended to the prompt, so each retry sees the full history of its mistakes.

Attempt outcomes:

    valid         -> return the validated value
    invalid/parse -> append an error report, try again (schema or model checks)
    BackendError  -> consume the attempt, try again (no report)
    cancellation  -> propagate immediately
    budget spent  -> ExhaustedRetriesError
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import ValidationError as PydanticValidationError

from dnd_forge.core.exceptions import (
    BackendError,
    CancellationError,
    ExhaustedRetriesError,
    ValidationError,
)
from dnd_forge.core.logging import get_logger
from dnd_forge.schema.shapes import Shape, is_array
from dnd_forge.schema.validator import ValidationIssue, format_issues, to_constraint, validate


if TYPE_CHECKING:
    from dnd_forge.backends.base import GenerationBackend
    from dnd_forge.core.cancellation import CancellationToken


logger = get_logger(__name__)

DEFAULT_RETRIES = 3

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


# =============================================================================
# JSON Extraction
# =============================================================================


def extract_json(text: str) -> Any:
    """Parse the first JSON value out of a model response.

    Tolerates markdown code fences and prose around the payload.

    Args:
        text: Raw response text.

    Returns:
        The parsed JSON value.

    Raises:
        ValidationError: If no JSON value can be found.
    """
    stripped = text.strip()
    if not stripped:
        raise ValidationError("Empty response")

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    for match in _FENCE_PATTERN.finditer(stripped):
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            continue

    decoder = json.JSONDecoder()
    starts = [index for index in (stripped.find("{"), stripped.find("[")) if index >= 0]
    for start in sorted(starts):
        try:
            value, _ = decoder.raw_decode(stripped[start:])
            return value
        except json.JSONDecodeError:
            continue

    raise ValidationError("Response did not contain valid JSON")


def model_issues(exc: PydanticValidationError) -> list[ValidationIssue]:
    """Convert pydantic errors into validator issues keyed by field location."""
    return [ValidationIssue(tuple(error["loc"]), error["msg"]) for error in exc.errors()]


# =============================================================================
# Attempt History
# =============================================================================


@dataclass(frozen=True)
class AttemptHistory:
    """Inputs of the next attempt.

    Attributes:
        system_prompt: The agent's instructions.
        context_text: Serialized task context.
        issues: One joined issue string per earlier invalid attempt.
    """

    system_prompt: str
    context_text: str
    issues: tuple[str, ...] = ()

    @property
    def prompt(self) -> str:
        """Render the full prompt submitted for the next attempt."""
        parts = [f"{self.system_prompt}\n\nTask Context:\n{self.context_text}"]
        for issue in self.issues:
            parts.append(
                "\n\nERROR: Your previous response was invalid. \n"
                f"Issues: {issue}\n\n"
                "Please regenerate the JSON to fix these specific errors."
            )
        return "".join(parts)

    def with_issue(self, issue: str) -> AttemptHistory:
        return replace(self, issues=(*self.issues, issue))


# =============================================================================
# Agent
# =============================================================================


class GenerativeAgent:
    """Base class for schema-validated generation.

    Subclasses set ``system_prompt`` and ``output_shape`` and may override
    ``post_process``.

    Attributes:
        backend: Text generation backend.
        retries: Default retry budget (attempts = retries + 1).
    """

    name: ClassVar[str] = "agent"
    system_prompt: ClassVar[str] = "You are a helpful AI assistant."
    output_shape: ClassVar[Shape]

    def __init__(self, backend: GenerationBackend, *, retries: int = DEFAULT_RETRIES) -> None:
        """Initialize the agent.

        Args:
            backend: Text generation backend.
            retries: Default retry budget.
        """
        self.backend = backend
        self.retries = retries

    def post_process(self, value: Any) -> Any:
        """Transform a validated value before it is returned."""
        return value

    def _coerce_shape(self, value: Any) -> Any:
        if is_array(self.output_shape) and isinstance(value, dict):
            logger.warning("Wrapped single object in array to match output shape", agent=self.name)
            return [value]
        return value

    async def generate(
        self,
        context: Any,
        *,
        retries: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> Any:
        """Generate a validated value for ``context``.

        Args:
            context: JSON-serializable task context.
            retries: Retry budget override.
            cancel: Cancellation token threaded into the backend.

        Returns:
            The validated (and post-processed) value.

        Raises:
            ExhaustedRetriesError: If no attempt produced valid output.
            CancellationError: If the run was cancelled.
        """
        budget = self.retries if retries is None else retries
        attempts = budget + 1
        constraint = to_constraint(self.output_shape)
        history = AttemptHistory(
            system_prompt=self.system_prompt,
            context_text=json.dumps(context, indent=2, default=str),
        )
        last_error: str | None = None

        for attempt in range(1, attempts + 1):
            if cancel is not None:
                cancel.raise_if_cancelled(self.name)
            logger.info("Agent generation attempt", agent=self.name, attempt=attempt, attempts=attempts)

            try:
                text = await self.backend.call(history.prompt, constraint, cancel)
                value = self._coerce_shape(extract_json(text))
                result = validate(self.output_shape, value)
                if not result.success:
                    raise ValidationError(
                        "Output failed schema validation",
                        issues=list(result.issues),
                    )
                try:
                    output = self.post_process(result.value)
                except PydanticValidationError as exc:
                    raise ValidationError("Output rejected by the data model", issues=model_issues(exc)) from exc
            except (CancellationError, asyncio.CancelledError):
                raise
            except ValidationError as exc:
                issues = format_issues(exc.issues) if exc.issues else exc.message
                last_error = f"Validation Error: {issues}"
                logger.warning("Agent output invalid", agent=self.name, attempt=attempt, issues=issues)
                history = history.with_issue(issues)
                continue
            except BackendError as exc:
                last_error = str(exc)
                logger.warning("Agent backend call failed", agent=self.name, attempt=attempt, error=last_error)
                continue

            logger.info("Agent generation succeeded", agent=self.name, attempt=attempt)
            return output

        raise ExhaustedRetriesError(
            f"{self.name} failed after {attempts} attempts",
            attempts=attempts,
            last_error=last_error,
        )


__all__ = ["GenerativeAgent", "AttemptHistory", "extract_json", "model_issues", "DEFAULT_RETRIES"]
