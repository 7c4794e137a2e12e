"""Turn captured `claude --output-format stream-json` text into one result record."""

from __future__ import annotations

import json
import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import NoResultFound
from .models import ExecutionMetrics

ERROR_MARKER = "Error:"


class ResultEvent(BaseModel):
    """The terminal `type == "result"` event; other event shapes stay opaque.

    Every field is read leniently: a missing or malformed value falls back to its
    default instead of failing validation, so the last result line always wins.
    """

    model_config = ConfigDict(extra="allow")

    type: Literal["result"]
    subtype: Any | None = None
    is_error: bool = False
    result: Any | None = None
    structured_output: Any | None = None
    duration_ms: float = 0
    num_turns: int = 0
    total_cost_usd: float = 0.0
    permission_denials: int = Field(default=0)
    session_id: Any | None = None

    @field_validator("is_error", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return value is True

    @field_validator("duration_ms", "total_cost_usd", mode="before")
    @classmethod
    def _float_or_zero(cls, value: Any) -> float:
        number = _finite_number(value)
        return 0.0 if number is None else number

    @field_validator("num_turns", mode="before")
    @classmethod
    def _int_or_zero(cls, value: Any) -> int:
        number = _finite_number(value)
        return 0 if number is None else int(number)

    @field_validator("permission_denials", mode="before")
    @classmethod
    def _count_denials(cls, value: Any) -> int:
        # Newer CLI builds emit a list of denied tool calls, older ones a count.
        if isinstance(value, list):
            return len(value)
        number = _finite_number(value)
        return 0 if number is None else int(number)

    @property
    def payload(self) -> Any:
        if self.structured_output is not None:
            return self.structured_output
        return self.result

    def metrics(self) -> ExecutionMetrics:
        return ExecutionMetrics(
            duration_ms=self.duration_ms,
            num_turns=self.num_turns,
            total_cost_usd=self.total_cost_usd,
            permission_denials=self.permission_denials,
        )


def _finite_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def decode_events(raw: str) -> list[Any]:
    """Decode every JSON line; non-JSON diagnostic lines are dropped."""
    events: list[Any] = []
    # Only "\n" ends a record; U+2028 and friends may appear raw inside strings.
    for line in raw.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            events.append(json.loads(stripped))
        except json.JSONDecodeError:
            continue
    return events


def find_result(raw: str) -> ResultEvent:
    """Return the last result event in the stream.

    Raises NoResultFound when none is present. If the raw text carries the CLI's
    `Error:` marker, the whole text becomes the failure detail.
    """
    for event in reversed(decode_events(raw)):
        if not isinstance(event, dict) or event.get("type") != "result":
            continue
        return ResultEvent.model_validate(event)

    if ERROR_MARKER in raw:
        raise NoResultFound(f"Claude execution error: {raw}")
    raise NoResultFound("No result message found in Claude output")
