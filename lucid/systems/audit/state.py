"""
Lucid — Decision State Store

Holds the decision currently under audit: input vector, output vector,
and confidence. Written by the manual editor and by the simulator; read
as by-value snapshots by everything else.

Updates are all-or-nothing. A rejected edit leaves the prior state intact.
"""

from __future__ import annotations

import copy
import json
import math
from typing import Any

import structlog

from lucid.systems.audit.errors import InvalidUserInput
from lucid.systems.audit.types import DecisionTriple

logger = structlog.get_logger()


def _parse_object(text: str, field: str) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise InvalidUserInput(f"{field} is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise InvalidUserInput(f"{field} must be a JSON object, got {type(value).__name__}")
    return value


def _parse_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidUserInput(f"confidence is not a number: {value!r}") from exc
    if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
        raise InvalidUserInput(f"confidence must be within [0, 1], got {value!r}")
    return confidence


def parse_edit(input_text: str, output_text: str, confidence: Any) -> DecisionTriple:
    """Parse manual editor text into a triple, or raise InvalidUserInput."""
    return DecisionTriple(
        input=_parse_object(input_text, "input"),
        output=_parse_object(output_text, "output"),
        confidence=_parse_confidence(confidence),
    )


class DecisionStateStore:
    """Single-owner holder of the current decision triple."""

    def __init__(
        self,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        confidence: float,
    ) -> None:
        self._input = copy.deepcopy(input_data)
        self._output = copy.deepcopy(output_data)
        self._confidence = _parse_confidence(confidence)
        self._revision = 0

    @property
    def confidence(self) -> float:
        return self._confidence

    @property
    def input(self) -> dict[str, Any]:
        return copy.deepcopy(self._input)

    @property
    def output(self) -> dict[str, Any]:
        return copy.deepcopy(self._output)

    @property
    def revision(self) -> int:
        """Bumped on every accepted write."""
        return self._revision

    def snapshot(self) -> DecisionTriple:
        return DecisionTriple(
            input=copy.deepcopy(self._input),
            output=copy.deepcopy(self._output),
            confidence=self._confidence,
        )

    def replace(self, triple: DecisionTriple) -> None:
        self._input = copy.deepcopy(triple.input)
        self._output = copy.deepcopy(triple.output)
        self._confidence = triple.confidence
        self._revision += 1

    def update(
        self,
        input_data: dict[str, Any] | None = None,
        output_data: dict[str, Any] | None = None,
        confidence: float | None = None,
    ) -> None:
        """Partial write; omitted parts are kept."""
        next_confidence = self._confidence if confidence is None else _parse_confidence(confidence)
        if input_data is not None:
            self._input = copy.deepcopy(input_data)
        if output_data is not None:
            self._output = copy.deepcopy(output_data)
        self._confidence = next_confidence
        self._revision += 1

    def apply_edit(self, input_text: str, output_text: str, confidence: Any) -> DecisionTriple:
        """
        Apply a manual editor submission atomically.

        Raises InvalidUserInput without touching state if any part is malformed.
        """
        triple = parse_edit(input_text, output_text, confidence)
        self.replace(triple)
        logger.debug("decision_state_edited", revision=self._revision)
        return triple
