"""Best-effort extraction of structure from free-form model text.

Reasoning-model answers are prose. The extractors here pull out steps,
metric scores, named sections, risks and ``<Thought>`` blocks using simple
textual heuristics. Every extractor raises ``ExtractionError`` when the
text does not contain what it looks for, instead of guessing a default;
``evaluate_reasoning`` collects the per-field outcomes in ``FieldResult``
values so one missing field never hides the others.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from deepseek_kit.errors import ExtractionError

logger = logging.getLogger(__name__)

_STEP_START_RE = re.compile(r"^\s*(?:\d|(?:First|Next|Then|Finally)\b)")

_SECTION_NAMES = (
    "Strengths:",
    "Weaknesses:",
    "Suggestions:",
    "Examples:",
    "Overall:",
    "Risks:",
    "Recommendation:",
)

_BULLETS = ("- ", "• ", "* ")


class QualityMetric(StrEnum):
    """Reasoning quality dimensions and their label in evaluator output."""

    LOGICAL_COHERENCE = "Logical Coherence"
    COMPLETENESS = "Completeness"
    ACCURACY = "Accuracy"
    CLARITY = "Clarity"
    DEPTH = "Depth of Analysis"
    RELEVANCE = "Relevance"
    EFFICIENCY = "Efficiency"
    CREATIVITY = "Creativity"

    @property
    def weight(self) -> float:
        return _METRIC_WEIGHTS[self]


_METRIC_WEIGHTS = {
    QualityMetric.LOGICAL_COHERENCE: 0.20,
    QualityMetric.COMPLETENESS: 0.15,
    QualityMetric.ACCURACY: 0.20,
    QualityMetric.CLARITY: 0.15,
    QualityMetric.DEPTH: 0.10,
    QualityMetric.RELEVANCE: 0.10,
    QualityMetric.EFFICIENCY: 0.05,
    QualityMetric.CREATIVITY: 0.05,
}


class RiskSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Risk(BaseModel):
    """A risk line found under a ``Risks:`` heading."""

    description: str
    severity: RiskSeverity = Field(default=RiskSeverity.LOW)


# ── Extractors ────────────────────────────────────────────────


def extract_steps(text: str) -> list[str]:
    """Split reasoning into steps.

    A step starts at a line beginning with a digit or with "First", "Next",
    "Then" or "Finally"; following lines are continuation text. Text before
    the first marker is ignored. When no marker is found the whole text is a
    single step.

    Raises:
        ExtractionError: If the text is blank.
    """
    if not text.strip():
        raise ExtractionError("No text to extract steps from")

    steps: list[list[str]] = []
    for line in text.splitlines():
        stripped = line.strip()
        if _STEP_START_RE.match(line):
            steps.append([stripped])
        elif steps and stripped:
            steps[-1].append(stripped)

    if not steps:
        return [text.strip()]
    return [" ".join(parts) for parts in steps]


def extract_score(metric: str, text: str) -> float:
    """Find a 0-100 score for ``metric`` and return it scaled to 0-1.

    Tries, in order: ``<metric> ... N/100``, ``<metric> ... Score ... N``
    and ``<metric> ... N%`` (case-insensitive, within one line).

    Raises:
        ExtractionError: If no pattern matches.
    """
    name = re.escape(str(metric))
    patterns = (
        rf"{name}.*?(\d+)/100",
        rf"{name}.*?Score.*?(\d+)",
        rf"{name}.*?(\d+)%",
    )
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return int(match.group(1)) / 100.0
    raise ExtractionError(f"No score found for {metric}")


def extract_section(name: str, text: str) -> str:
    """Return the body of the ``<name>:`` section up to the next known heading.

    Raises:
        ExtractionError: If the heading is absent.
    """
    match = re.search(re.escape(f"{name}:"), text, re.IGNORECASE)
    if match is None:
        raise ExtractionError(f"Section {name!r} not found")

    remaining = text[match.end():]
    end = len(remaining)
    lowered = remaining.lower()
    for heading in _SECTION_NAMES:
        index = lowered.find(heading.lower())
        if index >= 0:
            end = min(end, index)
    return remaining[:end].strip()


def extract_list(name: str, text: str) -> list[str]:
    """Return the bullet items of the ``<name>:`` section."""
    items = []
    for line in extract_section(name, text).splitlines():
        line = line.strip()
        if not line.startswith(_BULLETS):
            continue
        items.append(line[2:].strip())
    return items


def _severity(line: str) -> RiskSeverity:
    lowered = line.lower()
    if "critical" in lowered or "severe" in lowered:
        return RiskSeverity.CRITICAL
    if "high" in lowered:
        return RiskSeverity.HIGH
    if "medium" in lowered or "moderate" in lowered:
        return RiskSeverity.MEDIUM
    return RiskSeverity.LOW


def extract_risks(text: str) -> list[Risk]:
    """Collect the lines mentioning a risk after the ``Risks:`` heading.

    Raises:
        ExtractionError: If there is no ``Risks:`` heading.
    """
    index = text.find("Risks:")
    if index < 0:
        raise ExtractionError("No 'Risks:' section found")

    risks = []
    for line in text[index + len("Risks:"):].splitlines():
        line = line.strip()
        if line and "risk" in line.lower():
            risks.append(Risk(description=line, severity=_severity(line)))
    return risks


def extract_thought(text: str) -> str:
    """Return the text between ``<Thought>`` and ``</Thought>``.

    Raises:
        ExtractionError: If either tag is missing or they are out of order.
    """
    start = text.find("<Thought>")
    end = text.find("</Thought>")
    if start < 0 or end < 0 or end < start:
        raise ExtractionError("No <Thought> block found")
    return text[start + len("<Thought>"):end].strip()


# ── Aggregate evaluation ──────────────────────────────────────


@dataclass(frozen=True)
class FieldResult:
    """Outcome of one extraction: a value or the reason it failed."""

    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def capture(cls, extractor: Callable[..., Any], *args: Any) -> FieldResult:
        try:
            return cls(value=extractor(*args))
        except ExtractionError as e:
            return cls(error=str(e))


@dataclass
class ReasoningEvaluation:
    """Per-field extraction results for an evaluator's answer."""

    scores: dict[QualityMetric, FieldResult] = field(default_factory=dict)
    strengths: FieldResult = field(default_factory=FieldResult)
    weaknesses: FieldResult = field(default_factory=FieldResult)
    suggestions: FieldResult = field(default_factory=FieldResult)
    thought: FieldResult = field(default_factory=FieldResult)

    @property
    def overall_score(self) -> float | None:
        """Weighted mean over the metrics that parsed, or None if none did."""
        parsed = {m: r.value for m, r in self.scores.items() if r.ok}
        if not parsed:
            return None
        total_weight = sum(m.weight for m in parsed)
        return sum(score * m.weight for m, score in parsed.items()) / total_weight

    @property
    def missing(self) -> list[str]:
        """Names of the fields that could not be extracted."""
        names = [str(m) for m, r in self.scores.items() if not r.ok]
        for name in ("strengths", "weaknesses", "suggestions", "thought"):
            if not getattr(self, name).ok:
                names.append(name)
        return names


def evaluate_reasoning(
    text: str, metrics: Iterable[QualityMetric] | None = None
) -> ReasoningEvaluation:
    """Extract scores, lists and the thought block from an evaluation text."""
    selected = list(metrics) if metrics is not None else list(QualityMetric)
    evaluation = ReasoningEvaluation(
        scores={m: FieldResult.capture(extract_score, m, text) for m in selected},
        strengths=FieldResult.capture(extract_list, "Strengths", text),
        weaknesses=FieldResult.capture(extract_list, "Weaknesses", text),
        suggestions=FieldResult.capture(extract_list, "Suggestions", text),
        thought=FieldResult.capture(extract_thought, text),
    )
    if evaluation.missing:
        logger.debug("Evaluation fields not found: %s", ", ".join(evaluation.missing))
    return evaluation
