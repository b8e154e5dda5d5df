"""
Parsing and validation of reasoning-service output.

parse_analysis() never raises for bad model output. It returns a tagged
outcome (ParseOk | ParseErr) and the orchestrator turns ParseErr into a
low-confidence fallback result.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Union

from .common_types import Severity, Violation


_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)

PARSE_ERROR_TYPE = "PARSE_ERROR"
ANALYSIS_ERROR_TYPE = "ANALYSIS_ERROR"


@dataclass(frozen=True)
class ParsedAnalysis:
    """The judgement part of a response, before metadata is stamped."""
    compliant: bool
    score: float
    violations: tuple[Violation, ...]
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class ParseOk:
    analysis: ParsedAnalysis


@dataclass(frozen=True)
class ParseErr:
    reason: str
    raw_text: str = ""


ParseOutcome = Union[ParseOk, ParseErr]


def extract_json_text(text: str) -> str:
    """Pull the JSON object out of a reply, handling markdown fences."""
    stripped = text.strip()
    match = _FENCED_JSON.search(stripped)
    if match:
        return match.group(1).strip()
    if not stripped.startswith("{"):
        start, end = stripped.find("{"), stripped.rfind("}")
        if start != -1 and end > start:
            return stripped[start:end + 1]
    return stripped


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate(data: Any) -> str | None:
    """Structural check. Returns a reason string when invalid."""
    if not isinstance(data, dict):
        return "response is not a JSON object"
    if not isinstance(data.get("compliant"), bool):
        return "'compliant' must be a boolean"
    score = data.get("score")
    if not _is_number(score) or not math.isfinite(score):
        return "'score' must be a number"
    if not 0 <= score <= 100:
        return f"'score' out of range: {score}"
    violations = data.get("violations")
    if not isinstance(violations, list):
        return "'violations' must be a list"
    if not all(isinstance(v, dict) for v in violations):
        return "'violations' entries must be objects"
    recommendations = data.get("recommendations")
    if not isinstance(recommendations, list):
        return "'recommendations' must be a list"
    if not all(isinstance(r, str) for r in recommendations):
        return "'recommendations' entries must be strings"
    return None


def parse_analysis(text: str) -> ParseOutcome:
    """Parse raw model text into a tagged outcome."""
    try:
        data = json.loads(extract_json_text(text))
    except (json.JSONDecodeError, ValueError) as e:
        return ParseErr(reason=f"invalid JSON: {e}", raw_text=text)

    reason = _validate(data)
    if reason is not None:
        return ParseErr(reason=reason, raw_text=text)

    return ParseOk(ParsedAnalysis(
        compliant=data["compliant"],
        score=data["score"],
        violations=tuple(Violation.from_dict(v) for v in data["violations"]),
        recommendations=tuple(data["recommendations"]),
    ))


def fallback_analysis() -> ParsedAnalysis:
    """Safe result used when the model's answer could not be parsed."""
    return ParsedAnalysis(
        compliant=False,
        score=0,
        violations=(
            Violation(
                severity=Severity.HIGH,
                type=PARSE_ERROR_TYPE,
                description="Failed to parse analysis response",
                recommendation="Manual review required. The automated analysis could not complete.",
            ),
        ),
        recommendations=("Manually review this file for compliance issues",),
    )


def error_analysis(message: str) -> ParsedAnalysis:
    """Placeholder result for a batch item whose analysis failed outright."""
    return ParsedAnalysis(
        compliant=False,
        score=0,
        violations=(
            Violation(
                severity=Severity.HIGH,
                type=ANALYSIS_ERROR_TYPE,
                description=f"Analysis failed: {message}",
                recommendation="Re-run the analysis or review this file manually.",
            ),
        ),
        recommendations=("Manually review this file for compliance issues",),
    )
