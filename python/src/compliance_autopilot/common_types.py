"""
Common types for compliance analysis.

Contains:
- Enums: Framework, Severity
- Dataclasses: AnalysisRequest, Violation, ResponseMetadata, AnalysisResponse
- Batch results: BatchSummary, BatchResult
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import ConfigurationError


class Framework(str, Enum):
    SOC2 = "soc2"
    GDPR = "gdpr"
    ISO27001 = "iso27001"

    @classmethod
    def parse(cls, value: "str | Framework") -> "Framework":
        """Parse a framework name, case-insensitively."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ConfigurationError(
            f"Invalid framework: {value}. Valid options: {valid}",
            context={"framework": value},
        )


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def coerce(cls, value: Any) -> "Severity":
        """Best-effort severity parsing; unknown values map to MEDIUM."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


@dataclass(frozen=True)
class AnalysisRequest:
    """A single source file to analyze against one framework."""
    code: str
    file_path: str
    framework: Framework
    language: str | None = None
    context: str | None = None

    def __post_init__(self) -> None:
        # Accept plain strings ("soc2") at construction time
        object.__setattr__(self, "framework", Framework.parse(self.framework))


@dataclass(frozen=True)
class Violation:
    """A compliance violation reported for a file."""
    severity: Severity
    type: str
    description: str
    recommendation: str
    line_numbers: tuple[int, ...] | None = None
    code_snippet: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Violation":
        lines = data.get("lineNumbers", data.get("line_numbers"))
        line_numbers = None
        if isinstance(lines, list):
            line_numbers = tuple(
                int(n) for n in lines
                if isinstance(n, (int, float)) and not isinstance(n, bool)
            )
        snippet = data.get("codeSnippet", data.get("code_snippet"))
        return cls(
            severity=Severity.coerce(data.get("severity", "medium")),
            type=str(data.get("type", "UNKNOWN")),
            description=str(data.get("description", "")),
            recommendation=str(data.get("recommendation", "")),
            line_numbers=line_numbers,
            code_snippet=str(snippet) if snippet is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "severity": self.severity.value,
            "type": self.type,
            "description": self.description,
            "recommendation": self.recommendation,
        }
        if self.line_numbers is not None:
            data["lineNumbers"] = list(self.line_numbers)
        if self.code_snippet is not None:
            data["codeSnippet"] = self.code_snippet
        return data


@dataclass(frozen=True)
class ResponseMetadata:
    """Bookkeeping attached to every analysis response."""
    analyzed_at: str
    duration_ms: int
    tokens_used: int
    cached: bool
    model_version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "analyzedAt": self.analyzed_at,
            "duration": self.duration_ms,
            "tokensUsed": self.tokens_used,
            "cached": self.cached,
            "modelVersion": self.model_version,
        }


@dataclass(frozen=True)
class AnalysisResponse:
    """Result of analyzing one file against one framework."""
    compliant: bool
    score: float
    violations: tuple[Violation, ...]
    recommendations: tuple[str, ...]
    metadata: ResponseMetadata
    file_path: str = ""
    framework: Framework | None = None
    error: str | None = None  # Set only on error-tagged batch placeholders

    def with_metadata(self, **changes: Any) -> "AnalysisResponse":
        """Return a copy with some metadata fields replaced."""
        return replace(self, metadata=replace(self.metadata, **changes))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "filePath": self.file_path,
            "framework": self.framework.value if self.framework else None,
            "compliant": self.compliant,
            "score": self.score,
            "violations": [v.to_dict() for v in self.violations],
            "recommendations": list(self.recommendations),
            "metadata": self.metadata.to_dict(),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class BatchSummary:
    """Aggregate statistics for a batch analysis."""
    total: int = 0
    compliant: int = 0
    violations: int = 0
    failed: int = 0
    total_duration_ms: int = 0
    cache_hit_rate: float = 0.0

    @classmethod
    def from_results(
        cls,
        results: list[AnalysisResponse],
        total_duration_ms: int
    ) -> "BatchSummary":
        total = len(results)
        cached = sum(1 for r in results if r.metadata.cached)
        return cls(
            total=total,
            compliant=sum(1 for r in results if r.compliant),
            violations=sum(1 for r in results if not r.compliant),
            failed=sum(1 for r in results if r.error is not None),
            total_duration_ms=total_duration_ms,
            cache_hit_rate=cached / total if total > 0 else 0.0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "compliant": self.compliant,
            "violations": self.violations,
            "failed": self.failed,
            "totalDuration": self.total_duration_ms,
            "cacheHitRate": self.cache_hit_rate,
        }


@dataclass
class BatchResult:
    """Ordered batch results plus summary."""
    results: list[AnalysisResponse] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
        }


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()
