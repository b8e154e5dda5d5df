"""
Compliance Autopilot

Analyzes source files against compliance frameworks (SOC2, GDPR,
ISO 27001) by delegating the judgement to an external reasoning service.

Every call to the service goes through one execution engine:
- ResultCache: LRU + TTL memoization of (code, framework) results
- RequestGate: concurrency cap, sliding-window rate cap, FIFO admission,
  exponential backoff retry
- AnalysisOrchestrator: cache-first single-file analysis and ordered,
  chunked batch analysis with summary statistics
"""

__version__ = "1.0.0"

from .common_types import (
    AnalysisRequest,
    AnalysisResponse,
    BatchResult,
    BatchSummary,
    Framework,
    ResponseMetadata,
    Severity,
    Violation,
)
from .config import AnalyzerConfig, CacheConfig, RateLimitConfig, configure_logging, get_config
from .errors import (
    AuthError,
    ComplianceAutopilotError,
    ConfigurationError,
    FileAnalysisError,
    MalformedResponse,
    RateLimitExceeded,
    RetriesExhausted,
    TransientProviderError,
)
from .file_collector import FileCollector
from .orchestrator import AnalysisOrchestrator, create_orchestrator
from .reasoning_client import Completion, ReasoningBackend, ReasoningClient, Usage
from .request_gate import RequestGate
from .result_cache import ResultCache

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisRequest",
    "AnalysisResponse",
    "AnalyzerConfig",
    "AuthError",
    "BatchResult",
    "BatchSummary",
    "CacheConfig",
    "ComplianceAutopilotError",
    "Completion",
    "ConfigurationError",
    "FileAnalysisError",
    "FileCollector",
    "Framework",
    "MalformedResponse",
    "RateLimitConfig",
    "RateLimitExceeded",
    "ReasoningBackend",
    "ReasoningClient",
    "RequestGate",
    "ResponseMetadata",
    "ResultCache",
    "RetriesExhausted",
    "Severity",
    "TransientProviderError",
    "Usage",
    "Violation",
    "configure_logging",
    "create_orchestrator",
    "get_config",
]
