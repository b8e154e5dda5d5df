"""
Configuration for the Compliance Autopilot analysis engine

Environment Variables:
- COMPLIANCE_API_KEY / OPENROUTER_API_KEY: API key for the reasoning service
- COMPLIANCE_API_BASE_URL: OpenAI-compatible endpoint (default: OpenRouter)
- COMPLIANCE_MODEL: Model used for analysis
- COMPLIANCE_MAX_RPM: Max completed requests per rolling minute (default: 50)
- COMPLIANCE_MAX_CONCURRENT: Max in-flight requests (default: 10)
- COMPLIANCE_MAX_RETRIES: Retries for transient failures (default: 3)
- COMPLIANCE_CACHE_MAX_SIZE: Max cached responses (default: 1000)
- COMPLIANCE_CACHE_TTL: Cache TTL in seconds (default: 3600)
- COMPLIANCE_LOG_LEVEL: Logging level (default: WARNING)
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Set

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass
class RateLimitConfig:
    """Admission and retry settings for the request gate."""

    max_requests_per_minute: int = field(
        default_factory=lambda: _env_int("COMPLIANCE_MAX_RPM", 50)
    )
    max_concurrent_requests: int = field(
        default_factory=lambda: _env_int("COMPLIANCE_MAX_CONCURRENT", 10)
    )
    backoff_multiplier: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_BACKOFF_MULTIPLIER", 2.0)
    )
    max_retries: int = field(
        default_factory=lambda: _env_int("COMPLIANCE_MAX_RETRIES", 3)
    )
    initial_delay_seconds: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_RETRY_INITIAL_DELAY", 1.0)
    )
    max_delay_seconds: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_RETRY_MAX_DELAY", 30.0)
    )
    # Fraction of the computed delay added/subtracted at random (0.25 = +/-25%)
    jitter: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_RETRY_JITTER", 0.0)
    )
    window_seconds: float = 60.0

    def validate(self) -> list[str]:
        errors = []
        if self.max_requests_per_minute < 1:
            errors.append("max_requests_per_minute must be at least 1")
        if self.max_concurrent_requests < 1:
            errors.append("max_concurrent_requests must be at least 1")
        if self.backoff_multiplier < 1:
            errors.append("backoff_multiplier must be at least 1")
        if self.max_retries < 0:
            errors.append("max_retries must not be negative")
        if self.initial_delay_seconds < 0:
            errors.append("initial_delay_seconds must not be negative")
        if self.max_delay_seconds < self.initial_delay_seconds:
            errors.append("max_delay_seconds must be >= initial_delay_seconds")
        if not 0 <= self.jitter <= 1:
            errors.append("jitter must be between 0 and 1")
        if self.window_seconds <= 0:
            errors.append("window_seconds must be positive")
        return errors


@dataclass
class CacheConfig:
    """Result cache sizing."""

    max_size: int = field(
        default_factory=lambda: _env_int("COMPLIANCE_CACHE_MAX_SIZE", 1000)
    )
    ttl_seconds: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_CACHE_TTL", 3600)
    )

    def validate(self) -> list[str]:
        errors = []
        if self.max_size < 1:
            errors.append("cache max_size must be at least 1")
        if self.ttl_seconds <= 0:
            errors.append("cache ttl_seconds must be positive")
        return errors


@dataclass
class AnalyzerConfig:
    """Configuration for compliance analysis."""

    # API Configuration (any OpenAI-compatible endpoint)
    api_key: str = field(
        default_factory=lambda: os.getenv("COMPLIANCE_API_KEY")
        or os.getenv("OPENROUTER_API_KEY", "")
    )
    api_base_url: str = field(
        default_factory=lambda: os.getenv("COMPLIANCE_API_BASE_URL", DEFAULT_BASE_URL)
    )
    model: str = field(
        default_factory=lambda: os.getenv("COMPLIANCE_MODEL", DEFAULT_MODEL)
    )

    # Generation settings; low temperature keeps verdicts consistent
    max_output_tokens: int = field(
        default_factory=lambda: _env_int("COMPLIANCE_MAX_OUTPUT_TOKENS", 4096)
    )
    temperature: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_TEMPERATURE", 0.3)
    )
    request_timeout_seconds: float = field(
        default_factory=lambda: _env_float("COMPLIANCE_REQUEST_TIMEOUT", 120.0)
    )

    # Batch / caching behaviour
    batch_concurrency: int = field(
        default_factory=lambda: _env_int("COMPLIANCE_BATCH_CONCURRENCY", 10)
    )
    cache_parse_failures: bool = field(
        default_factory=lambda: _env_bool("COMPLIANCE_CACHE_PARSE_FAILURES", True)
    )

    log_level: str = field(
        default_factory=lambda: os.getenv("COMPLIANCE_LOG_LEVEL", "WARNING")
    )

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    # File Collection Configuration
    included_extensions: Set[str] = field(default_factory=lambda: {
        ".py", ".js", ".ts", ".jsx", ".tsx", ".go", ".rs", ".java",
        ".c", ".cpp", ".h", ".hpp", ".rb", ".php", ".swift", ".kt",
        ".scala", ".cs", ".sql", ".sh", ".yaml", ".yml", ".tf",
    })

    skipped_directories: Set[str] = field(default_factory=lambda: {
        ".git", "node_modules", "__pycache__", "venv", ".venv",
        "dist", "build", ".next", "target", "vendor", ".cache",
        ".idea", ".vscode", "coverage", "*.egg-info", ".tox",
        ".pytest_cache", ".mypy_cache", ".ruff_cache", "htmlcov",
    })

    max_file_size_bytes: int = 1_000_000  # 1MB per file

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.api_key:
            errors.append("COMPLIANCE_API_KEY (or OPENROUTER_API_KEY) environment variable not set")

        if not self.model:
            errors.append("model must not be empty")

        if self.max_output_tokens < 256:
            errors.append("max_output_tokens must be at least 256")

        if self.batch_concurrency < 1:
            errors.append("batch_concurrency must be at least 1")

        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        errors.extend(self.rate_limit.validate())
        errors.extend(self.cache.validate())
        return errors

    def require_valid(self) -> None:
        """Raise ConfigurationError if validate() reports any problem."""
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(errors),
                context={"errors": errors},
            )


def configure_logging(level: str | int = "WARNING") -> None:
    """Send package logs to stderr so stdout stays free for report output."""
    package_logger = logging.getLogger("compliance_autopilot")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        package_logger.addHandler(handler)


def get_config() -> AnalyzerConfig:
    """Get a configuration instance built from the environment."""
    return AnalyzerConfig()
