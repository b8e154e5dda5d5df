"""
Pytest configuration and fixtures for compliance analysis tests.
"""

import asyncio
import json
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from compliance_autopilot.common_types import (
    AnalysisRequest,
    AnalysisResponse,
    Framework,
    ResponseMetadata,
)
from compliance_autopilot.config import AnalyzerConfig, CacheConfig, RateLimitConfig
from compliance_autopilot.orchestrator import AnalysisOrchestrator
from compliance_autopilot.reasoning_client import Completion, Usage
from compliance_autopilot.request_gate import RequestGate
from compliance_autopilot.result_cache import ResultCache


COMPLIANT_REPLY = json.dumps({
    "compliant": True,
    "score": 95,
    "violations": [],
    "recommendations": ["Keep audit logging enabled"],
})


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    In-memory reasoning backend.

    Replies come from `reply` (a string or a callable taking the prompt).
    `errors` is a list of exceptions raised, in order, before replies start.
    """

    def __init__(self, reply=COMPLIANT_REPLY, delay: float = 0.0, errors=None):
        self.reply = reply
        self.delay = delay
        self.errors = list(errors or [])
        self.calls: list[str] = []
        self.running = 0
        self.max_running = 0
        self.closed = False

    async def complete(self, prompt: str) -> Completion:
        self.calls.append(prompt)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.errors:
                raise self.errors.pop(0)
            text = self.reply(prompt) if callable(self.reply) else self.reply
            return Completion(text=text, usage=Usage(input_tokens=120, output_tokens=30))
        finally:
            self.running -= 1

    async def aclose(self) -> None:
        self.closed = True


def build_response(compliant: bool = True, score: float = 90, file_path: str = "app.py") -> AnalysisResponse:
    return AnalysisResponse(
        compliant=compliant,
        score=score,
        violations=(),
        recommendations=(),
        metadata=ResponseMetadata(
            analyzed_at="2024-01-01T00:00:00+00:00",
            duration_ms=250,
            tokens_used=150,
            cached=False,
            model_version="test/compliance-model",
        ),
        file_path=file_path,
        framework=Framework.SOC2,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_response():
    """Factory for canned analysis responses."""
    return build_response


@pytest.fixture
def make_backend():
    """Factory for FakeBackend instances with custom replies, delays or errors."""
    return FakeBackend


@pytest.fixture
def rate_limit_config() -> RateLimitConfig:
    """Fast retry settings for tests."""
    return RateLimitConfig(
        max_requests_per_minute=100,
        max_concurrent_requests=5,
        backoff_multiplier=2.0,
        max_retries=3,
        initial_delay_seconds=0.01,
        max_delay_seconds=1.0,
        jitter=0.0,
    )


@pytest.fixture
def analyzer_config(rate_limit_config: RateLimitConfig) -> AnalyzerConfig:
    """Create a test analyzer configuration."""
    return AnalyzerConfig(
        api_key="test-api-key",
        model="test/compliance-model",
        batch_concurrency=4,
        rate_limit=rate_limit_config,
        cache=CacheConfig(max_size=100, ttl_seconds=3600),
    )


@pytest.fixture
def result_cache(fake_clock: FakeClock) -> ResultCache:
    return ResultCache(max_size=3, ttl_seconds=60, clock=fake_clock)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def orchestrator(analyzer_config: AnalyzerConfig, fake_backend: FakeBackend) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        client=fake_backend,
        config=analyzer_config,
        gate=RequestGate(analyzer_config.rate_limit),
    )


@pytest.fixture
def soc2_request() -> AnalysisRequest:
    return AnalysisRequest(code="const x=1;", file_path="src/index.js", framework=Framework.SOC2)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
