"""
Analysis orchestrator.

Ties the result cache and the request gate together:

1. Look the (code, framework) pair up in the cache
2. On a miss, render the prompt and call the reasoning service through
   the gate (admission control + retry)
3. Parse the reply; unparseable output becomes a fallback result
4. Stamp metadata, cache, return

Batches are processed in fixed-size chunks. Each chunk settles before the
next one starts and results keep the input order.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Sequence

from .common_types import (
    AnalysisRequest,
    AnalysisResponse,
    BatchResult,
    BatchSummary,
    ResponseMetadata,
    utc_timestamp,
)
from .config import AnalyzerConfig
from .errors import ConfigurationError, FileAnalysisError, MalformedResponse
from .prompts import PromptBuilder, build_prompt
from .reasoning_client import Completion, ReasoningBackend, ReasoningClient
from .request_gate import RequestGate
from .response_parser import (
    ParsedAnalysis,
    ParseErr,
    error_analysis,
    fallback_analysis,
    parse_analysis,
)
from .result_cache import ResultCache


logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class AnalysisOrchestrator:
    """
    Cache-first, rate-limited compliance analysis.

    All collaborators are passed in, so tests (and callers running several
    independent analyzers) get isolated state.
    """

    def __init__(
        self,
        client: ReasoningBackend,
        config: AnalyzerConfig | None = None,
        cache: ResultCache | None = None,
        gate: RequestGate | None = None,
        prompt_builder: PromptBuilder = build_prompt,
    ):
        self.config = config or AnalyzerConfig()
        if self.config.batch_concurrency < 1:
            raise ConfigurationError("batch_concurrency must be at least 1")

        self.client = client
        if cache is None:
            cache = ResultCache(
                max_size=self.config.cache.max_size,
                ttl_seconds=self.config.cache.ttl_seconds,
            )
        self.cache = cache
        self.gate = gate if gate is not None else RequestGate(self.config.rate_limit)
        self.prompt_builder = prompt_builder

        self._api_call_count = 0
        self._fallback_count = 0

    async def __aenter__(self) -> "AnalysisOrchestrator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the reasoning client if it holds resources."""
        close = getattr(self.client, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    def _build_response(
        self,
        request: AnalysisRequest,
        analysis: ParsedAnalysis,
        start: float,
        tokens_used: int,
    ) -> AnalysisResponse:
        return AnalysisResponse(
            compliant=analysis.compliant,
            score=analysis.score,
            violations=analysis.violations,
            recommendations=analysis.recommendations,
            metadata=ResponseMetadata(
                analyzed_at=utc_timestamp(),
                duration_ms=_elapsed_ms(start),
                tokens_used=max(0, tokens_used),
                cached=False,
                model_version=self.config.model,
            ),
            file_path=request.file_path,
            framework=request.framework,
        )

    async def analyze_one(self, request: AnalysisRequest) -> AnalysisResponse:
        """
        Analyze a single file for compliance violations.

        Raises:
            FileAnalysisError: the analysis failed terminally (auth failure,
                retries exhausted, ...). Unparseable model output is never
                raised; it becomes a fallback response.
        """
        start = time.perf_counter()

        cached = self.cache.get(request.code, request.framework)
        if cached is not None:
            logger.debug("Cache hit for %s", request.file_path)
            return replace(
                cached.with_metadata(duration_ms=_elapsed_ms(start)),
                file_path=request.file_path,
            )

        try:
            prompt = self.prompt_builder(request)

            async def call_service() -> Completion:
                self._api_call_count += 1
                return await self.client.complete(prompt)

            completion = await self.gate.execute(call_service)
        except MalformedResponse as e:
            logger.warning("Unusable reply for %s: %s", request.file_path, e)
            return self._fallback(request, start, tokens_used=0)
        except Exception as e:
            logger.error("Analysis failed for %s: %s", request.file_path, e)
            raise FileAnalysisError(request.file_path, e) from e

        outcome = parse_analysis(completion.text)
        if isinstance(outcome, ParseErr):
            logger.warning(
                "Failed to parse analysis for %s: %s", request.file_path, outcome.reason
            )
            return self._fallback(request, start, tokens_used=completion.usage.total_tokens)

        response = self._build_response(
            request, outcome.analysis, start, completion.usage.total_tokens
        )
        self.cache.set(request.code, request.framework, response)
        return response

    def _fallback(
        self,
        request: AnalysisRequest,
        start: float,
        tokens_used: int
    ) -> AnalysisResponse:
        self._fallback_count += 1
        response = self._build_response(request, fallback_analysis(), start, tokens_used)
        if self.config.cache_parse_failures:
            self.cache.set(request.code, request.framework, response)
        return response

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def _analyze_or_placeholder(self, request: AnalysisRequest) -> AnalysisResponse:
        start = time.perf_counter()
        try:
            return await self.analyze_one(request)
        except FileAnalysisError as e:
            cause = e.cause if e.cause is not None else e
            response = self._build_response(request, error_analysis(str(cause)), start, 0)
            return replace(response, error=str(cause))

    async def analyze_batch(
        self,
        requests: Sequence[AnalysisRequest],
        max_concurrency: int | None = None,
    ) -> BatchResult:
        """
        Analyze many files in stop-and-wait chunks.

        Args:
            requests: Files to analyze, in output order
            max_concurrency: Chunk size (default: config.batch_concurrency)

        Returns:
            BatchResult with results in input order and a summary. Items
            that fail terminally become error-tagged placeholders.

        Raises:
            ConfigurationError: invalid chunk size or request objects
        """
        if max_concurrency is None:
            max_concurrency = self.config.batch_concurrency
        if max_concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be at least 1, got {max_concurrency}",
                context={"max_concurrency": max_concurrency},
            )
        for item in requests:
            if not isinstance(item, AnalysisRequest):
                raise ConfigurationError(
                    f"Batch items must be AnalysisRequest, got {type(item).__name__}"
                )

        start = time.perf_counter()
        results: list[AnalysisResponse] = []

        for i in range(0, len(requests), max_concurrency):
            chunk = requests[i:i + max_concurrency]
            chunk_results = await asyncio.gather(
                *(self._analyze_or_placeholder(r) for r in chunk)
            )
            results.extend(chunk_results)

        summary = BatchSummary.from_results(results, _elapsed_ms(start))
        if summary.failed:
            logger.error("%d/%d batch items failed", summary.failed, summary.total)
        logger.info(
            "Batch complete: %d files, %d compliant, %d with violations, "
            "cache hit rate %.1f%%, %dms",
            summary.total, summary.compliant, summary.violations,
            summary.cache_hit_rate * 100, summary.total_duration_ms,
        )
        return BatchResult(results=results, summary=summary)

    # ------------------------------------------------------------------
    # Maintenance / introspection
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.get_stats()

    def get_gate_status(self) -> dict[str, int]:
        return self.gate.get_status()

    def clear_cache(self) -> None:
        self.cache.clear()

    def cleanup_cache(self) -> int:
        """Remove expired cache entries."""
        return self.cache.cleanup()

    def get_stats(self) -> dict[str, Any]:
        """Get orchestrator statistics."""
        return {
            "api_calls": self._api_call_count,
            "fallbacks": self._fallback_count,
            "cache": self.cache.get_stats(),
            "gate": self.gate.get_stats(),
        }


def create_orchestrator(config: AnalyzerConfig | None = None) -> AnalysisOrchestrator:
    """Build an orchestrator talking to the configured reasoning service."""
    config = config or AnalyzerConfig()
    config.require_valid()
    return AnalysisOrchestrator(client=ReasoningClient(config), config=config)
