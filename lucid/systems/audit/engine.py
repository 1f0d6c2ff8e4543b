"""
Lucid — Analysis Engine

Turns a raw decision triple into a structured AuditResult.

Pipeline:
1. Exact-match cache lookup on the canonical triple serialization
2. Prompt + response schema to the remote explainability service
3. Parse and validate the payload; tag "live" and cache it
4. Any failure along the way yields the deterministic heuristic result,
   tagged "fallback" and never cached

analyze() never raises. Sustained remote failure simply means every
result is heuristic.
"""

from __future__ import annotations

import asyncio
import copy
import time
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from lucid.clients.analysis_cache import (
    AnalysisCache,
    InMemoryAnalysisCache,
    compute_cache_key,
)
from lucid.clients.output_validator import OutputValidator
from lucid.prompts.audit import AUDIT_RESPONSE_SCHEMA, build_audit_prompt
from lucid.systems.audit.errors import (
    LocalParseError,
    RemoteError,
    SchemaValidationError,
)
from lucid.systems.audit.heuristics import heuristic_audit
from lucid.systems.audit.types import AuditPayload, AuditResult

if TYPE_CHECKING:
    from lucid.clients.llm import ExplainabilityProvider

logger = structlog.get_logger()


class AnalysisEngine:
    """
    Memoized, fallback-capable explainability analysis.

    The cache is injectable so tests can substitute a stub and assert
    call counts. Concurrent identical-key misses each go to the remote
    service unless dedupe_inflight is set, in which case they share the
    first call's outcome.
    """

    def __init__(
        self,
        provider: ExplainabilityProvider | None,
        cache: AnalysisCache | None = None,
        dedupe_inflight: bool = False,
    ) -> None:
        self._provider = provider
        self._cache: AnalysisCache = cache if cache is not None else InMemoryAnalysisCache()
        self._dedupe = dedupe_inflight
        self._inflight: dict[str, asyncio.Future[AuditResult]] = {}
        self._validator = OutputValidator()
        self._logger = logger.bind(system="audit.engine")

        self._cache_hits = 0
        self._cache_misses = 0
        self._remote_calls = 0
        self._live_count = 0
        self._fallback_count = 0
        self._fallback_reasons: dict[str, int] = {}

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    async def analyze(
        self,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        confidence: float,
    ) -> AuditResult:
        """Analyze one decision triple. Never raises."""
        input_data = copy.deepcopy(input_data)
        output_data = copy.deepcopy(output_data)
        key = compute_cache_key(input_data, output_data, confidence)

        if self._cache.has(key):
            cached = self._cache.get(key)
            if cached is not None:
                self._cache_hits += 1
                self._logger.debug("analysis_cache_hit", trust_score=cached.trust_score)
                return cached
        self._cache_misses += 1
        self._logger.debug("analysis_cache_miss")

        if not self._dedupe:
            return await self._analyze_remote(key, input_data, output_data, confidence)

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._analyze_remote(key, input_data, output_data, confidence)
            )
            self._inflight[key] = pending
            pending.add_done_callback(lambda _f: self._inflight.pop(key, None))
        else:
            self._logger.debug("analysis_inflight_shared")
        return await asyncio.shield(pending)

    async def _analyze_remote(
        self,
        key: str,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        confidence: float,
    ) -> AuditResult:
        start = time.monotonic()
        try:
            result = await self._request_live(input_data, output_data, confidence)
        except RemoteError as exc:
            return self._fallback(confidence, exc.kind, str(exc))
        except Exception as exc:
            return self._fallback(confidence, "unexpected", f"{type(exc).__name__}: {exc}")

        self._cache.set(key, result)
        self._live_count += 1
        self._logger.info(
            "analysis_live",
            trust_score=result.trust_score,
            risk_count=len(result.risk_indicators),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return result

    async def _request_live(
        self,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        confidence: float,
    ) -> AuditResult:
        if self._provider is None:
            raise RemoteError("no explainability provider configured")

        prompt = build_audit_prompt(input_data, output_data, confidence)
        self._remote_calls += 1
        response = await self._provider.generate_structured(prompt, AUDIT_RESPONSE_SCHEMA)
        self._logger.debug(
            "analysis_response_received",
            model=response.model,
            total_tokens=response.total_tokens,
            finish_reason=response.finish_reason,
        )

        data = self._validator.extract_json(response.text)
        if data is None:
            raise LocalParseError("response contained no JSON object")

        try:
            payload = AuditPayload.model_validate(data)
        except ValidationError as exc:
            raise SchemaValidationError(
                f"{exc.error_count()} schema violation(s): {exc.errors()[0]['msg']}"
            ) from exc

        return AuditResult(status="live", **dict(payload))

    def _fallback(self, confidence: float, kind: str, error: str) -> AuditResult:
        self._fallback_count += 1
        self._fallback_reasons[kind] = self._fallback_reasons.get(kind, 0) + 1
        self._logger.warning(
            "analysis_fallback",
            error_kind=kind,
            error=error[:300],
            confidence=confidence,
        )
        return heuristic_audit(min(1.0, max(0.0, confidence)))

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "remote_calls": self._remote_calls,
            "live": self._live_count,
            "fallback": self._fallback_count,
            "fallback_reasons": dict(self._fallback_reasons),
            "inflight": len(self._inflight),
        }
