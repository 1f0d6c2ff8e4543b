"""
Lucid — Analysis Result Cache

Exact-match memoization of audit results for the lifetime of the process.

Key strategy: canonical JSON of {inputData, outputData, confidence}, so
two byte-identical decision triples always share one entry. There is no
TTL and no eviction; entries are only ever added.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from lucid.systems.audit.types import AuditResult

logger = structlog.get_logger()


def compute_cache_key(
    input_data: dict[str, Any],
    output_data: dict[str, Any],
    confidence: float,
) -> str:
    """Deterministic serialization of a decision triple."""
    return _json.dumps(
        {"inputData": input_data, "outputData": output_data, "confidence": confidence},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


class AnalysisCache(Protocol):
    """Key-value store for live audit results. Injectable for tests."""

    def get(self, key: str) -> AuditResult | None: ...

    def set(self, key: str, value: AuditResult) -> None: ...

    def has(self, key: str) -> bool: ...


class InMemoryAnalysisCache:
    """Process-lifetime dict-backed cache."""

    def __init__(self) -> None:
        self._entries: dict[str, AuditResult] = {}
        self._logger = logger.bind(component="analysis_cache")

    def get(self, key: str) -> AuditResult | None:
        return self._entries.get(key)

    def set(self, key: str, value: AuditResult) -> None:
        self._entries[key] = value
        self._logger.debug("cache_set", size=len(self._entries))

    def has(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
