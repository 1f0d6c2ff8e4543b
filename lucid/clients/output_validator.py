"""
Lucid — Structured Output Validator

Recovers JSON from model responses without rewrites or retry loops.

Key principle: Never retry the same LLM call. Instead:
1. Strip the usual wrapping (code fences, leading prose)
2. If nothing parses, return None and the caller uses its fallback
"""

from __future__ import annotations

import json as _json
import re
from typing import Any

import structlog

logger = structlog.get_logger()


class OutputValidator:
    """Extracts and checks JSON objects in LLM output."""

    @staticmethod
    def extract_json(text: str) -> dict[str, Any] | None:
        """
        Extract a JSON object from an LLM response.

        Handles common issues:
        - Leading/trailing text
        - Markdown code blocks

        Returns:
            Parsed JSON dict, or None if unfixable
        """
        text = text.strip()

        # Remove markdown code block markers
        text = re.sub(r"^```json\s*", "", text)
        text = re.sub(r"^```\s*", "", text)
        text = re.sub(r"```\s*$", "", text)
        text = text.strip()

        # Try direct parse
        try:
            parsed = _json.loads(text)
            if isinstance(parsed, dict):
                return parsed
        except _json.JSONDecodeError:
            pass

        # Try to find JSON object boundaries { ... }
        start_idx = text.find("{")
        end_idx = text.rfind("}")

        if start_idx >= 0 and end_idx > start_idx:
            candidate = text[start_idx : end_idx + 1]
            try:
                parsed = _json.loads(candidate)
                if isinstance(parsed, dict):
                    return parsed
            except _json.JSONDecodeError:
                pass

        # Unable to salvage
        logger.warning(
            "output_json_parse_failed",
            text_preview=text[:200],
        )
        return None
