"""
Lucid — Audit Prompts

Constructs the explainability prompt for a single decision and the
response schema the remote service must honour.

The schema is written in the OpenAPI subset accepted by Gemini
(upper-case type names). Providers that speak plain JSON Schema convert
it with to_json_schema().
"""

from __future__ import annotations

import json
from typing import Any

RISK_CATEGORIES = ["Bias", "Confidence", "Logic", "Drift"]
SEVERITIES = ["low", "medium", "high"]
IMPACTS = ["positive", "negative", "neutral"]

AUDIT_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "explanations": {
            "type": "OBJECT",
            "properties": {
                "simple": {"type": "STRING"},
                "detailed": {"type": "STRING"},
                "technical": {"type": "STRING"},
            },
            "required": ["simple", "detailed", "technical"],
        },
        "influencingFactors": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "factor": {"type": "STRING"},
                    "impact": {"type": "STRING", "enum": IMPACTS},
                    "weight": {"type": "NUMBER"},
                    "explanation": {"type": "STRING"},
                },
                "required": ["factor", "impact", "weight", "explanation"],
            },
        },
        "riskIndicators": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "category": {"type": "STRING", "enum": RISK_CATEGORIES},
                    "severity": {"type": "STRING", "enum": SEVERITIES},
                    "finding": {"type": "STRING"},
                },
                "required": ["category", "severity", "finding"],
            },
        },
        "trustScore": {
            "type": "NUMBER",
            "description": "A composite trust metric from 0 to 100.",
        },
    },
    "required": ["explanations", "influencingFactors", "riskIndicators", "trustScore"],
}


def build_audit_prompt(
    input_data: dict[str, Any],
    output_data: dict[str, Any],
    confidence: float,
) -> str:
    """
    Build the explainability prompt for one decision triple.

    Requests three narratives, ordered influencing factors, risk indicators
    across the four fixed categories, and a composite trust score.
    """
    sections: list[str] = [
        "Analyze the following AI decision for transparency and explainability:",
        f"Input Data: {json.dumps(input_data, default=str)}",
        f"AI Output: {json.dumps(output_data, default=str)}",
        f"Model Confidence: {confidence}",
        (
            "Generate three distinct narrative explanations:\n"
            "1. Simple: A high-level summary for end-users.\n"
            "2. Detailed: Explanation of logic and feature relationships.\n"
            "3. Technical: Discussion of potential statistical weights and logic."
        ),
        (
            "Also provide influencing factors, ordered by importance, each with a "
            "signed impact (positive, negative or neutral) and a numeric weight, "
            f"and risk indicators ({', '.join(RISK_CATEGORIES)}) each with a "
            "severity of low, medium or high."
        ),
        (
            "Provide a 'trustScore' as a composite metric on a scale of 0 to 100 "
            "representing overall reliability."
        ),
    ]
    return "\n\n".join(sections)


def to_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """
    Convert the Gemini-style schema to strict JSON Schema.

    Lower-cases type names and closes every object to extra properties.
    """
    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.lower()
        elif key == "properties" and isinstance(value, dict):
            converted[key] = {name: to_json_schema(sub) for name, sub in value.items()}
        elif key == "items" and isinstance(value, dict):
            converted[key] = to_json_schema(value)
        else:
            converted[key] = value
    if converted.get("type") == "object":
        converted["additionalProperties"] = False
    return converted
