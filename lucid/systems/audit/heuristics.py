"""
Lucid — Heuristic Fallback

Deterministic substitute audit used whenever the remote explainability
service fails. Depends only on the confidence score; the narrative is a
fixed template about the loan-approval feature set.
"""

from __future__ import annotations

from lucid.systems.audit.types import (
    AuditResult,
    Explanations,
    Impact,
    InfluencingFactor,
    RiskCategory,
    RiskIndicator,
    Severity,
)

# Confidence below this marks the Confidence indicator high severity
LOW_CONFIDENCE_THRESHOLD = 0.7
# Confidence above this makes the stability factor positive
STABLE_CONFIDENCE_THRESHOLD = 0.8

_EXPLANATIONS = Explanations(
    simple=(
        "HEURISTIC FALLBACK: The AI decision for this loan request is primarily "
        "influenced by the applicant's income levels and requested amount, "
        "suggesting a standard risk-based approval path."
    ),
    detailed=(
        "The model is currently operating within expected feature weight "
        "distributions. Analysis of the input vector shows heavy reliance on "
        "'Income' as a primary predictor, while 'LoanAmount' serves as a "
        "secondary control variable."
    ),
    technical=(
        "HEURISTIC MODE: Feature attribution analysis (Simulated) suggests a "
        "SHAP-equivalent weight of 0.65 for 'income' and -0.22 for 'loanAmount'. "
        "The resulting prediction vector is consistent with internal stability "
        "benchmarks."
    ),
)


def confidence_percent(confidence: float) -> int:
    """Round half up, matching the dashboard's percentage display."""
    return int(confidence * 100 + 0.5)


def heuristic_audit(confidence: float) -> AuditResult:
    percent = confidence_percent(confidence)
    return AuditResult(
        status="fallback",
        explanations=_EXPLANATIONS,
        influencing_factors=[
            InfluencingFactor(
                factor="Income Scaling",
                impact=Impact.POSITIVE,
                weight=0.65,
                explanation="High income detected relative to typical approval brackets.",
            ),
            InfluencingFactor(
                factor="Confidence Stability",
                impact=(
                    Impact.POSITIVE
                    if confidence > STABLE_CONFIDENCE_THRESHOLD
                    else Impact.NEGATIVE
                ),
                weight=0.35,
                explanation=f"Current model confidence is {percent}%.",
            ),
        ],
        risk_indicators=[
            RiskIndicator(
                category=RiskCategory.CONFIDENCE,
                severity=(
                    Severity.HIGH
                    if confidence < LOW_CONFIDENCE_THRESHOLD
                    else Severity.LOW
                ),
                finding="Current heuristic scan: Low impact drift detected in confidence buffer.",
            ),
        ],
        trust_score=percent,
    )
