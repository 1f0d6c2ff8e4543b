"""
Lucid — External Service Clients

Remote explainability providers, the analysis result cache, and
LLM output validation.
"""
