"""
Lucid — Decision Audit Core

Submits model decisions to an explainability engine, keeps a rolling
confidence/drift series and a bounded audit log.
"""

__version__ = "0.1.0"
