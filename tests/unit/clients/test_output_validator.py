"""
Unit tests for OutputValidator JSON recovery.
"""

from __future__ import annotations

import pytest

from lucid.clients.output_validator import OutputValidator


class TestExtractJson:
    def test_plain_object(self):
        assert OutputValidator.extract_json('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert OutputValidator.extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_leading_prose(self):
        text = 'Here is the analysis you asked for: {"trustScore": 70} Hope it helps.'
        assert OutputValidator.extract_json(text) == {"trustScore": 70}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_unsalvageable_returns_none(self, text):
        assert OutputValidator.extract_json(text) is None
