"""Tests for inbound message guardrails."""

import pytest

from autobooker.conversation.guardrails import (
    EmptyMessageGuardrail,
    LengthGuardrail,
    MessageGuardrailPipeline,
)
from autobooker.errors import MessageValidationError


class TestEmptyMessageGuardrail:
    def setup_method(self):
        self.guard = EmptyMessageGuardrail()

    def test_text_passes(self):
        assert self.guard.check("Bonjour").passed is True

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_fails(self, text):
        result = self.guard.check(text)
        assert result.passed is False
        assert result.violation_type == "empty"


class TestLengthGuardrail:
    def test_at_limit_passes(self):
        assert LengthGuardrail(max_length=10).check("x" * 10).passed is True

    def test_over_limit_fails(self):
        result = LengthGuardrail(max_length=10).check("x" * 11)
        assert result.passed is False
        assert result.violation_type == "too_long"
        assert "10" in result.message

    def test_counts_characters_not_bytes(self):
        assert LengthGuardrail(max_length=5).check("ééééé").passed is True

    def test_default_limit_from_settings(self):
        from autobooker.config import settings

        assert LengthGuardrail().max_length == settings.conversation.max_message_length


class TestMessageGuardrailPipeline:
    def test_clean_message_has_no_failures(self, guardrail_pipeline):
        assert guardrail_pipeline.check("Je voudrais un rendez-vous") == []

    def test_enforce_strips(self, guardrail_pipeline):
        assert guardrail_pipeline.enforce("  oui  ") == "oui"

    def test_enforce_rejects_empty(self, guardrail_pipeline):
        with pytest.raises(MessageValidationError) as excinfo:
            guardrail_pipeline.enforce("   ")
        assert excinfo.value.reason == "empty"

    def test_enforce_rejects_none(self, guardrail_pipeline):
        with pytest.raises(MessageValidationError):
            guardrail_pipeline.enforce(None)

    def test_enforce_rejects_oversized(self, guardrail_pipeline):
        with pytest.raises(MessageValidationError) as excinfo:
            guardrail_pipeline.enforce("a" * 2001)
        assert excinfo.value.reason == "too_long"

    def test_exactly_max_length_is_accepted(self, guardrail_pipeline):
        assert len(guardrail_pipeline.enforce("a" * 2000)) == 2000
