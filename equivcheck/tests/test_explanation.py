"""Tests for explanation composition and its fallback."""

import asyncio

import pytest

from equivcheck.core.errors import GenerationError
from equivcheck.core.explanation import (
    ExplanationComposer,
    build_prompt,
    fallback_explanation,
)
from equivcheck.core.models import Characteristics, EntityRef

SOURCE = EntityRef("Kendrick Lamar", "Hip Hop")
TARGET = EntityRef("Bruce Springsteen", "Rock")

RICH = Characteristics(
    themes=("struggle", "hometown", "faith", "ambition"),
    attributes=("Energy: high", "Mood: defiant"),
)


class TestFallbackExplanation:
    """Tests for the deterministic fallback sentence."""

    def test_names_up_to_three_themes_and_first_attribute(self):
        text = fallback_explanation(SOURCE, TARGET, RICH)
        assert text == (
            "Kendrick Lamar and Bruce Springsteen are equivalent because they both "
            "explore themes like struggle, hometown, faith and share Energy: high."
        )

    def test_attribute_only(self):
        text = fallback_explanation(SOURCE, TARGET, Characteristics(attributes=("Tempo: fast",)))
        assert text.endswith("because they share Tempo: fast.")

    def test_generic_when_nothing_shared(self):
        text = fallback_explanation(SOURCE, TARGET, Characteristics(style=("simple complexity",)))
        assert "Hip Hop and Rock groups" in text
        assert text.startswith("Kendrick Lamar and Bruce Springsteen")


class TestExplanationComposer:
    """Tests for composing via a text generation port."""

    def test_no_generator_uses_fallback(self):
        composer = ExplanationComposer()
        text = asyncio.run(composer.compose(SOURCE, TARGET, RICH))
        assert text == fallback_explanation(SOURCE, TARGET, RICH)

    def test_reply_is_trimmed(self, fake_generator):
        fake_generator.reply = "\n  Both write anthems about where they grew up.\n"
        text = asyncio.run(ExplanationComposer(fake_generator).compose(SOURCE, TARGET, RICH))
        assert text == "Both write anthems about where they grew up."

    @pytest.mark.parametrize("reply", ["", "   \n\t"])
    def test_blank_reply_matches_failure_fallback(self, fake_generator, reply):
        """Blank replies and port failures fall back identically."""
        fake_generator.reply = reply
        blank = asyncio.run(ExplanationComposer(fake_generator).compose(SOURCE, TARGET, RICH))

        fake_generator.error = GenerationError("boom")
        failed = asyncio.run(ExplanationComposer(fake_generator).compose(SOURCE, TARGET, RICH))

        assert blank == failed == fallback_explanation(SOURCE, TARGET, RICH)

    def test_timeout_falls_back(self):
        class SlowGenerator:
            async def generate(self, prompt):
                await asyncio.sleep(1)
                return "too late"

        composer = ExplanationComposer(SlowGenerator(), timeout=0.01)
        text = asyncio.run(composer.compose(SOURCE, TARGET, RICH))
        assert text == fallback_explanation(SOURCE, TARGET, RICH)

    def test_non_string_reply_falls_back(self, fake_generator):
        fake_generator.reply = None
        text = asyncio.run(ExplanationComposer(fake_generator).compose(SOURCE, TARGET, RICH))
        assert text == fallback_explanation(SOURCE, TARGET, RICH)


class TestBuildPrompt:
    def test_prompt_mentions_entities_and_shared(self):
        prompt = build_prompt(SOURCE, TARGET, RICH)
        assert "Kendrick Lamar (Hip Hop)" in prompt
        assert "Bruce Springsteen (Rock)" in prompt
        assert "struggle, hometown, faith, ambition" in prompt
        assert "- Style: none" in prompt
