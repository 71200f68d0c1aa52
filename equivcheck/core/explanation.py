"""
Natural-language explanations of why two entities are equivalent.

The composer asks a TextGenerationPort for a short rationale built from
both entities' features and the computed shared characteristics. If the
port is missing, raises, times out, or answers with blank text, a
templated sentence is built from the shared characteristics instead.
The fallback never fails and never returns empty text.
"""

import asyncio
import json
import logging
from typing import List, Optional

from equivcheck.core.models import Characteristics, EntityRef, FeatureRecord
from equivcheck.core.ports import TextGenerationPort

logger = logging.getLogger(__name__)

# Number of shared themes named in a fallback sentence
FALLBACK_THEME_LIMIT = 3


def _join_or(items, placeholder: str) -> str:
    return ", ".join(items) or placeholder


def _summarize(features: Optional[FeatureRecord]) -> List[str]:
    if features is None:
        return ["- Themes: various"]
    style = features.style
    complexity = style.complexity.value if style.complexity else "unknown"
    tone = style.emotional_tone or "unknown"
    return [
        f"- Themes: {_join_or(features.themes, 'various')}",
        f"- Attributes: {json.dumps(features.attributes.to_dict())}",
        f"- Style: {complexity} complexity, {tone} tone",
    ]


def build_prompt(
    source: EntityRef,
    target: EntityRef,
    shared: Characteristics,
    source_features: Optional[FeatureRecord] = None,
    target_features: Optional[FeatureRecord] = None,
) -> str:
    """Build the explanation prompt for a pair of entities."""
    lines = [
        f"Explain why {source.entity_id} ({source.group}) and "
        f"{target.entity_id} ({target.group}) are equivalent.",
        "",
        "Source Features:",
        *_summarize(source_features),
        "",
        "Target Features:",
        *_summarize(target_features),
        "",
        "Shared Characteristics:",
        f"- Themes: {_join_or(shared.themes, 'none')}",
        f"- Attributes: {_join_or(shared.attributes, 'none')}",
        f"- Style: {_join_or(shared.style, 'none')}",
        "",
        "Write a concise, natural explanation (2-3 sentences) that helps users "
        f"understand why these two are equivalent across the {source.group} and "
        f"{target.group} groups. Focus on what makes them similar in style, "
        "themes, or approach.",
    ]
    return "\n".join(lines)


def fallback_explanation(source: EntityRef, target: EntityRef, shared: Characteristics) -> str:
    """
    Deterministic explanation built only from shared characteristics.

    Names up to three shared themes and the first shared attribute when
    either exists; otherwise states the equivalence generically.
    """
    parts = []
    if shared.themes:
        themes = ", ".join(shared.themes[:FALLBACK_THEME_LIMIT])
        parts.append(f"both explore themes like {themes}")
    if shared.attributes:
        parts.append(f"share {shared.attributes[0]}")

    if parts:
        return (
            f"{source.entity_id} and {target.entity_id} are equivalent "
            f"because they {' and '.join(parts)}."
        )

    return (
        f"{source.entity_id} and {target.entity_id} share similar approaches that "
        f"make them equivalent across the {source.group} and {target.group} groups."
    )


class ExplanationComposer:
    """
    Produces explanation text for a compared pair.

    Args:
        generator: Text generation port; None means always use the fallback
        timeout: Optional seconds to wait for the port before falling back
    """

    def __init__(
        self,
        generator: Optional[TextGenerationPort] = None,
        timeout: Optional[float] = None,
    ):
        self._generator = generator
        self._timeout = timeout

    async def compose(
        self,
        source: EntityRef,
        target: EntityRef,
        shared: Characteristics,
        source_features: Optional[FeatureRecord] = None,
        target_features: Optional[FeatureRecord] = None,
    ) -> str:
        if self._generator is None:
            return fallback_explanation(source, target, shared)

        prompt = build_prompt(source, target, shared, source_features, target_features)
        try:
            call = self._generator.generate(prompt)
            if self._timeout is not None:
                text = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                text = await call
        except Exception as e:
            logger.warning("Explanation generation failed for %s vs %s: %s", source, target, e)
            return fallback_explanation(source, target, shared)

        text = text.strip() if isinstance(text, str) else ""
        if not text:
            logger.warning("Explanation generation returned no text for %s vs %s", source, target)
            return fallback_explanation(source, target, shared)
        return text
