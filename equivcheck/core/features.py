"""
Feature extraction from entity documents.

LLMFeatureExtractor implements FeatureExtractionPort on top of any
TextGenerationPort. The model is asked for a JSON object; its reply is
then cleaned up in stages until something usable comes out:

1. Strip Markdown code fences
2. Cut out the outermost {...} if the reply has surrounding prose
3. json.loads
4. On failure, drop trailing commas and quote bare keys, then retry
5. On failure, salvage individual fields with regular expressions

The parsed payload is normalized into a FeatureRecord at this edge;
loosely-shaped model output never reaches the scorer. Any exception
along the way yields default_feature_record(), so extract() never raises.

Optionally, attributes the model left out can be filled from simple
keyword hints found in the document itself (BPM, key, energy words,
instruments). This is off by default: a hint is a guess, and an unknown
attribute is left out of scoring while a guessed one is not.
"""

import asyncio
import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from equivcheck.core.models import (
    Attributes,
    FeatureRecord,
    Style,
    default_feature_record,
)
from equivcheck.core.ports import TextGenerationPort

logger = logging.getLogger(__name__)


EXTRACTION_SCHEMA = """{
  "themes": ["array", "of", "main", "themes"],
  "attributes": {
    "tempo": "fast/medium/slow or specific BPM if mentioned",
    "key": "major/minor or specific key if mentioned",
    "mood": "description of overall mood",
    "instrumentation": ["list", "of", "instruments", "mentioned"],
    "energy": "high/medium/low"
  },
  "style": {
    "complexity": "simple/moderate/complex",
    "emotionalTone": "description of emotional tone",
    "narrativeStyle": "description of storytelling approach",
    "commonTopics": ["list", "of", "common", "topics"]
  }
}"""

# Older payloads name the sections after the music domain
SECTION_ALIASES = {
    "attributes": ("attributes", "musicalCharacteristics"),
    "style": ("style", "lyricalStyle"),
}

# BPM thresholds for tempo classes
SLOW_BPM = 90
FAST_BPM = 130

ENERGY_KEYWORDS = {
    "high": ["energetic", "upbeat", "high energy", "fast", "intense"],
    "low": ["mellow", "slow", "calm", "relaxed", "soft"],
    "medium": ["moderate", "balanced", "steady"],
}

INSTRUMENT_KEYWORDS = [
    "guitar", "piano", "drums", "bass", "violin",
    "saxophone", "trumpet", "synth", "keyboard",
]


def build_extraction_prompt(document_text: str, entity_id: str, group: str) -> str:
    return (
        "Analyze the following document and extract key features. "
        "Return a JSON object with this exact structure:\n"
        f"{EXTRACTION_SCHEMA}\n\n"
        f"Entity: {entity_id}\n"
        f"Group: {group}\n\n"
        f"Document:\n{document_text}\n\n"
        "Return only valid JSON, no additional text."
    )


# =============================================================================
# Response cleanup
# =============================================================================

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) fence."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    return text


def find_json_object(text: str) -> str:
    """Return the outermost {...} span of text, or text unchanged."""
    if text.lstrip().startswith("{"):
        return text
    match = re.search(r"\{.*\}", text, re.DOTALL)
    return match.group(0) if match else text


def repair_json(text: str) -> str:
    """Fix the two most common model JSON mistakes: trailing commas and bare keys."""
    text = re.sub(r",(\s*[}\]])", r"\1", text)
    return re.sub(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:", r'\1"\2":', text)


def _section(text: str, names) -> Optional[str]:
    pattern = r'"?(?:%s)"?\s*:\s*\{([^}]*)\}' % "|".join(names)
    match = re.search(pattern, text, re.DOTALL | re.IGNORECASE)
    return match.group(1) if match else None


def _string_field(block: str, name: str) -> Optional[str]:
    match = re.search(r'"?%s"?\s*:\s*"([^"]+)"' % name, block, re.IGNORECASE)
    return match.group(1) if match else None


def salvage_features(text: str) -> Dict[str, Any]:
    """
    Recover whatever fields can be found in unparseable model output.

    Starts from the default record and overlays themes, tempo/mood/energy,
    complexity and emotional tone when they can be located.
    """
    data = default_feature_record().to_dict()

    themes = re.search(r'"?themes"?\s*:\s*\[(.*?)\]', text, re.DOTALL | re.IGNORECASE)
    if themes:
        data["themes"] = [
            t.strip().strip("\"'")
            for t in themes.group(1).split(",")
            if t.strip().strip("\"'")
        ]

    attrs_block = _section(text, SECTION_ALIASES["attributes"])
    if attrs_block:
        for name in ("tempo", "mood", "energy"):
            value = _string_field(attrs_block, name)
            if value:
                data["attributes"][name] = value

    style_block = _section(text, SECTION_ALIASES["style"])
    if style_block:
        complexity = _string_field(style_block, "complexity")
        if complexity and complexity.lower() in ("simple", "moderate", "complex"):
            data["style"]["complexity"] = complexity.lower()
        tone = _string_field(style_block, "emotionalTone")
        if tone:
            data["style"]["emotionalTone"] = tone

    return data


def normalize_payload(payload: Any) -> FeatureRecord:
    """
    Convert a parsed model payload into a FeatureRecord.

    Section aliases are accepted. A missing or malformed style section is
    replaced by the default style; a missing attribute section leaves all
    attributes unknown.
    """
    if not isinstance(payload, Mapping):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")

    def pick(section: str) -> Any:
        for name in SECTION_ALIASES[section]:
            if name in payload:
                return payload[name]
        return None

    style = pick("style")
    return FeatureRecord(
        themes=FeatureRecord.from_dict({"themes": payload.get("themes")}).themes,
        attributes=Attributes.from_dict(pick("attributes")),
        style=Style.from_dict(style) if isinstance(style, Mapping) else default_feature_record().style,
    )


def parse_feature_response(text: str) -> FeatureRecord:
    """Run the full cleanup chain over a model reply."""
    cleaned = strip_code_fences(text)
    candidate = find_json_object(cleaned)
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        try:
            payload = json.loads(repair_json(candidate))
        except json.JSONDecodeError:
            logger.warning("Could not parse feature JSON, salvaging fields from text")
            payload = salvage_features(cleaned)
    return normalize_payload(payload)


# =============================================================================
# Document hints
# =============================================================================

def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def parse_attribute_hints(text: str) -> Attributes:
    """
    Derive attributes from plain keywords in a document.

    - "<n> bpm" / "tempo: <n>" -> slow (< 90), medium (< 130) or fast
    - "<A-G>[#b] major|minor"  -> key
    - energy keyword lists     -> high / low / medium (first match wins)
    - known instrument names   -> instrumentation

    Keywords match whole words only.
    """
    if not text:
        return Attributes()

    tempo = None
    bpm_match = re.search(r"\b(\d+)\s*bpm\b", text, re.IGNORECASE) or \
        re.search(r"\b(?:tempo|bpm)[:\s]+(\d+)", text, re.IGNORECASE)
    if bpm_match:
        bpm = int(bpm_match.group(1))
        if bpm < SLOW_BPM:
            tempo = "slow"
        elif bpm < FAST_BPM:
            tempo = "medium"
        else:
            tempo = "fast"

    key = None
    key_match = re.search(r"\b([A-G][#b]?)\s*(major|minor)\b", text, re.IGNORECASE)
    if key_match:
        key = f"{key_match.group(1)} {key_match.group(2)}"

    lower = text.lower()
    energy = None
    for level, keywords in ENERGY_KEYWORDS.items():
        if any(_has_word(lower, kw) for kw in keywords):
            energy = level
            break

    instruments: List[str] = [inst for inst in INSTRUMENT_KEYWORDS if _has_word(lower, inst)]

    return Attributes(
        tempo=tempo,
        key=key,
        energy=energy,
        instrumentation=tuple(instruments) if instruments else None,
    )


def fill_missing_attributes(attributes: Attributes, hints: Attributes) -> Attributes:
    """Take each attribute from hints only where attributes leaves it unknown."""
    updates = {
        name: getattr(hints, name)
        for name in ("tempo", "key", "mood", "energy", "instrumentation")
        if getattr(attributes, name) is None and getattr(hints, name) is not None
    }
    return dataclasses.replace(attributes, **updates) if updates else attributes


class LLMFeatureExtractor:
    """
    FeatureExtractionPort backed by a text-generation model.

    Args:
        generator: Text generation port used for extraction
        timeout: Optional seconds to wait for the model
        use_document_hints: Fill attributes the model omitted from
                            keyword hints in the document (default: False)
    """

    def __init__(
        self,
        generator: TextGenerationPort,
        timeout: Optional[float] = None,
        use_document_hints: bool = False,
    ):
        self._generator = generator
        self._timeout = timeout
        self._use_document_hints = use_document_hints

    async def extract(self, document_text: str, entity_id: str, group: str) -> FeatureRecord:
        prompt = build_extraction_prompt(document_text, entity_id, group)
        try:
            call = self._generator.generate(prompt)
            if self._timeout is not None:
                reply = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                reply = await call
            record = parse_feature_response(reply)
        except Exception as e:
            logger.error("Feature extraction failed for %s (%s): %s", entity_id, group, e)
            return default_feature_record()

        if self._use_document_hints:
            hints = parse_attribute_hints(document_text)
            record = dataclasses.replace(
                record, attributes=fill_missing_attributes(record.attributes, hints)
            )
        return record
