"""
Pytest configuration and shared fixtures.

The fakes here implement the ports in equivcheck.core.ports with plain
dictionaries so tests can script index hits, documents, features and
model replies.
"""

import pytest

from equivcheck.core.models import Attributes, Complexity, FeatureRecord, Style


class FakeVectorIndex:
    """
    Scripted VectorLookupPort.

    vectors maps id -> list of floats. query_results is a list of hit
    lists; call n returns query_results[n] (the last one is reused).
    Set query_error to make every query raise.
    """

    def __init__(self):
        self.vectors = {}
        self.query_results = [[]]
        self.query_error = None
        self.queries = []
        self.lookups = []

    async def get_by_id(self, vector_id):
        self.lookups.append(vector_id)
        return self.vectors.get(vector_id)

    async def query(self, vector, top_k, metadata_filter=None):
        self.queries.append((list(vector), top_k))
        if self.query_error is not None:
            raise self.query_error
        n = min(len(self.queries) - 1, len(self.query_results) - 1)
        return self.query_results[n]


class FakeDocumentStore:
    """DocumentStorePort over a {(entity, group): text} dict."""

    def __init__(self):
        self.documents = {}

    async def get_document(self, entity_id, group):
        return self.documents.get((entity_id, group))


class FakeExtractor:
    """
    FeatureExtractionPort returning scripted records per entity.

    Values in features may be exceptions, which are raised.
    """

    def __init__(self):
        self.features = {}
        self.calls = []

    async def extract(self, document_text, entity_id, group):
        self.calls.append((document_text, entity_id, group))
        value = self.features.get(entity_id, FeatureRecord())
        if isinstance(value, Exception):
            raise value
        return value


class FakeGenerator:
    """TextGenerationPort returning a fixed reply, or raising error if set."""

    def __init__(self, reply=""):
        self.reply = reply
        self.error = None
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def fake_index():
    return FakeVectorIndex()


@pytest.fixture
def fake_documents():
    return FakeDocumentStore()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def love_loss_features():
    """Source record from the reference end-to-end scenario."""
    return FeatureRecord(
        themes=("love", "loss"),
        attributes=Attributes(energy="high"),
        style=Style(
            complexity=Complexity.COMPLEX,
            emotional_tone="bittersweet longing",
            common_topics=("breakup",),
        ),
    )


@pytest.fixture
def loss_hope_features():
    """Target record from the reference end-to-end scenario."""
    return FeatureRecord(
        themes=("loss", "hope"),
        attributes=Attributes(energy="high"),
        style=Style(
            complexity=Complexity.MODERATE,
            emotional_tone="hopeful longing",
            common_topics=("breakup",),
        ),
    )
