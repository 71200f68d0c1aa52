"""Tests for the in-memory document store."""

import asyncio
import json

from equivcheck.core.documents import EntityDocument, InMemoryDocumentStore


class TestInMemoryDocumentStore:
    """Tests for document lookup and loading."""

    def test_lookup_is_case_insensitive(self):
        store = InMemoryDocumentStore([EntityDocument("Adele", "Pop", "Soul ballads.")])
        assert asyncio.run(store.get_document(" adele", "POP ")) == "Soul ballads."

    def test_missing_document(self):
        store = InMemoryDocumentStore()
        assert asyncio.run(store.get_document("Adele", "Pop")) is None

    def test_add_replaces(self):
        store = InMemoryDocumentStore([EntityDocument("Adele", "Pop", "old")])
        store.add(EntityDocument("adele", "pop", "new"))
        assert len(store) == 1
        assert asyncio.run(store.get_document("Adele", "Pop")) == "new"

    def test_from_payload_skips_malformed(self, caplog):
        payload = {"entities": [
            {"group": "Pop", "entity": "Adele", "document": "Soul ballads."},
            {"group": "Pop"},
            "not an entry",
            {"group": "Country", "entity": "Dolly Parton", "document": None},
        ]}
        with caplog.at_level("WARNING"):
            store = InMemoryDocumentStore.from_payload(payload)
        assert len(store) == 2
        assert asyncio.run(store.get_document("Dolly Parton", "Country")) == ""
        assert "Skipping document entry 1" in caplog.text

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "entities.json"
        path.write_text(json.dumps({"entities": [
            {"group": "Rock", "entity": "Bruce Springsteen", "document": "Heartland rock."},
        ]}), encoding="utf-8")
        store = InMemoryDocumentStore.from_json_file(path)
        assert [doc.entity_id for doc in store] == ["Bruce Springsteen"]
