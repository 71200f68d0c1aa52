"""
In-memory entity document store.

Reference DocumentStorePort used to feed feature extraction and index
building. Lookups are case-insensitive on both entity and group.

Payload format:
    {"entities": [{"group": "...", "entity": "...", "document": "..."}, ...]}
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityDocument:
    """Free-text description of one entity."""
    entity_id: str
    group: str
    document: str


def _key(entity_id: str, group: str) -> Tuple[str, str]:
    return entity_id.strip().lower(), group.strip().lower()


class InMemoryDocumentStore:
    """Dictionary-backed document store keyed by (entity, group)."""

    def __init__(self, documents: Iterable[EntityDocument] = ()):
        self._documents: Dict[Tuple[str, str], EntityDocument] = {}
        for doc in documents:
            self.add(doc)

    def add(self, document: EntityDocument) -> None:
        """Add or replace a document."""
        self._documents[_key(document.entity_id, document.group)] = document

    async def get_document(self, entity_id: str, group: str) -> Optional[str]:
        doc = self._documents.get(_key(entity_id, group))
        return doc.document if doc else None

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[EntityDocument]:
        return iter(self._documents.values())

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "InMemoryDocumentStore":
        """Build a store from the JSON payload shape; malformed entries are skipped."""
        store = cls()
        for i, entry in enumerate(payload.get("entities") or []):
            if not isinstance(entry, Mapping):
                logger.warning("Skipping document entry %d: not an object", i)
                continue
            entity, group = entry.get("entity"), entry.get("group")
            if not isinstance(entity, str) or not isinstance(group, str):
                logger.warning("Skipping document entry %d: missing entity or group", i)
                continue
            document = entry.get("document")
            store.add(EntityDocument(entity, group, document if isinstance(document, str) else ""))
        return store

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryDocumentStore":
        with Path(path).open("r", encoding="utf-8") as f:
            return cls.from_payload(json.load(f))
