import copy
import uuid
from typing import Dict, List, Optional

from booklog.services.document_store import (
    Document,
    DocumentStore,
    Query,
    Sort,
    apply_query,
)


class MemoryDocumentStore(DocumentStore):
    """Process-local store used in test mode.

    Documents are copied on the way in and out so callers can never mutate
    stored state behind the store's back.
    """

    def __init__(self, collection: str) -> None:
        self.collection = collection
        self.documents: Dict[str, Document] = {}

    async def find(
        self,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        found = apply_query(self.documents.values(), query, sort, limit)
        return [copy.deepcopy(doc) for doc in found]

    async def find_by_id(self, doc_id: str) -> Optional[Document]:
        doc = self.documents.get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert(self, doc: Document) -> Document:
        stored = copy.deepcopy(doc)
        stored["_id"] = uuid.uuid4().hex
        self.documents[stored["_id"]] = stored
        return copy.deepcopy(stored)

    async def update_by_id(self, doc_id: str, patch: Document) -> Optional[Document]:
        doc = self.documents.get(doc_id)
        if doc is None:
            return None
        doc.update({k: copy.deepcopy(v) for k, v in patch.items() if k != "_id"})
        return copy.deepcopy(doc)

    async def remove_by_id(self, doc_id: str) -> bool:
        return self.documents.pop(doc_id, None) is not None

    async def clear(self) -> None:
        self.documents.clear()
