"""
In-Memory Collection Repository

Dictionary-backed implementation of the repository interface. Supports the
subset of MongoDB query/update syntax the services use: equality filters,
$in / $ne / $exists operators, $set / $unset updates, sort and limit.
"""

import copy
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

from .base import CollectionRepositoryInterface, WriteResult

logger = logging.getLogger(__name__)


def _matches(document: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for key, condition in filter.items():
        present = key in document
        value = document.get(key)
        if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op == "$in":
                    if value not in operand:
                        return False
                elif op == "$ne":
                    if value == operand:
                        return False
                elif op == "$exists":
                    if present != bool(operand):
                        return False
                else:
                    raise ValueError(f"Unsupported query operator: {op}")
        elif value != condition or not present:
            return False
    return True


def _apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> bool:
    """Apply $set/$unset in place. Returns True if anything changed."""
    changed = False
    for op, fields in update.items():
        if op == "$set":
            for key, value in fields.items():
                if document.get(key) != value or key not in document:
                    document[key] = copy.deepcopy(value)
                    changed = True
        elif op == "$unset":
            for key in fields:
                if key in document:
                    del document[key]
                    changed = True
        else:
            raise ValueError(f"Unsupported update operator: {op}")
    return changed


class MemoryRepository(CollectionRepositoryInterface):
    """
    Process-local repository.

    Returned documents are deep copies, so callers can never mutate stored
    state without going through update_one.
    """

    def __init__(self, collection: str):
        self.collection_name = collection
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _iter_matching(self, filter: Dict[str, Any]):
        for doc in self._documents.values():
            if _matches(doc, filter):
                yield doc

    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for doc in self._iter_matching(filter):
                return copy.deepcopy(doc)
        return None

    def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[List[tuple]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            results = [copy.deepcopy(doc) for doc in self._iter_matching(filter)]

        # Apply sort keys last-to-first so the first key wins (stable sort)
        for field, direction in reversed(sort or []):
            results.sort(
                key=lambda d: (d.get(field) is None, d.get(field)),
                reverse=direction < 0,
            )
        if limit:
            results = results[:limit]
        return results

    def count_documents(self, filter: Dict[str, Any]) -> int:
        with self._lock:
            return sum(1 for _ in self._iter_matching(filter))

    def insert_one(self, document: Dict[str, Any]) -> WriteResult:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        with self._lock:
            if stored["_id"] in self._documents:
                raise ValueError(f"Duplicate _id in {self.collection_name}: {stored['_id']}")
            self._documents[stored["_id"]] = stored
        document.setdefault("_id", stored["_id"])
        return WriteResult(upserted_id=stored["_id"])

    def update_one(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> WriteResult:
        with self._lock:
            for doc in self._iter_matching(filter):
                changed = _apply_update(doc, update)
                return WriteResult(matched_count=1, modified_count=1 if changed else 0)

            if not upsert:
                return WriteResult()

            new_doc = {k: v for k, v in filter.items() if not isinstance(v, dict)}
            _apply_update(new_doc, update)
            new_doc.setdefault("_id", uuid.uuid4().hex)
            self._documents[new_doc["_id"]] = new_doc
            return WriteResult(upserted_id=new_doc["_id"])

    def delete_one(self, filter: Dict[str, Any]) -> WriteResult:
        with self._lock:
            for doc in self._iter_matching(filter):
                del self._documents[doc["_id"]]
                return WriteResult(deleted_count=1)
        return WriteResult()

    def delete_many(self, filter: Dict[str, Any]) -> WriteResult:
        with self._lock:
            doomed = [doc["_id"] for doc in self._iter_matching(filter)]
            for doc_id in doomed:
                del self._documents[doc_id]
        return WriteResult(deleted_count=len(doomed))
