"""Document store contract and an in-memory implementation.

The import pipeline only needs four operations per collection: find one
document by filter, insert, update by id, and count by filter. Filters are
plain field-equality mappings, optionally combined with ``{"$or": [...]}``.

``InMemoryStore`` enforces unique indexes the way a production document
database would (``DuplicateKeyError`` on conflicting insert or update) and
can be saved to and loaded from a JSON snapshot, which the CLI uses to keep
state between runs.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

LOG = logging.getLogger(__name__)

CLIENTS = "clients"
USERS = "users"

DEFAULT_UNIQUE_KEYS: Mapping[str, Tuple[str, ...]] = {
    CLIENTS: ("national_id",),
    "vaccination": ("serial_no",),
    "parasite_control": ("serial_no",),
    "mobile_clinic": ("serial_no",),
    "laboratory": ("sample_code",),
    "equine_health": ("serial_no",),
}


class DuplicateKeyError(Exception):
    """An insert or update would violate a unique index.

    Parameters
    ----------
    collection : str
        Collection holding the index.
    key : str
        Indexed field.
    value : Any
        Conflicting value.
    """

    def __init__(self, collection: str, key: str, value: Any):
        self.collection = collection
        self.key = key
        self.value = value
        super().__init__(f"Duplicate {key} {value!r} in {collection}")


class DocumentStore(Protocol):
    """Storage operations consumed by the import pipeline."""

    def find_one(self, collection: str, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> str:
        ...

    def update_one(self, collection: str, document_id: str, patch: Mapping[str, Any]) -> bool:
        ...

    def count(self, collection: str, filter: Mapping[str, Any]) -> int:
        ...


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Return True when a document satisfies a filter.

    Every top-level key must match. ``$or`` takes a list of sub-filters of
    which at least one must match; an empty ``$or`` never matches.
    """
    for key, expected in filter.items():
        if key == "$or":
            if not any(matches(document, clause) for clause in expected):
                return False
        elif document.get(key) != expected:
            return False
    return True


class InMemoryStore:
    """Dict-backed DocumentStore with unique indexes.

    Parameters
    ----------
    unique_keys : Mapping[str, Tuple[str, ...]], optional
        Collection name to uniquely indexed fields. Blank values are not
        indexed. Defaults to ``DEFAULT_UNIQUE_KEYS``.
    id_factory : Callable[[], str], optional
        Generates ``_id`` values for inserted documents.
    """

    def __init__(
        self,
        unique_keys: Optional[Mapping[str, Tuple[str, ...]]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.unique_keys = dict(DEFAULT_UNIQUE_KEYS if unique_keys is None else unique_keys)
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _check_unique(
        self, collection: str, document: Mapping[str, Any], exclude_id: Optional[str] = None
    ) -> None:
        for key in self.unique_keys.get(collection, ()):
            value = document.get(key)
            if value is None or value == "":
                continue
            for existing_id, existing in self._collection(collection).items():
                if existing_id != exclude_id and existing.get(key) == value:
                    raise DuplicateKeyError(collection, key, value)

    def find(self, collection: str, filter: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Return copies of all matching documents in insertion order."""
        return [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if matches(document, filter or {})
        ]

    def find_one(self, collection: str, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        for document in self._collection(collection).values():
            if matches(document, filter):
                return copy.deepcopy(document)
        return None

    def insert_one(self, collection: str, document: Mapping[str, Any]) -> str:
        stored = copy.deepcopy(dict(document))
        document_id = str(stored.get("_id") or self._id_factory())
        stored["_id"] = document_id
        if document_id in self._collection(collection):
            raise DuplicateKeyError(collection, "_id", document_id)
        self._check_unique(collection, stored)
        self._collection(collection)[document_id] = stored
        return document_id

    def update_one(self, collection: str, document_id: str, patch: Mapping[str, Any]) -> bool:
        current = self._collection(collection).get(document_id)
        if current is None:
            return False
        updated = {**current, **copy.deepcopy(dict(patch)), "_id": document_id}
        self._check_unique(collection, updated, exclude_id=document_id)
        self._collection(collection)[document_id] = updated
        return True

    def count(self, collection: str, filter: Optional[Mapping[str, Any]] = None) -> int:
        return sum(1 for document in self._collection(collection).values() if matches(document, filter or {}))

    def collections(self) -> Iterable[str]:
        return list(self._collections)

    def dump(self, path: Path) -> Path:
        """Write every collection to a JSON snapshot file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = {name: list(documents.values()) for name, documents in self._collections.items()}
        path.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
        LOG.info("Wrote store snapshot to %s", path)
        return path

    @classmethod
    def load(cls, path: Path, **kwargs: Any) -> "InMemoryStore":
        """Create a store from a JSON snapshot written by ``dump``.

        Raises
        ------
        FileNotFoundError
            If the snapshot does not exist.
        ValueError
            If the snapshot is not a mapping of collection name to document list.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Store snapshot not found: {path}")
        snapshot = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(snapshot, dict):
            raise ValueError(f"Store snapshot must be a JSON object: {path}")

        store = cls(**kwargs)
        for collection, documents in snapshot.items():
            if not isinstance(documents, list):
                raise ValueError(f"Collection {collection!r} in {path} must be a list")
            for document in documents:
                store.insert_one(collection, document)
        LOG.info("Loaded store snapshot from %s", path)
        return store
