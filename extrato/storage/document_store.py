"""
Persistence collaborator.

Logical collections (transactions, companies, users and day-closing
dashboard snapshots) with bulk read, append with a store-assigned id,
single-record patch and delete. No multi-record transactions are offered or needed.
"""
import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
COMPANIES = "companies"
USERS = "users"
DASHBOARD = "dashboard"
COLLECTIONS = (TRANSACTIONS, COMPANIES, USERS, DASHBOARD)


class RecordNotFoundError(KeyError):
    """No record with this id in the collection."""


class DocumentStore(ABC):
    """Minimal document store interface."""

    @abstractmethod
    def read_all(self, collection: str) -> List[Dict[str, Any]]:
        """Every record of ``collection``, each carrying its ``id``."""

    @abstractmethod
    def add(self, collection: str, record: Dict[str, Any]) -> str:
        """Append ``record`` and return the id assigned by the store."""

    @abstractmethod
    def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        """Overwrite the fields in ``patch`` on one record."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> None:
        """Remove one record."""


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store, the default for tests and one-off runs."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in COLLECTIONS}

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        if collection not in self._data:
            raise ValueError(f"Unknown collection: {collection}")
        return self._data[collection]

    def read_all(self, collection: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._collection(collection).values()]

    def add(self, collection: str, record: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        stored = copy.deepcopy(record)
        stored["id"] = record_id
        self._collection(collection)[record_id] = stored
        self._persist()
        return record_id

    def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        records = self._collection(collection)
        if record_id not in records:
            raise RecordNotFoundError(f"{collection}/{record_id}")
        patch = {k: v for k, v in copy.deepcopy(patch).items() if k != "id"}
        records[record_id].update(patch)
        self._persist()

    def delete(self, collection: str, record_id: str) -> None:
        records = self._collection(collection)
        if record_id not in records:
            raise RecordNotFoundError(f"{collection}/{record_id}")
        del records[record_id]
        self._persist()

    def _persist(self):
        pass


class JsonFileDocumentStore(InMemoryDocumentStore):
    """In-memory store mirrored to a JSON file after every write."""

    def __init__(self, path: str, indent: int = 2):
        super().__init__()
        self.path = Path(path)
        self.indent = indent
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = json.load(f) or {}
            for name in COLLECTIONS:
                self._data[name] = {r["id"]: r for r in loaded.get(name, [])}
            logger.info(
                "Loaded store %s (%d transactions, %d companies)",
                self.path, len(self._data[TRANSACTIONS]), len(self._data[COMPANIES]),
            )

    def _persist(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = {name: list(records.values()) for name, records in self._data.items()}
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=self.indent)
