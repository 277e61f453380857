"""Storage collaborators."""
from .document_store import (
    COMPANIES,
    DASHBOARD,
    TRANSACTIONS,
    USERS,
    DocumentStore,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    RecordNotFoundError,
)

__all__ = [
    "COMPANIES",
    "DASHBOARD",
    "TRANSACTIONS",
    "USERS",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "RecordNotFoundError",
]
