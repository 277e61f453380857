"""Deduplication and company directory reconciliation."""
from .deduplicator import TransactionDeduplicator, identity_key
from .directory_sync import CompanyDirectory, find_new_companies, name_key

__all__ = [
    "CompanyDirectory",
    "TransactionDeduplicator",
    "find_new_companies",
    "identity_key",
    "name_key",
]
