"""Data extraction modules."""
from .header_extractor import HeaderExtractor
from .local_parser import LocalStatementParser
from .transaction_extractor import TransactionLineExtractor, normalize_date

__all__ = ["HeaderExtractor", "LocalStatementParser", "TransactionLineExtractor", "normalize_date"]
