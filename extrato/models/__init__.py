"""Data models for bank statement import."""
from .schemas import (
    UNIDENTIFIED_BANK,
    UNIDENTIFIED_OWNER,
    Company,
    DailyTotals,
    FinancialSummary,
    PaymentMethod,
    PositionedFragment,
    ReconstructedLine,
    StatementHeader,
    StatementResult,
    Transaction,
    TransactionType,
    new_transaction_id,
)

__all__ = [
    "UNIDENTIFIED_BANK",
    "UNIDENTIFIED_OWNER",
    "Company",
    "DailyTotals",
    "FinancialSummary",
    "PaymentMethod",
    "PositionedFragment",
    "ReconstructedLine",
    "StatementHeader",
    "StatementResult",
    "Transaction",
    "TransactionType",
    "new_transaction_id",
]
