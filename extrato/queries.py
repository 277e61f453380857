"""Filtering and totals over the loaded transactions."""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from extrato.models.schemas import DailyTotals, FinancialSummary, Transaction, TransactionType

COLUMN_FILTERS = (
    "date", "owner_name", "paying_bank", "type", "origin",
    "counterparty_name", "amount", "notes",
)


class TransactionFilter(BaseModel):
    """
    View filter used before duplicate marking and reporting.

    ``start_date``/``end_date`` are inclusive ``YYYY-MM-DD`` bounds on the
    date portion. ``columns`` holds per-column substring filters; the
    ``date`` column is an exact date-portion match.
    """
    owner_tax_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    search: Optional[str] = None
    columns: Dict[str, str] = {}

    def apply(self, transactions: Iterable[Transaction]) -> List[Transaction]:
        result = list(transactions)

        if self.owner_tax_id:
            result = [t for t in result if t.owner_tax_id == self.owner_tax_id]
        if self.start_date:
            result = [t for t in result if t.date_part >= self.start_date]
        if self.end_date:
            result = [t for t in result if t.date_part <= self.end_date]

        term = (self.search or "").strip().lower()
        if term:
            result = [t for t in result if term in _search_text(t)]

        for column, value in self.columns.items():
            if column not in COLUMN_FILTERS:
                raise ValueError(f"Unknown column filter: {column}")
            value = (value or "").lower()
            if not value:
                continue
            if column == "date":
                result = [t for t in result if t.date_part == value]
            else:
                result = [t for t in result if value in _column_text(t, column)]

        return sorted(result, key=lambda t: t.date, reverse=True)


def _column_text(transaction: Transaction, column: str) -> str:
    value = getattr(transaction, column)
    if isinstance(value, TransactionType):
        value = value.value
    return str(value).lower()


def _search_text(transaction: Transaction) -> str:
    return " ".join([
        transaction.counterparty_name,
        transaction.paying_bank,
        transaction.payment_method.value,
        str(transaction.amount),
        transaction.origin,
        transaction.description,
        transaction.owner_name,
    ]).lower()


def summarize(transactions: Iterable[Transaction]) -> FinancialSummary:
    """
    Inflow/outflow totals, payment method counts and per-day totals.

    Manual balance rows are counted but add to neither total.
    """
    total_inflow = Decimal("0.00")
    total_outflow = Decimal("0.00")
    count = 0
    payment_methods: Dict[str, int] = defaultdict(int)
    daily: Dict[str, DailyTotals] = {}
    for transaction in transactions:
        count += 1
        payment_methods[transaction.payment_method.value] += 1
        day = daily.setdefault(transaction.date_part, DailyTotals())
        if transaction.type == TransactionType.INFLOW:
            total_inflow += transaction.amount
            day.inflow += transaction.amount
        elif transaction.type == TransactionType.OUTFLOW:
            total_outflow += transaction.amount
            day.outflow += transaction.amount
    return FinancialSummary(
        total_inflow=total_inflow,
        total_outflow=total_outflow,
        balance=total_inflow - total_outflow,
        transaction_count=count,
        payment_methods=dict(payment_methods),
        daily={key: daily[key] for key in sorted(daily)},
    )
