"""
Transaction extraction from reconstructed statement text.

A row is ``DD/MM[/YYYY] <description> <amount>`` on one reconstructed line.
Scanning is a lazy sequence of non-overlapping matches; each match becomes
at most one transaction, rows with an unusable amount are dropped.
"""
import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from extrato.config import config
from extrato.extraction.amount_parser import AMOUNT_PATTERN, has_negative_marker, parse_amount
from extrato.models.schemas import (
    MIDDAY,
    PaymentMethod,
    StatementHeader,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

ROW_PATTERN = re.compile(
    r'(?P<date>\d{2}/\d{2}(?:/(?:\d{4}|\d{2}))?)[ \t]+'
    r'(?P<description>.*?)[ \t]+'
    r'(?P<amount>' + AMOUNT_PATTERN + r')'
)

LOCAL_COUNTERPARTY = "Extraído via PDF"
THIRD_PARTY_PAYER = "Terceiro"
LOCAL_ORIGIN = "Importação PDF Local"

# Priority order matters: first vocabulary that matches wins.
PAYMENT_METHOD_ORDER = [
    PaymentMethod.PIX,
    PaymentMethod.TED,
    PaymentMethod.BOLETO,
    PaymentMethod.CARTAO,
]


def normalize_date(date_text: str, now: Optional[datetime] = None) -> str:
    """
    Turn ``DD/MM`` or ``DD/MM/YYYY`` into ``YYYY-MM-DDT12:00:00``.

    A missing year is taken from ``now``; two-digit years are 20YY.
    Anything that is not a real calendar date yields ``now`` itself.
    """
    now = now or datetime.now()
    parts = (date_text or '').strip().split('/')
    try:
        day, month = int(parts[0]), int(parts[1])
        year = int(parts[2]) if len(parts) > 2 else now.year
        if year < 100:
            year += 2000
        parsed = datetime(year, month, day)
    except (ValueError, IndexError):
        logger.debug("Malformed date %r, using current timestamp", date_text)
        return now.replace(microsecond=0).isoformat()
    return f"{parsed:%Y-%m-%d}T{MIDDAY}"


class TransactionLineExtractor:
    """Scan statement text for transaction rows."""

    def __init__(
        self,
        outflow_patterns: Optional[Iterable[str]] = None,
        inflow_override_patterns: Optional[Iterable[str]] = None,
        payment_method_keywords: Optional[Dict[str, List[str]]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.outflow_patterns = [
            re.compile(p, re.IGNORECASE)
            for p in (outflow_patterns or config.get('extraction.outflow_patterns', []))
        ]
        self.inflow_override_patterns = [
            re.compile(p, re.IGNORECASE)
            for p in (inflow_override_patterns or config.get('extraction.inflow_override_patterns', []))
        ]
        keywords = payment_method_keywords or config.get('extraction.payment_method_keywords', {})
        self.payment_method_keywords: List[Tuple[PaymentMethod, List[str]]] = [
            (method, [k.upper() for k in keywords.get(method.value, [])])
            for method in PAYMENT_METHOD_ORDER
        ]
        self.clock = clock

    def iter_matches(self, text: str) -> Iterator[re.Match]:
        """Non-overlapping row matches, in document order."""
        return ROW_PATTERN.finditer(text or '')

    def extract(self, text: str, header: StatementHeader) -> List[Transaction]:
        """All transactions found in ``text``, stamped with ``header``."""
        now = self.clock()
        transactions = []
        dropped = 0
        for match in self.iter_matches(text):
            transaction = self._build_transaction(match, header, now)
            if transaction is None:
                dropped += 1
                continue
            transactions.append(transaction)

        logger.info("Extracted %d transaction(s), dropped %d row(s)", len(transactions), dropped)
        return transactions

    def _build_transaction(
        self,
        match: re.Match,
        header: StatementHeader,
        now: datetime,
    ) -> Optional[Transaction]:
        raw_amount = match.group('amount')
        amount = parse_amount(raw_amount)
        if amount is None or amount == Decimal('0'):
            logger.debug("Dropping row %r: unusable amount %r", match.group(0), raw_amount)
            return None

        description = match.group('description').strip()
        transaction_type = self.classify_direction(description, raw_amount)
        is_outflow = transaction_type == TransactionType.OUTFLOW

        return Transaction(
            date=normalize_date(match.group('date'), now),
            description=description,
            amount=amount,
            type=transaction_type,
            counterparty_name=LOCAL_COUNTERPARTY,
            counterparty_tax_id='',
            payment_method=self.classify_payment_method(description),
            payer_name=header.owner_name if is_outflow else THIRD_PARTY_PAYER,
            origin=LOCAL_ORIGIN,
            paying_bank=header.owner_bank,
            owner_name=header.owner_name,
            owner_tax_id=header.owner_tax_id,
            owner_bank=header.owner_bank,
            notes='',
        )

    def classify_direction(self, description: str, raw_amount: str) -> TransactionType:
        """
        Outflow on a negative marker or outflow vocabulary, else inflow.

        Automatic investment redemptions are always inflow.
        """
        if any(p.search(description) for p in self.inflow_override_patterns):
            return TransactionType.INFLOW
        if has_negative_marker(raw_amount):
            return TransactionType.OUTFLOW
        if any(p.search(description) for p in self.outflow_patterns):
            return TransactionType.OUTFLOW
        return TransactionType.INFLOW

    def classify_payment_method(self, description: str) -> PaymentMethod:
        upper = description.upper()
        for method, keywords in self.payment_method_keywords:
            if any(re.search(r'\b%s' % re.escape(k), upper) for k in keywords):
                return method
        return PaymentMethod.OUTROS
