"""Pydantic models for bank statement import data."""
import re
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

UNIDENTIFIED_OWNER = "Empresa Não Identificada"
UNIDENTIFIED_BANK = "Banco Não Identificado"
MIDDAY = "12:00:00"

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATE_TIME = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")


class TransactionType(str, Enum):
    """Direction of a transaction relative to the owner."""
    INFLOW = "entrada"
    OUTFLOW = "saída"
    MANUAL = "saldo manual"


class PaymentMethod(str, Enum):
    """Closed set of payment methods."""
    PIX = "PIX"
    TED = "TED"
    BOLETO = "BOLETO"
    CARTAO = "CARTÃO"
    OUTROS = "OUTROS"


def new_transaction_id() -> str:
    return uuid.uuid4().hex


class PositionedFragment(BaseModel):
    """A run of text anchored on a page.

    ``y`` follows PDF page space: it grows towards the top of the page.
    """
    text: str
    x: float
    y: float
    page: int = 0


class ReconstructedLine(BaseModel):
    """Fragments sharing a vertical band, left to right."""
    y: float
    fragments: List[PositionedFragment] = []

    @property
    def text(self) -> str:
        return " ".join(f.text for f in self.fragments if f.text)


class StatementHeader(BaseModel):
    """Owner identity of one statement, shared by all its transactions."""
    owner_name: str = UNIDENTIFIED_OWNER
    owner_tax_id: str = ""
    owner_bank: str = UNIDENTIFIED_BANK

    model_config = {"frozen": True}


class Transaction(BaseModel):
    """A normalized transaction.

    ``amount`` is always a magnitude; direction lives in ``type`` only.
    ``date`` is ISO-8601 ``YYYY-MM-DDTHH:MM:SS``.
    """
    id: str = Field(default_factory=new_transaction_id)
    date: str
    description: str
    amount: Decimal = Field(ge=0)
    type: TransactionType
    counterparty_name: str = ""
    counterparty_tax_id: str = ""
    payment_method: PaymentMethod = PaymentMethod.OUTROS
    payer_name: str = ""
    origin: str = ""
    paying_bank: str = ""
    owner_name: str = UNIDENTIFIED_OWNER
    owner_tax_id: str = ""
    owner_bank: str = UNIDENTIFIED_BANK
    notes: str = ""

    model_config = {"validate_assignment": True}

    @field_validator("date")
    @classmethod
    def _iso_date_time(cls, value: str) -> str:
        """``YYYY-MM-DDTHH:MM:SS``; a bare ``YYYY-MM-DD`` gets the midday time."""
        value = (value or "").strip()
        if ISO_DATE.match(value):
            value = f"{value}T{MIDDAY}"
        if not ISO_DATE_TIME.match(value):
            raise ValueError(f"Data fora do formato YYYY-MM-DDTHH:MM:SS: {value!r}")
        datetime.strptime(value, "%Y-%m-%dT%H:%M:%S")
        return value

    @field_validator("amount")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        return value.quantize(Decimal("0.01"))

    @property
    def date_part(self) -> str:
        """The ``YYYY-MM-DD`` portion of ``date``."""
        return self.date.split("T")[0]


class Company(BaseModel):
    """Directory entry for a known owner/counterparty."""
    id: Optional[str] = None
    name: str
    original_name: Optional[str] = None
    tax_id: str = ""
    alternative_names: List[str] = []
    hidden: bool = False

    def known_names(self) -> List[str]:
        return [self.name] + list(self.alternative_names)


class StatementResult(BaseModel):
    """Output of either extraction path for one document."""
    header: StatementHeader
    transactions: List[Transaction] = []

    @property
    def owner_name(self) -> str:
        return self.header.owner_name

    @property
    def owner_tax_id(self) -> str:
        return self.header.owner_tax_id

    @property
    def owner_bank(self) -> str:
        return self.header.owner_bank


class DailyTotals(BaseModel):
    inflow: Decimal = Decimal("0.00")
    outflow: Decimal = Decimal("0.00")


class FinancialSummary(BaseModel):
    """Totals over a set of transactions.

    ``payment_methods`` counts rows per method; ``daily`` holds inflow and
    outflow per ``YYYY-MM-DD`` day, in date order.
    """
    total_inflow: Decimal = Decimal("0.00")
    total_outflow: Decimal = Decimal("0.00")
    balance: Decimal = Decimal("0.00")
    transaction_count: int = 0
    payment_methods: Dict[str, int] = {}
    daily: Dict[str, DailyTotals] = {}
