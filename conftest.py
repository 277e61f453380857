"""Shared pytest fixtures and builders."""
from decimal import Decimal

import fitz  # PyMuPDF
import pytest

from extrato.models.schemas import (
    PaymentMethod,
    StatementHeader,
    StatementResult,
    Transaction,
    TransactionType,
)


def make_transaction(**overrides) -> Transaction:
    fields = dict(
        date="2024-01-01T12:00:00",
        description="PIX ENVIADO",
        amount=Decimal("100.00"),
        type=TransactionType.OUTFLOW,
        counterparty_name="Y",
        payment_method=PaymentMethod.PIX,
        owner_name="ACME LTDA",
        owner_tax_id="12345678000190",
        owner_bank="X",
    )
    fields.update(overrides)
    return Transaction(**fields)


def make_result(owner_name="ACME LTDA", owner_tax_id="12345678000190", owner_bank="Itaú", rows=()):
    """StatementResult with fresh Transaction objects on every call."""
    header = StatementHeader(owner_name=owner_name, owner_tax_id=owner_tax_id, owner_bank=owner_bank)
    transactions = [
        make_transaction(
            date=date, amount=Decimal(amount), type=kind,
            owner_name=owner_name, owner_tax_id=owner_tax_id, owner_bank=owner_bank,
            counterparty_name=counterparty,
        )
        for date, amount, kind, counterparty in rows
    ]
    return StatementResult(header=header, transactions=transactions)


def build_pdf(pages) -> bytes:
    """PDF bytes; ``pages`` is a list of [(x, y_from_top, text), ...]."""
    doc = fitz.open()
    for items in pages:
        page = doc.new_page(width=595, height=842)
        for x, y, text in items:
            page.insert_text((x, y), text, fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


class FakeRemote:
    """Stands in for GeminiClient; maps payload bytes to a result or an error."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def extract_statement(self, payload, mime_type):
        self.calls.append((payload, mime_type))
        response = self.responses[payload]
        if isinstance(response, Exception):
            raise response
        return response()


@pytest.fixture
def statement_pdf() -> bytes:
    # Columns are written out of reading order on purpose.
    return build_pdf([[
        (450, 150, "1.200,00"),
        (450, 165, "-15,90"),
        (130, 150, "PIX RECEBIDO JOAO"),
        (130, 165, "TARIFA BANCARIA"),
        (72, 150, "05/02/2024"),
        (72, 165, "06/02/2024"),
        (72, 60, "EXTRATO DE CONTA CORRENTE"),
        (72, 80, "PADARIA PAO QUENTE LTDA"),
        (72, 95, "CNPJ: 12.345.678/0001-90"),
        (72, 110, "BANCO BRADESCO S.A. - AGENCIA 0001"),
    ]])
