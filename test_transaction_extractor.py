"""Tests for transaction row scanning and classification."""
from datetime import datetime
from decimal import Decimal

import pytest

from extrato.extraction.amount_parser import parse_amount
from extrato.extraction.transaction_extractor import (
    LOCAL_COUNTERPARTY,
    LOCAL_ORIGIN,
    THIRD_PARTY_PAYER,
    TransactionLineExtractor,
    normalize_date,
)
from extrato.models.schemas import PaymentMethod, StatementHeader, TransactionType

NOW = datetime(2024, 3, 10, 9, 30, 15, 123456)

STATEMENT = """ACME COMERCIO LTDA
15/01 PIX RECEBIDO FULANO 1.500,00
16/01/2023 PAGAMENTO BOLETO ENERGIA 230,45
17/01 TED ENVIADA -2.000,00
18/01 SALDO DO DIA 0,00
20/01 RESGATE AUTOMATICO INVEST -350,00
21/01 COMPRA CARTAO MERCADO 89,90-"""

HEADER = StatementHeader(owner_name="ACME COMERCIO LTDA", owner_tax_id="11222333000144", owner_bank="Itaú")


@pytest.fixture
def extractor():
    return TransactionLineExtractor(clock=lambda: NOW)


def test_rows_are_extracted_in_order(extractor):
    transactions = extractor.extract(STATEMENT, HEADER)

    assert [t.date for t in transactions] == [
        "2024-01-15T12:00:00",
        "2023-01-16T12:00:00",
        "2024-01-17T12:00:00",
        "2024-01-20T12:00:00",
        "2024-01-21T12:00:00",
    ]
    assert [t.amount for t in transactions] == [
        Decimal("1500.00"), Decimal("230.45"), Decimal("2000.00"),
        Decimal("350.00"), Decimal("89.90"),
    ]


def test_direction_and_payment_method(extractor):
    transactions = extractor.extract(STATEMENT, HEADER)

    assert [t.type for t in transactions] == [
        TransactionType.INFLOW,
        TransactionType.OUTFLOW,
        TransactionType.OUTFLOW,
        TransactionType.INFLOW,   # redemption wins over the minus sign
        TransactionType.OUTFLOW,  # trailing minus
    ]
    assert [t.payment_method for t in transactions] == [
        PaymentMethod.PIX,
        PaymentMethod.BOLETO,
        PaymentMethod.TED,
        PaymentMethod.OUTROS,
        PaymentMethod.CARTAO,
    ]


def test_local_rows_carry_header_and_defaults(extractor):
    inflow, outflow = extractor.extract(STATEMENT, HEADER)[:2]

    assert inflow.payer_name == THIRD_PARTY_PAYER
    assert outflow.payer_name == "ACME COMERCIO LTDA"
    for t in (inflow, outflow):
        assert t.counterparty_name == LOCAL_COUNTERPARTY
        assert t.origin == LOCAL_ORIGIN
        assert t.paying_bank == "Itaú"
        assert t.owner_tax_id == "11222333000144"
        assert t.owner_bank == "Itaú"
        assert t.notes == ""


def test_zero_amount_rows_are_dropped(extractor):
    assert extractor.extract("18/01 SALDO DO DIA 0,00", HEADER) == []


def test_two_rows_on_one_line(extractor):
    transactions = extractor.extract("05/03 PIX A 10,00 06/03 PIX B 20,00", HEADER)
    assert [t.description for t in transactions] == ["PIX A", "PIX B"]


def test_row_never_spans_two_lines(extractor):
    text = "Periodo 01/01/2024 a 31/01/2024\nSaldo anterior 5.000,00\n02/01 TARIFA 9,90"
    transactions = extractor.extract(text, HEADER)
    assert [(t.date, t.description) for t in transactions] == [("2024-01-02T12:00:00", "TARIFA")]


def test_text_without_rows(extractor):
    assert extractor.extract("nenhuma movimentação no período", HEADER) == []
    assert extractor.extract("", HEADER) == []


def test_malformed_date_falls_back_to_now(extractor):
    transactions = extractor.extract("31/02 TARIFA MENSAL 10,00", HEADER)
    assert transactions[0].date == "2024-03-10T09:30:15"


@pytest.mark.parametrize("text,expected", [
    ("15/01", "2024-01-15T12:00:00"),
    ("15/01/2022", "2022-01-15T12:00:00"),
    ("05/03/24", "2024-03-05T12:00:00"),
    ("99/99", "2024-03-10T09:30:15"),
])
def test_normalize_date(text, expected):
    assert normalize_date(text, NOW) == expected


@pytest.mark.parametrize("text,expected", [
    ("1.234,56", Decimal("1234.56")),
    ("1.234.567,89", Decimal("1234567.89")),
    ("-15,90", Decimal("15.90")),
    ("89,90-", Decimal("89.90")),
    ("R$ 0,10", Decimal("0.10")),
    ("", None),
    ("abc", None),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


def test_outflow_vocabulary(extractor):
    assert extractor.classify_direction("TARIFA PACOTE", "12,00") == TransactionType.OUTFLOW
    assert extractor.classify_direction("DEB AUTOMATICO", "12,00") == TransactionType.OUTFLOW
    assert extractor.classify_direction("PIX ENVIADO MARIA", "12,00") == TransactionType.OUTFLOW
    assert extractor.classify_direction("DEPOSITO", "12,00") == TransactionType.INFLOW
    assert extractor.classify_direction("RES APLIC AUT", "12,00-") == TransactionType.INFLOW


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
