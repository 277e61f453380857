"""Tests for owner header heuristics."""
from extrato.extraction.header_extractor import HeaderExtractor
from extrato.models.schemas import UNIDENTIFIED_BANK, UNIDENTIFIED_OWNER


def test_tax_id_requires_label():
    extractor = HeaderExtractor()
    assert extractor.extract_owner_tax_id("CNPJ: 12.345.678/0001-90") == "12345678000190"
    assert extractor.extract_owner_tax_id("cnpj 12345678000190 ag 1") == "12345678000190"
    # A bare number that looks like a tax id is never used.
    assert extractor.extract_owner_tax_id("Conta 12.345.678/0001-90") == ""


def test_owner_name_skips_generic_and_dated_lines():
    text = "\n".join([
        "Extrato de Conta Corrente",
        "Período 01/01/2024 a 31/01/2024",
        "PADARIA PAO QUENTE LTDA  AG 0001 CC 4455-6",
        "15/01 PIX RECEBIDO 100,00",
    ])
    assert HeaderExtractor().extract_owner_name(text) == "PADARIA PAO QUENTE LTDA"


def test_owner_name_is_truncated():
    long_name = "COMERCIAL " + "X" * 80
    name = HeaderExtractor().extract_owner_name(long_name)
    assert len(name) == 50
    assert name.startswith("COMERCIAL XXX")


def test_owner_name_defaults_to_sentinel():
    text = "Extrato\nSaldo anterior 1.000,00\n10/01 TARIFA 5,00"
    assert HeaderExtractor().extract_owner_name(text) == UNIDENTIFIED_OWNER


def test_bank_matching_is_case_and_accent_insensitive():
    extractor = HeaderExtractor()
    assert extractor.extract_owner_bank("BANCO BRADESCO S.A.") == "Bradesco"
    assert extractor.extract_owner_bank("itau unibanco s.a.") == "Itaú"
    assert extractor.extract_owner_bank("Cooperativa XYZ") == UNIDENTIFIED_BANK


def test_first_listed_bank_wins():
    extractor = HeaderExtractor(known_banks=["Itaú", "Santander"])
    assert extractor.extract_owner_bank("Santander ... pagamento Itaú") == "Itaú"


def test_extract_builds_header():
    text = "ACME COMERCIO LTDA\nCNPJ: 11.222.333/0001-44\nBanco Santander"
    header = HeaderExtractor().extract(text)
    assert header.owner_name == "ACME COMERCIO LTDA"
    assert header.owner_tax_id == "11222333000144"
    assert header.owner_bank == "Santander"


if __name__ == "__main__":
    test_tax_id_requires_label()
    test_owner_name_skips_generic_and_dated_lines()
    print("PASSED")
