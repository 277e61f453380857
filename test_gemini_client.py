"""Tests for the Gemini statement client (no network access)."""
import json
from datetime import datetime
from decimal import Decimal

import pytest
import requests

from extrato.exceptions import (
    ConfigurationError,
    QuotaExhaustedError,
    RemoteExtractionError,
    ServiceOverloadedError,
    StatementTooComplexError,
)
from extrato.models.schemas import (
    UNIDENTIFIED_BANK,
    UNIDENTIFIED_OWNER,
    PaymentMethod,
    TransactionType,
)
from extrato.remote.gemini_client import (
    REMOTE_COUNTERPARTY,
    REMOTE_ORIGIN,
    GeminiClient,
    RetryPolicy,
    classify_http_error,
    strip_fences,
)

NOW = datetime(2024, 3, 10, 9, 30)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload or {})

    def json(self):
        return self._payload


class FakeSession:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "json": json})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def ok(text):
    return FakeResponse(200, {
        "candidates": [{
            "content": {"parts": [
                {"text": "pensando...", "thought": True},
                {"text": text},
            ]},
            "finishReason": "STOP",
        }]
    })


def error(status_code, status, message):
    return FakeResponse(status_code, text=json.dumps({
        "error": {"code": status_code, "status": status, "message": message}
    }))


ABBREVIATED = {
    "on": "ACME COMERCIO LTDA",
    "oc": "11.222.333/0001-44",
    "ob": "Itaú",
    "tx": [
        {"d": "2024-02-05T10:15:00", "ds": "PIX RECEBIDO", "v": 1200.5, "t": "entrada",
         "cp": "JOAO SILVA", "cc": "123.456.789-00", "pm": "PIX", "o": "Venda"},
        {"d": "2024-02-06", "ds": "TARIFA", "v": -15.9, "t": "saída", "pm": "CARTAO"},
        {"d": "2024-02-07", "ds": "ZERO", "v": 0, "t": "entrada"},
    ],
}


def make_client(session, sleeps=None):
    recorded = sleeps if sleeps is not None else []
    return GeminiClient(
        api_key="test-key",
        model_name="gemini-test",
        retry_policy=RetryPolicy(max_attempts=4, base_delay=1.0),
        session=session,
        sleep=recorded.append,
    )


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        GeminiClient(api_key=None, session=FakeSession())


def test_request_shape():
    session = FakeSession(ok(json.dumps(ABBREVIATED)))
    make_client(session).extract_statement(b"%PDF-1.4", "application/pdf")

    request = session.requests[0]
    assert request["url"].endswith("/gemini-test:generateContent")
    assert request["headers"]["x-goog-api-key"] == "test-key"
    inline = request["json"]["contents"][0]["parts"][0]["inlineData"]
    assert inline == {"mimeType": "application/pdf", "data": "JVBERi0xLjQ="}
    generation = request["json"]["generationConfig"]
    assert generation["responseMimeType"] == "application/json"
    assert "tx" in generation["responseSchema"]["properties"]


def test_fenced_abbreviated_response_is_expanded():
    session = FakeSession(ok("```json\n" + json.dumps(ABBREVIATED) + "\n```"))
    result = make_client(session).extract_statement(b"img", "image/png")

    assert result.owner_name == "ACME COMERCIO LTDA"
    assert result.owner_tax_id == "11222333000144"
    assert result.owner_bank == "Itaú"
    assert len(result.transactions) == 2

    inflow, outflow = result.transactions
    assert inflow.date == "2024-02-05T10:15:00"
    assert inflow.amount == Decimal("1200.50")
    assert inflow.type == TransactionType.INFLOW
    assert inflow.counterparty_tax_id == "12345678900"
    assert inflow.payer_name == "JOAO SILVA"
    assert inflow.origin == "Venda"
    assert inflow.paying_bank == "Itaú"

    assert outflow.date == "2024-02-06T12:00:00"
    assert outflow.amount == Decimal("15.90")
    assert outflow.type == TransactionType.OUTFLOW
    assert outflow.payment_method == PaymentMethod.CARTAO
    assert outflow.payer_name == "ACME COMERCIO LTDA"
    assert outflow.counterparty_name == REMOTE_COUNTERPARTY
    assert outflow.origin == REMOTE_ORIGIN


def test_full_keys_and_defaults():
    client = make_client(FakeSession())
    raw = {
        "ownerName": "",
        "ownerCnpj": "",
        "ownerBank": None,
        "transactions": [
            {"date": "", "description": "", "amount": "10", "type": "?", "paymentMethod": "DINHEIRO"},
            {"date": "2024-02-01", "amount": "abc", "type": "entrada"},
        ],
    }
    result = client.expand_response(raw, now=NOW)

    assert result.owner_name == UNIDENTIFIED_OWNER
    assert result.owner_bank == UNIDENTIFIED_BANK
    assert len(result.transactions) == 1
    transaction = result.transactions[0]
    assert transaction.date == "2024-03-10T09:30:00"
    assert transaction.description == "Sem descrição"
    assert transaction.type == TransactionType.OUTFLOW
    assert transaction.payment_method == PaymentMethod.OUTROS


def test_non_string_wire_values_are_coerced():
    client = make_client(FakeSession())
    raw = {
        "on": 123,
        "oc": 11222333000144,
        "ob": None,
        "tx": [{"d": "2024-02-05", "ds": 42, "v": "10.5", "t": "entrada", "cp": 7, "cc": 123, "o": False}],
    }
    result = client.expand_response(raw, now=NOW)

    assert result.owner_name == "123"
    assert result.owner_tax_id == "11222333000144"
    assert result.owner_bank == UNIDENTIFIED_BANK
    transaction = result.transactions[0]
    assert transaction.description == "42"
    assert transaction.counterparty_name == "7"
    assert transaction.counterparty_tax_id == "123"
    assert transaction.origin == "False"


def test_non_list_transactions_are_ignored():
    result = make_client(FakeSession()).expand_response({"on": "ACME", "tx": 5}, now=NOW)
    assert result.transactions == []


def test_unparseable_response_is_too_complex():
    session = FakeSession(ok('{"on": "ACME", "tx": [{"d": "2024-'))
    with pytest.raises(StatementTooComplexError) as exc_info:
        make_client(session).extract_statement(b"x", "application/pdf")
    assert "Divida o arquivo" in str(exc_info.value)


def test_overload_is_retried_with_backoff():
    sleeps = []
    session = FakeSession(*[error(503, "UNAVAILABLE", "The model is overloaded")] * 4)
    with pytest.raises(ServiceOverloadedError):
        make_client(session, sleeps).extract_statement(b"x", "application/pdf")

    assert sleeps == [2.0, 4.0, 8.0]
    assert len(session.requests) == 4


def test_quota_waits_longer_then_succeeds():
    sleeps = []
    session = FakeSession(
        error(429, "RESOURCE_EXHAUSTED", "Quota exceeded"),
        ok(json.dumps(ABBREVIATED)),
    )
    result = make_client(session, sleeps).extract_statement(b"x", "application/pdf")

    assert sleeps == [5.0]
    assert len(result.transactions) == 2


def test_timeout_counts_as_overload():
    sleeps = []
    session = FakeSession(requests.exceptions.Timeout("slow"), ok(json.dumps(ABBREVIATED)))
    make_client(session, sleeps).extract_statement(b"x", "application/pdf")
    assert sleeps == [2.0]


def test_other_errors_are_not_retried():
    sleeps = []
    session = FakeSession(error(400, "INVALID_ARGUMENT", "Bad request"))
    with pytest.raises(RemoteExtractionError) as exc_info:
        make_client(session, sleeps).extract_statement(b"x", "application/pdf")

    assert type(exc_info.value) is RemoteExtractionError
    assert exc_info.value.status_code == 400
    assert sleeps == []


def test_classify_http_error():
    assert isinstance(classify_http_error(429, "slow down"), QuotaExhaustedError)
    assert isinstance(classify_http_error(400, '{"error": {"message": "quota reached"}}'), QuotaExhaustedError)
    assert isinstance(classify_http_error(500, '{"error": {"status": "UNAVAILABLE"}}'), ServiceOverloadedError)
    assert type(classify_http_error(500, "boom")) is RemoteExtractionError


def test_retry_policy_schedule():
    policy = RetryPolicy(max_attempts=4, base_delay=1.0)
    quota = QuotaExhaustedError("q")
    assert [policy.delay_for(quota, n) for n in (1, 2, 3, 4)] == [5.0, 10.0, 20.0, None]
    assert policy.delay_for(RemoteExtractionError("x"), 1) is None


def test_strip_fences():
    assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_fences('  {"a": 1} ') == '{"a": 1}'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
