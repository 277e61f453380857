"""
Gemini API client for statement extraction.

The document bytes go inline with a response schema; the answer comes back
with abbreviated keys to save output tokens and is expanded here into the
same StatementResult the local parser produces.
"""
import base64
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

from extrato.config import config
from extrato.exceptions import (
    ConfigurationError,
    QuotaExhaustedError,
    RemoteExtractionError,
    ServiceOverloadedError,
    StatementTooComplexError,
)
from extrato.extraction.transaction_extractor import THIRD_PARTY_PAYER, normalize_date
from extrato.models.schemas import (
    MIDDAY,
    UNIDENTIFIED_BANK,
    UNIDENTIFIED_OWNER,
    PaymentMethod,
    StatementHeader,
    StatementResult,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

REMOTE_COUNTERPARTY = "Não identificado"
REMOTE_ORIGIN = "Extração IA"
NO_DESCRIPTION = "Sem descrição"

HEADER_KEYS = {
    'on': 'owner_name', 'ownerName': 'owner_name',
    'oc': 'owner_tax_id', 'ownerCnpj': 'owner_tax_id', 'ownerTaxId': 'owner_tax_id',
    'ob': 'owner_bank', 'ownerBank': 'owner_bank',
    'tx': 'transactions', 'transactions': 'transactions',
}

TRANSACTION_KEYS = {
    'd': 'date', 'date': 'date',
    'ds': 'description', 'description': 'description',
    'v': 'amount', 'amount': 'amount',
    't': 'type', 'type': 'type',
    'cp': 'counterparty_name', 'counterpartyName': 'counterparty_name',
    'cc': 'counterparty_tax_id', 'counterpartyCnpj': 'counterparty_tax_id',
    'counterpartyTaxId': 'counterparty_tax_id',
    'pm': 'payment_method', 'paymentMethod': 'payment_method',
    'pn': 'payer_name', 'payerName': 'payer_name',
    'o': 'origin', 'origin': 'origin',
    'pb': 'paying_bank', 'payingBank': 'paying_bank',
}

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "on": {"type": "STRING"},
        "oc": {"type": "STRING"},
        "ob": {"type": "STRING"},
        "tx": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "d": {"type": "STRING"},
                    "ds": {"type": "STRING"},
                    "v": {"type": "NUMBER"},
                    "t": {"type": "STRING"},
                    "cp": {"type": "STRING"},
                    "cc": {"type": "STRING"},
                    "pm": {"type": "STRING"},
                    "pn": {"type": "STRING"},
                    "o": {"type": "STRING"},
                    "pb": {"type": "STRING"},
                },
                "required": ["d", "v", "t", "ds"],
            },
        },
    },
    "required": ["on", "oc", "ob", "tx"],
}

SYSTEM_INSTRUCTION = """Você é um especialista em contabilidade e análise bancária brasileira.
Sua tarefa é converter extratos bancários em dados estruturados com precisão absoluta.

REGRAS PARA O TITULAR:
1. on: Razão Social ou Nome do Titular da conta.
2. oc: EXTRAIA O CNPJ APENAS se o termo 'CNPJ' aparecer explicitamente seguido de números. Caso contrário, "".
3. ob: Banco emissor do extrato.

REGRAS PARA TRANSAÇÕES (tx):
- d: data no formato ISO 8601 (YYYY-MM-DDTHH:mm:ss).
- ds: descrição da linha.
- v: valor numérico positivo.
- t: "entrada" para créditos/depósitos, "saída" para débitos/pagamentos/tarifas.
- pm: PIX, TED, BOLETO, CARTÃO ou OUTROS.
- o: natureza da movimentação (ex: Venda, Tarifa, Transferência).
- cp: nome de quem recebeu ou enviou o dinheiro; cc: CNPJ/CPF dessa parte, se houver.
- pn: nome do pagador; pb: banco pagador.
Responda somente com JSON."""

USER_PROMPT = (
    "Analise o extrato bancário (PDF ou Imagem) e extraia os dados para o formato "
    "JSON solicitado. Foque na precisão absoluta dos valores e datas."
)

FENCE_PATTERN = re.compile(r'^```[a-zA-Z]*\s*(.*?)\s*```$', re.DOTALL)


@dataclass
class RetryPolicy:
    """
    Backoff policy for transient remote failures.

    Quota errors wait ``quota_multiplier`` times longer than the base
    schedule, overload errors ``overload_multiplier`` times; the schedule
    doubles on every attempt. Other errors are not retried.
    """
    max_attempts: int = 4
    base_delay: float = 1.0
    quota_multiplier: float = 5.0
    overload_multiplier: float = 2.0

    @classmethod
    def from_config(cls) -> 'RetryPolicy':
        return cls(
            max_attempts=int(config.get('retry.max_attempts', 4)),
            base_delay=float(config.get('retry.base_delay', 1.0)),
            quota_multiplier=float(config.get('retry.quota_multiplier', 5.0)),
            overload_multiplier=float(config.get('retry.overload_multiplier', 2.0)),
        )

    def multiplier_for(self, error: Exception) -> Optional[float]:
        if isinstance(error, QuotaExhaustedError):
            return self.quota_multiplier
        if isinstance(error, ServiceOverloadedError):
            return self.overload_multiplier
        return None

    def delay_for(self, error: Exception, attempt: int) -> Optional[float]:
        """Seconds to wait after failed ``attempt`` (1-based), None to give up."""
        multiplier = self.multiplier_for(error)
        if multiplier is None or attempt >= self.max_attempts:
            return None
        return self.base_delay * multiplier * (2 ** (attempt - 1))


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``func`` under ``policy``; the last error is re-raised unchanged."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except RemoteExtractionError as e:
            delay = policy.delay_for(e, attempt)
            if delay is None:
                raise
            logger.warning(
                "Gemini %s error (attempt %d/%d), retrying in %.1fs: %s",
                e.kind, attempt, policy.max_attempts, delay, e,
            )
            sleep(delay)


def strip_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block, if any."""
    text = (text or '').strip()
    match = FENCE_PATTERN.match(text)
    if match:
        return match.group(1).strip()
    return text


def classify_http_error(status_code: int, body: str) -> RemoteExtractionError:
    """Map an error response to the retry taxonomy."""
    status = ''
    message = body
    try:
        error = json.loads(body).get('error', {})
        status = error.get('status', '') or ''
        message = error.get('message', body) or body
    except (ValueError, AttributeError):
        pass

    text = f"{status_code} - {message}"
    if status_code == 429 or status == 'RESOURCE_EXHAUSTED' or 'quota' in message.lower():
        return QuotaExhaustedError(text, status_code)
    if status_code == 503 or status == 'UNAVAILABLE' or 'overloaded' in message.lower():
        return ServiceOverloadedError(text, status_code)
    return RemoteExtractionError(text, status_code)


class GeminiClient:
    """Client for interacting with Gemini API for statement extraction"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key or config.get_gemini_api_key()
        if not self.api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY environment variable is not set. "
                "Set it in the environment or in a .env file."
            )
        self.model_name = model_name or config.gemini_model
        self.base_url = config.get('gemini.base_url')
        self.timeout = config.get('gemini.timeout', 600)
        self.retry_policy = retry_policy or RetryPolicy.from_config()
        self.session = session or requests.Session()
        self.sleep = sleep

        logger.info("Gemini client initialized, model: %s", self.model_name)

    def extract_statement(self, payload: bytes, mime_type: str) -> StatementResult:
        """
        Extract owner data and transactions from a statement file.

        Args:
            payload: Raw PDF or image bytes
            mime_type: MIME type of ``payload``

        Returns:
            StatementResult in canonical shape
        """
        body = self._build_request(payload, mime_type)
        start_time = time.time()
        response_text = call_with_retry(lambda: self._call_gemini(body), self.retry_policy, self.sleep)
        logger.info("Gemini response received (%.2fs)", time.time() - start_time)

        raw = self._parse_json(response_text)
        return self.expand_response(raw)

    def _build_request(self, payload: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(payload).decode('ascii'),
                            }
                        },
                        {"text": USER_PROMPT},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": config.get('gemini.temperature', 0.1),
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
                "thinkingConfig": {"thinkingBudget": config.get('gemini.thinking_budget', 32768)},
            },
        }

    def _call_gemini(self, body: Dict[str, Any]) -> str:
        """One HTTP round trip; errors come back classified."""
        url = f"{self.base_url}/{self.model_name}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        try:
            response = self.session.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise ServiceOverloadedError(f"Timeout after {self.timeout}s: {e}")
        except requests.exceptions.ConnectionError as e:
            raise ServiceOverloadedError(f"Connection error: {e}")

        if response.status_code != 200:
            raise classify_http_error(response.status_code, response.text)

        candidates = response.json().get("candidates") or []
        if not candidates:
            raise RemoteExtractionError("Gemini returned no candidates", response.status_code)
        candidate = candidates[0]
        if candidate.get("finishReason") == "MAX_TOKENS":
            logger.warning("Gemini response truncated (MAX_TOKENS)")

        parts = candidate.get("content", {}).get("parts", [])
        return "".join(p.get("text", "") for p in parts if not p.get("thought"))

    def _parse_json(self, response_text: str) -> Dict[str, Any]:
        text = strip_fences(response_text)
        try:
            result = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON from Gemini (first 200 chars): %s", text[:200])
            raise StatementTooComplexError() from e
        if not isinstance(result, dict):
            raise StatementTooComplexError()
        return result

    def expand_response(self, raw: Dict[str, Any], now: Optional[datetime] = None) -> StatementResult:
        """Map the wire shape (abbreviated or full keys) to the canonical one."""
        now = now or datetime.now()
        data = {HEADER_KEYS.get(k, k): v for k, v in raw.items()}

        header = StatementHeader(
            owner_name=_wire_text(data.get('owner_name')) or UNIDENTIFIED_OWNER,
            owner_tax_id=re.sub(r'\D', '', _wire_text(data.get('owner_tax_id'))),
            owner_bank=_wire_text(data.get('owner_bank')) or UNIDENTIFIED_BANK,
        )

        items = data.get('transactions')
        if not isinstance(items, list):
            items = []

        transactions = []
        for item in items:
            if not isinstance(item, dict):
                continue
            transaction = self._expand_transaction(item, header, now)
            if transaction is not None:
                transactions.append(transaction)

        logger.info("Gemini extracted %d transaction(s) for %s", len(transactions), header.owner_name)
        return StatementResult(header=header, transactions=transactions)

    def _expand_transaction(
        self,
        item: Dict[str, Any],
        header: StatementHeader,
        now: datetime,
    ) -> Optional[Transaction]:
        fields = {TRANSACTION_KEYS.get(k, k): v for k, v in item.items()}

        try:
            amount = abs(Decimal(str(fields.get('amount'))))
        except (InvalidOperation, ValueError):
            logger.debug("Dropping remote row with bad amount: %r", item)
            return None
        if not amount.is_finite() or amount == 0:
            return None

        transaction_type = _wire_type(fields.get('type'))
        counterparty = _wire_text(fields.get('counterparty_name')) or REMOTE_COUNTERPARTY
        if transaction_type == TransactionType.OUTFLOW:
            payer = header.owner_name
        else:
            payer = _wire_text(fields.get('counterparty_name')) or THIRD_PARTY_PAYER

        return Transaction(
            date=_wire_date(fields.get('date'), now),
            description=_wire_text(fields.get('description')) or NO_DESCRIPTION,
            amount=amount,
            type=transaction_type,
            counterparty_name=counterparty,
            counterparty_tax_id=re.sub(r'\D', '', _wire_text(fields.get('counterparty_tax_id'))),
            payment_method=_wire_payment_method(fields.get('payment_method')),
            payer_name=payer,
            origin=_wire_text(fields.get('origin')) or REMOTE_ORIGIN,
            paying_bank=_wire_text(fields.get('paying_bank')) or header.owner_bank,
            owner_name=header.owner_name,
            owner_tax_id=header.owner_tax_id,
            owner_bank=header.owner_bank,
            notes='',
        )


def _wire_text(value: Any) -> str:
    """Trimmed text of any JSON scalar; null becomes empty."""
    if value is None:
        return ''
    return str(value).strip()


def _wire_type(value: Any) -> TransactionType:
    text = str(value or '').strip().lower()
    if text == TransactionType.INFLOW.value:
        return TransactionType.INFLOW
    if text == TransactionType.MANUAL.value:
        return TransactionType.MANUAL
    return TransactionType.OUTFLOW


def _wire_payment_method(value: Any) -> PaymentMethod:
    text = str(value or '').strip().upper()
    if text == 'CARTAO':
        return PaymentMethod.CARTAO
    try:
        return PaymentMethod(text)
    except ValueError:
        return PaymentMethod.OUTROS


def _wire_date(value: Any, now: datetime) -> str:
    """Coerce a returned date to ``YYYY-MM-DDTHH:MM:SS``."""
    text = str(value or '').strip()
    if not text:
        return now.replace(microsecond=0).isoformat()
    if '/' in text:
        return normalize_date(text.split()[0], now)
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        return now.replace(microsecond=0).isoformat()
    if 'T' not in text and ' ' not in text:
        return f"{parsed:%Y-%m-%d}T{MIDDAY}"
    return parsed.replace(tzinfo=None, microsecond=0).isoformat()
