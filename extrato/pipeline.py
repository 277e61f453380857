"""Main import pipeline."""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import BaseModel

from extrato.config import config
from extrato.exceptions import ImportAbortedError, UnsupportedDocumentError
from extrato.extraction.local_parser import PDF_MIME_TYPE, LocalStatementParser
from extrato.models.schemas import UNIDENTIFIED_OWNER, FinancialSummary, StatementResult, Transaction
from extrato.queries import TransactionFilter, summarize
from extrato.reconciliation.deduplicator import TransactionDeduplicator
from extrato.reconciliation.directory_sync import CompanyDirectory
from extrato.storage.document_store import (
    COMPANIES,
    DASHBOARD,
    TRANSACTIONS,
    DocumentStore,
    InMemoryDocumentStore,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".pdf": PDF_MIME_TYPE,
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

CONSOLIDATED = "consolidado"

EDITABLE_FIELDS = {
    "date", "description", "amount", "type", "counterparty_name",
    "counterparty_tax_id", "payment_method", "payer_name", "origin",
    "paying_bank", "notes",
}

FileInput = Union[str, Path, Tuple[str, bytes]]


def guess_mime_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix not in MIME_TYPES:
        raise UnsupportedDocumentError(f"Formato não suportado: {filename}")
    return MIME_TYPES[suffix]


class FileOutcome(BaseModel):
    """What happened to one file of a batch."""
    filename: str
    status: str  # "accepted" or "duplicate"
    owner_name: str = ""
    transactions: int = 0
    companies_created: List[str] = []


class ImportReport(BaseModel):
    files: List[FileOutcome] = []

    @property
    def accepted_transactions(self) -> int:
        return sum(f.transactions for f in self.files if f.status == "accepted")

    @property
    def duplicate_files(self) -> List[str]:
        return [f.filename for f in self.files if f.status == "duplicate"]


class StatementImportPipeline:
    """
    Import statements one file at a time.

    Files are processed strictly in order. A failing file aborts the batch
    with ImportAbortedError; files accepted before it stay committed.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        extraction_mode: Optional[str] = None,
        local_parser: Optional[LocalStatementParser] = None,
        remote_client: Any = None,
    ):
        """
        Args:
            store: Persistence collaborator (in-memory by default)
            extraction_mode: ``remote``, ``local`` or ``auto``
            local_parser: Local PDF parser override
            remote_client: Object with ``extract_statement(payload, mime_type)``
        """
        self.store = store or InMemoryDocumentStore()
        self.extraction_mode = extraction_mode or config.extraction_mode
        self.local_parser = local_parser or LocalStatementParser()
        self._remote_client = remote_client
        self.deduplicator = TransactionDeduplicator()
        self.directory = CompanyDirectory(self.store)
        self.transactions: List[Transaction] = [
            Transaction(**record) for record in self.store.read_all(TRANSACTIONS)
        ]

    @property
    def remote_client(self):
        if self._remote_client is None:
            from extrato.remote.gemini_client import GeminiClient
            self._remote_client = GeminiClient()
        return self._remote_client

    def _use_remote(self) -> bool:
        if self.extraction_mode == "remote":
            return True
        if self.extraction_mode == "local":
            return False
        return self._remote_client is not None or bool(config.get_gemini_api_key())

    def extract(self, payload: bytes, mime_type: str) -> StatementResult:
        if self._use_remote():
            logger.info("Extracting via Gemini (%s)", mime_type)
            return self.remote_client.extract_statement(payload, mime_type)
        logger.info("Extracting locally (%s)", mime_type)
        return self.local_parser.parse(payload, mime_type)

    # ==================== Import ====================

    def import_file(self, filename: str, payload: bytes, mime_type: Optional[str] = None) -> FileOutcome:
        """Extract, guard against a repeated file, persist and sync one file."""
        mime_type = mime_type or guess_mime_type(filename)
        result = self.extract(payload, mime_type)

        if self.deduplicator.is_duplicate_batch(result.transactions, self.transactions):
            logger.warning(
                "Duplicate file skipped: %s has the same date, bank and amounts as imported data",
                filename,
            )
            return FileOutcome(filename=filename, status="duplicate", owner_name=result.owner_name)

        accepted = []
        for transaction in result.transactions:
            record = transaction.model_dump(mode="json", exclude={"id"})
            transaction.id = self.store.add(TRANSACTIONS, record)
            accepted.append(transaction)
        self.transactions = accepted + self.transactions

        created = self.directory.sync(accepted)
        logger.info("Accepted %s: %d transaction(s)", filename, len(accepted))
        return FileOutcome(
            filename=filename,
            status="accepted",
            owner_name=result.owner_name,
            transactions=len(accepted),
            companies_created=[c.name for c in created],
        )

    def import_files(self, files: Iterable[FileInput]) -> ImportReport:
        """
        Import a batch in order.

        Each item is a path or a ``(filename, bytes)`` pair.
        """
        report = ImportReport()
        for item in files:
            filename = str(item[0]) if isinstance(item, tuple) else str(item)
            try:
                if isinstance(item, tuple):
                    payload = item[1]
                else:
                    with open(item, "rb") as f:
                        payload = f.read()
                outcome = self.import_file(Path(filename).name, payload)
            except Exception as e:
                logger.error("Import aborted at %s: %s", filename, e)
                raise ImportAbortedError(Path(filename).name, e, report) from e
            report.files.append(outcome)
        return report

    # ==================== Transactions ====================

    def _find(self, transaction_id: str) -> Transaction:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        raise RecordNotFoundError(f"{TRANSACTIONS}/{transaction_id}")

    def update_transaction(self, transaction_id: str, **fields) -> Transaction:
        """Field-level overwrite of user-editable fields."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Campos não editáveis: {', '.join(sorted(unknown))}")
        current = self._find(transaction_id)
        updated = Transaction.model_validate({**current.model_dump(), **fields})
        self.store.update(
            TRANSACTIONS, transaction_id,
            updated.model_dump(mode="json", include=set(fields)),
        )
        self.transactions = [updated if t.id == transaction_id else t for t in self.transactions]
        return updated

    def delete_transaction(self, transaction_id: str) -> None:
        """Explicit removal, used for flagged duplicates."""
        self._find(transaction_id)
        self.store.delete(TRANSACTIONS, transaction_id)
        self.transactions = [t for t in self.transactions if t.id != transaction_id]
        logger.info("Deleted transaction %s", transaction_id)

    def clear_all(self) -> None:
        for record in self.store.read_all(TRANSACTIONS):
            self.store.delete(TRANSACTIONS, record["id"])
        for record in self.store.read_all(COMPANIES):
            self.store.delete(COMPANIES, record["id"])
        self.transactions = []
        self.directory = CompanyDirectory(self.store)

    def rename_company(self, company_id: str, new_name: str):
        """Rename a company and reload the owner names it rewrote."""
        company = self.directory.rename(company_id, new_name)
        self.transactions = [Transaction(**r) for r in self.store.read_all(TRANSACTIONS)]
        return company

    def list_transactions(self, view: Optional[TransactionFilter] = None) -> List[Transaction]:
        return (view or TransactionFilter()).apply(self.transactions)

    def duplicate_ids(self, view: Optional[TransactionFilter] = None) -> Set[str]:
        """Duplicates within the filtered view, for manual review."""
        return self.deduplicator.duplicate_ids(self.list_transactions(view))

    def summary(self, view: Optional[TransactionFilter] = None) -> FinancialSummary:
        return summarize(self.list_transactions(view))

    def finalize_day(self, view: Optional[TransactionFilter] = None) -> Dict[str, Any]:
        """Persist the summary of the current view as a dashboard record."""
        view = view or TransactionFilter()
        rows = self.list_transactions(view)
        owner_name = CONSOLIDATED
        if view.owner_tax_id:
            owner_name = next((t.owner_name for t in rows), UNIDENTIFIED_OWNER)
        record = {
            "timestamp": datetime.now().replace(microsecond=0).isoformat(),
            "owner_tax_id": view.owner_tax_id or CONSOLIDATED,
            "owner_name": owner_name,
            "summary": summarize(rows).model_dump(mode="json"),
            "filters": view.model_dump(mode="json"),
        }
        record["id"] = self.store.add(DASHBOARD, record)
        logger.info("Day closed for %s: %d transaction(s)", record["owner_tax_id"], len(rows))
        return record

    def snapshot(self, view: Optional[TransactionFilter] = None) -> List[Dict[str, Any]]:
        """Serializable rows with their duplicate flag."""
        rows = self.list_transactions(view)
        flagged = self.deduplicator.duplicate_ids(rows)
        return [dict(t.model_dump(mode="json"), duplicate=t.id in flagged) for t in rows]
