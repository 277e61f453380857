"""Local extraction path: PDF text layer -> StatementResult."""
import logging
from typing import Optional

import fitz  # PyMuPDF

from extrato.exceptions import UnsupportedDocumentError
from extrato.extraction.header_extractor import HeaderExtractor
from extrato.extraction.transaction_extractor import TransactionLineExtractor
from extrato.layout.reconstructor import LayoutReconstructor, document_fragments
from extrato.models.schemas import StatementResult

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class LocalStatementParser:
    """Parse a PDF statement without calling any remote service."""

    def __init__(
        self,
        reconstructor: Optional[LayoutReconstructor] = None,
        header_extractor: Optional[HeaderExtractor] = None,
        transaction_extractor: Optional[TransactionLineExtractor] = None,
    ):
        self.reconstructor = reconstructor or LayoutReconstructor()
        self.header_extractor = header_extractor or HeaderExtractor()
        self.transaction_extractor = transaction_extractor or TransactionLineExtractor()

    def extract_text(self, payload: bytes) -> str:
        """Reconstructed text of every page, in page order."""
        try:
            doc = fitz.open(stream=payload, filetype="pdf")
        except Exception as e:
            raise UnsupportedDocumentError(f"Não foi possível abrir o PDF: {e}") from e
        try:
            pages = document_fragments(doc)
        finally:
            doc.close()
        return self.reconstructor.reconstruct_document_text(pages)

    def parse_text(self, text: str) -> StatementResult:
        header = self.header_extractor.extract(text)
        transactions = self.transaction_extractor.extract(text, header)
        return StatementResult(header=header, transactions=transactions)

    def parse(self, payload: bytes, mime_type: str = PDF_MIME_TYPE) -> StatementResult:
        if mime_type != PDF_MIME_TYPE:
            raise UnsupportedDocumentError(
                f"Tipo {mime_type} requer extração via IA; o modo local lê apenas PDFs"
            )
        text = self.extract_text(payload)
        if not text.strip():
            logger.warning("PDF has no text layer; nothing to extract locally")
        return self.parse_text(text)
