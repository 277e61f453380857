"""Errors raised by the statement import pipeline."""
from typing import Optional


class ExtractionError(Exception):
    """Base class for failures that abort the processing of one file."""


class ConfigurationError(ExtractionError):
    """Required setting (usually the Gemini API key) is missing."""


class UnsupportedDocumentError(ExtractionError):
    """The local parser cannot read this payload."""


class RemoteExtractionError(ExtractionError):
    """Failure reported by the remote extraction service.

    ``kind`` routes the retry policy: ``quota``, ``overloaded`` or ``other``.
    """

    kind = 'other'

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QuotaExhaustedError(RemoteExtractionError):
    kind = 'quota'


class ServiceOverloadedError(RemoteExtractionError):
    kind = 'overloaded'


class StatementTooComplexError(ExtractionError):
    """The response could not be parsed, almost always because it was truncated."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or (
                "A resposta da IA não pôde ser interpretada: o extrato é grande ou "
                "complexo demais. Divida o arquivo em partes menores e tente novamente."
            )
        )


class ImportAbortedError(Exception):
    """A file in a batch failed; files before it remain committed."""

    def __init__(self, filename: str, cause: Exception, report=None):
        super().__init__(f"Falha no arquivo {filename}: {cause}")
        self.filename = filename
        self.cause = cause
        self.report = report
