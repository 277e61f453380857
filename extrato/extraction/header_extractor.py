"""
Owner identity extraction from reconstructed statement text.

The heuristics are conservative: a field that cannot be located with
confidence falls back to a sentinel (or stays empty for the tax id).
"""
import logging
import re
import unicodedata
from typing import Iterable, List, Optional

from extrato.config import config
from extrato.models.schemas import UNIDENTIFIED_BANK, UNIDENTIFIED_OWNER, StatementHeader

logger = logging.getLogger(__name__)

TAX_ID_NUMBER = r'(\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2})'
DATE_SHAPE = re.compile(r'\d{2}/\d{2}')
DOUBLE_SPACE = re.compile(r'\s{2,}')


def fold(text: str) -> str:
    """Lower-case and strip accents, for forgiving substring matches."""
    normalized = unicodedata.normalize('NFKD', text or '')
    return ''.join(c for c in normalized if not unicodedata.combining(c)).casefold()


class HeaderExtractor:
    """Derive owner name, tax id and bank from statement text."""

    def __init__(
        self,
        tax_id_labels: Optional[Iterable[str]] = None,
        denylist: Optional[Iterable[str]] = None,
        known_banks: Optional[Iterable[str]] = None,
        max_name_length: Optional[int] = None,
        min_line_length: Optional[int] = None,
    ):
        labels = list(tax_id_labels or config.get('extraction.tax_id_labels', ['CNPJ']))
        self.tax_id_pattern = re.compile(
            r'(?:%s)\s*[:\-\s]*%s' % ('|'.join(re.escape(l) for l in labels), TAX_ID_NUMBER),
            re.IGNORECASE,
        )
        self.denylist = [fold(w) for w in (denylist or config.get('extraction.owner_denylist', []))]
        self.known_banks = list(known_banks or config.known_banks)
        self.max_name_length = max_name_length or config.get('extraction.owner_name_max_length', 50)
        self.min_line_length = min_line_length if min_line_length is not None else \
            config.get('extraction.min_line_length', 5)

    def extract(self, text: str) -> StatementHeader:
        header = StatementHeader(
            owner_name=self.extract_owner_name(text),
            owner_tax_id=self.extract_owner_tax_id(text),
            owner_bank=self.extract_owner_bank(text),
        )
        logger.info(
            "Header: owner=%r tax_id=%r bank=%r",
            header.owner_name, header.owner_tax_id, header.owner_bank,
        )
        return header

    def extract_owner_tax_id(self, text: str) -> str:
        """Digits of the tax id following an explicit label, else empty."""
        match = self.tax_id_pattern.search(text or '')
        if not match:
            return ''
        return re.sub(r'\D', '', match.group(1))

    def extract_owner_name(self, text: str) -> str:
        for line in self._candidate_lines(text):
            if self._is_generic(line):
                continue
            name = DOUBLE_SPACE.split(line[:self.max_name_length], maxsplit=1)[0].strip()
            if name:
                return name
        return UNIDENTIFIED_OWNER

    def extract_owner_bank(self, text: str) -> str:
        haystack = fold(text)
        for bank in self.known_banks:
            if fold(bank) in haystack:
                return bank
        return UNIDENTIFIED_BANK

    def _candidate_lines(self, text: str) -> List[str]:
        lines = [l.strip() for l in (text or '').split('\n')]
        return [l for l in lines if len(l) > self.min_line_length]

    def _is_generic(self, line: str) -> bool:
        if DATE_SHAPE.search(line):
            return True
        folded = fold(line)
        return any(re.search(r'\b%s\b' % re.escape(word), folded) for word in self.denylist)
