"""
Company directory: auto-registration of newly seen owners plus manual edits.

Matching is case-insensitive over canonical and alternative names. The
sync is append-only; merging near-duplicate names is left to manual edits.
"""
import logging
from typing import Iterable, List, Optional, Set

from extrato.models.schemas import Company, Transaction
from extrato.storage.document_store import COMPANIES, TRANSACTIONS, DocumentStore

logger = logging.getLogger(__name__)


def name_key(name: str) -> str:
    """Case- and whitespace-insensitive key for a company name."""
    return " ".join((name or "").split()).casefold()


def known_name_keys(companies: Iterable[Company]) -> Set[str]:
    keys = set()
    for company in companies:
        keys.update(name_key(n) for n in company.known_names())
    keys.discard("")
    return keys


def find_new_companies(companies: Iterable[Company], transactions: Iterable[Transaction]) -> List[Company]:
    """One new entry per owner name not yet known, in first-seen order."""
    known = known_name_keys(companies)
    new_companies = []
    for transaction in transactions:
        key = name_key(transaction.owner_name)
        if not key or key in known:
            continue
        known.add(key)
        new_companies.append(Company(
            name=transaction.owner_name.strip(),
            tax_id=transaction.owner_tax_id,
            alternative_names=[],
            hidden=False,
        ))
    return new_companies


class CompanyDirectory:
    """Store-backed view of the company directory."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.companies: List[Company] = [Company(**r) for r in store.read_all(COMPANIES)]

    def get(self, company_id: str) -> Company:
        for company in self.companies:
            if company.id == company_id:
                return company
        raise KeyError(company_id)

    def find_by_name(self, name: str) -> Optional[Company]:
        key = name_key(name)
        for company in self.companies:
            if key in {name_key(n) for n in company.known_names()}:
                return company
        return None

    def _add(self, company: Company) -> Company:
        record = company.model_dump(exclude={"id"})
        company.id = self.store.add(COMPANIES, record)
        self.companies.append(company)
        return company

    def sync(self, transactions: Iterable[Transaction]) -> List[Company]:
        """Register every owner of ``transactions`` missing from the directory."""
        created = [self._add(c) for c in find_new_companies(self.companies, transactions)]
        if created:
            logger.info("Directory sync registered %d new company(ies)", len(created))
        return created

    def register(self, name: str, tax_id: str, alternative_name: Optional[str] = None) -> Company:
        """Manual registration; name and tax id are required."""
        if not (name or "").strip() or not (tax_id or "").strip():
            raise ValueError("Nome e CNPJ são obrigatórios")
        alternatives = [alternative_name.strip()] if alternative_name and alternative_name.strip() else []
        return self._add(Company(name=name.strip(), tax_id=tax_id.strip(), alternative_names=alternatives))

    def add_alternative_name(self, company_id: str, name: str) -> Company:
        company = self.get(company_id)
        name = (name or "").strip()
        if not name or name_key(name) in {name_key(n) for n in company.known_names()}:
            return company
        company.alternative_names = company.alternative_names + [name]
        self.store.update(COMPANIES, company_id, {"alternative_names": company.alternative_names})
        return company

    def rename(self, company_id: str, new_name: str) -> Company:
        """
        Change the canonical name, remembering the first one as
        ``original_name``, and rename the owner on its transactions.
        """
        new_name = (new_name or "").strip()
        if not new_name:
            raise ValueError("O nome não pode ficar vazio")
        company = self.get(company_id)
        old_keys = {name_key(n) for n in company.known_names()}
        company.original_name = company.original_name or company.name
        company.name = new_name
        self.store.update(COMPANIES, company_id, {
            "name": company.name,
            "original_name": company.original_name,
        })

        renamed = 0
        for record in self.store.read_all(TRANSACTIONS):
            if company.tax_id:
                belongs = record.get("owner_tax_id") == company.tax_id
            else:
                belongs = name_key(record.get("owner_name", "")) in old_keys
            if belongs:
                self.store.update(TRANSACTIONS, record["id"], {"owner_name": new_name})
                renamed += 1
        logger.info("Renamed company %s to %r (%d transaction(s) updated)", company_id, new_name, renamed)
        return company

    def set_hidden(self, company_id: str, hidden: bool) -> Company:
        company = self.get(company_id)
        company.hidden = hidden
        self.store.update(COMPANIES, company_id, {"hidden": hidden})
        return company

    def visible(self) -> List[Company]:
        return [c for c in self.companies if not c.hidden]
