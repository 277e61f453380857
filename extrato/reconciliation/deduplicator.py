"""Detect repeated imports and duplicate transaction rows."""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Set, Tuple

from extrato.models.schemas import Transaction

logger = logging.getLogger(__name__)

IdentityKey = Tuple[Decimal, str, str, str, str]


def identity_key(transaction: Transaction) -> IdentityKey:
    """(amount, owner bank, type, date portion, counterparty name)."""
    return (
        transaction.amount.quantize(Decimal("0.01")),
        transaction.owner_bank,
        transaction.type.value,
        transaction.date_part,
        transaction.counterparty_name,
    )


class TransactionDeduplicator:
    """
    Identity-key based duplicate detection.

    Nothing is ever removed here: callers decide what to do with a
    repeated batch or with the flagged rows.
    """

    def is_duplicate_batch(
        self,
        batch: Iterable[Transaction],
        existing: Iterable[Transaction],
    ) -> bool:
        """
        True when every transaction of a non-empty ``batch`` already has a
        same-key match in ``existing`` (the file was imported before).
        """
        batch = list(batch)
        if not batch:
            return False
        known: Set[IdentityKey] = {identity_key(t) for t in existing}
        return all(identity_key(t) in known for t in batch)

    def group_duplicates(self, transactions: Iterable[Transaction]) -> Dict[IdentityKey, List[Transaction]]:
        """Groups of two or more transactions sharing an identity key."""
        groups: Dict[IdentityKey, List[Transaction]] = defaultdict(list)
        for transaction in transactions:
            groups[identity_key(transaction)].append(transaction)
        return {key: members for key, members in groups.items() if len(members) > 1}

    def duplicate_ids(self, transactions: Iterable[Transaction]) -> Set[str]:
        """Ids of every transaction flagged as a duplicate."""
        flagged = set()
        for members in self.group_duplicates(transactions).values():
            flagged.update(t.id for t in members)
        logger.debug("Flagged %d duplicate transaction(s)", len(flagged))
        return flagged
