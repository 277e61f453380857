"""
Currency amount parsing for Brazilian statements.

Amounts use ``.`` for thousands and ``,`` for decimals (``1.234,56``).
The minus sign may lead or trail the digits depending on the bank layout.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

AMOUNT_PATTERN = r'-? ?\d[\d.]*,\d{2}(?: ?-)?'


def has_negative_marker(amount_text: str) -> bool:
    """True when the raw token carries a minus sign on either side."""
    return '-' in (amount_text or '')


def parse_amount(amount_text: str) -> Optional[Decimal]:
    """
    Parse the magnitude of an amount token.

    Args:
        amount_text: Text containing amount

    Returns:
        Non-negative amount as Decimal, or None if parsing fails
    """
    if not amount_text:
        return None

    # Remove currency symbol, sign markers and whitespace
    cleaned = re.sub(r'(R\$|[\s\-+])', '', str(amount_text))
    cleaned = cleaned.replace('.', '').replace(',', '.')

    try:
        value = Decimal(cleaned)
        if not value.is_finite():
            return None
        return abs(value).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        return None
