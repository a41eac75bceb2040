"""Pure helpers for scanned codes: embedded quantities and lookup variants."""
import re
from typing import List

_NON_DIGITS = re.compile(r'[^0-9]')
_LEADING_ZEROS = re.compile(r'^0+')

# Codes with at least this many digits carry a quantity in their last 6 digits
EMBEDDED_QTY_MIN_DIGITS = 13
EMBEDDED_QTY_DIGITS = 6
EMBEDDED_QTY_DIVISOR = 10000

PAD_LENGTHS = (8, 12, 13)


def digits_only(code: str) -> str:
    return _NON_DIGITS.sub('', code or '')


def extract_embedded_quantity(code: str) -> float:
    """Return the quantity encoded in a weighed-goods style barcode, or 0.0.

    The last 6 digits of a 13+ digit code are read as ten-thousandths and
    truncated (never rounded) to two decimals: ``...025001`` -> 2.5001 -> 2.50.
    0.0 means "no embedded quantity"; callers default to 1.0.
    """
    digits = digits_only(code)
    if len(digits) < EMBEDDED_QTY_MIN_DIGITS:
        return 0.0
    try:
        raw = int(digits[-EMBEDDED_QTY_DIGITS:])
    except ValueError:
        return 0.0
    if raw <= 0:
        return 0.0
    # floor(raw / 10000 * 100) / 100, kept in integers so 0.29 stays 0.29
    return (raw // (EMBEDDED_QTY_DIVISOR // 100)) / 100.0


def barcode_variants(code: str) -> List[str]:
    """Candidate spellings of a scanned code, in lookup order, without duplicates.

    Order: trimmed input, leading zeros stripped, digits only, then the trimmed
    input left-padded with zeros to 8, 12 and 13 characters where shorter.
    """
    trimmed = (code or '').strip()
    if not trimmed:
        return []
    out = [trimmed]

    stripped = _LEADING_ZEROS.sub('', trimmed)
    if stripped and stripped != trimmed:
        out.append(stripped)

    digits = digits_only(trimmed)
    if digits and digits != trimmed:
        out.append(digits)

    for length in PAD_LENGTHS:
        if len(trimmed) < length:
            out.append(trimmed.rjust(length, '0'))

    seen = set()
    unique = []
    for value in out:
        if value in seen:
            continue
        seen.add(value)
        unique.append(value)
    return unique


def quantity_or_default(code: str, default: float = 1.0) -> float:
    qty = extract_embedded_quantity(code)
    return qty if qty > 0.0 else default


def format_qty(qty: float) -> str:
    """Whole quantities without decimals, otherwise up to 3 decimals."""
    if qty == int(qty):
        return '%d' % qty
    text = '%.3f' % qty
    return text.rstrip('0').rstrip('.')
