"""Validators that prune false positives for ambiguous patterns.

Every validator is a pure predicate ``str -> bool``. A validator can only
reject a candidate; a rejected candidate is dropped for that pattern type
and is not offered to any other pattern.
"""

import re
from typing import Callable

_SEPARATORS = re.compile(r"[\s-]")

# Full-string UK postcode shape, e.g. "SW1A 1AA", "M1 1AE"
_UK_POSTCODE = re.compile(r"[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}")

_EMAIL_TLD = re.compile(
    r"\.(?:com|org|net|edu|gov|co\.uk|ac\.uk|org\.uk|gov\.uk|nhs\.uk|io|ai|app|dev|tech|info|biz"
    r"|uk|us|ca|eu|de|fr|es|it|nl|be|ie|pt|at|ch|se|dk|no|fi|pl|au|nz|jp|cn|in|br|mx|za)$",
    re.IGNORECASE,
)

_IBAN_SHAPE = re.compile(r"[A-Z]{2}\d{2}[A-Z0-9]+")

IBAN_LENGTHS: dict[str, int] = {
    "GB": 22,
    "DE": 22,
    "FR": 27,
    "IT": 27,
    "ES": 24,
    "NL": 18,
    "BE": 16,
    "IE": 22,
    "PT": 25,
    "AT": 20,
    "CH": 21,
    "SE": 24,
    "DK": 18,
    "NO": 15,
}

_NI_INVALID_PREFIXES = {"BG", "GB", "NK", "KN", "TN", "NT", "ZZ"}
_NI_INVALID_FIRST = set("DFIQUV")
_NI_INVALID_SECOND = set("DFIOQUV")


def luhn(value: str) -> bool:
    """Luhn checksum over the digits of a card number (spaces/dashes ignored)."""
    digits = _SEPARATORS.sub("", value)
    if not digits.isdigit() or not 13 <= len(digits) <= 19:
        return False

    total = 0
    for i, char in enumerate(reversed(digits)):
        digit = int(char)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def ni_number(value: str) -> bool:
    """UK National Insurance number prefix rules."""
    normalized = re.sub(r"\s", "", value).upper()
    if len(normalized) < 2:
        return False
    if normalized[:2] in _NI_INVALID_PREFIXES:
        return False
    if normalized[0] in _NI_INVALID_FIRST:
        return False
    if normalized[1] in _NI_INVALID_SECOND:
        return False
    return True


def iban(value: str) -> bool:
    """IBAN shape plus per-country length."""
    normalized = re.sub(r"\s", "", value).upper()
    if not _IBAN_SHAPE.fullmatch(normalized):
        return False

    expected = IBAN_LENGTHS.get(normalized[:2])
    if expected is not None:
        return len(normalized) == expected
    # Unknown country: fall back to the IBAN length bounds
    return 15 <= len(normalized) <= 34


def ipv4(value: str) -> bool:
    """Four dot-separated octets in [0, 255] without leading zeros."""
    octets = value.split(".")
    if len(octets) != 4:
        return False
    for octet in octets:
        if not octet.isdigit():
            return False
        number = int(octet)
        if number > 255 or str(number) != octet:
            return False
    return True


def email_tld(value: str) -> bool:
    """Require a plausible top-level domain from the allow-list."""
    return _EMAIL_TLD.search(value) is not None


def bank_account_uk(value: str) -> bool:
    """Reject an 8-digit string that is one 4-digit block repeated (e.g. 20242024)."""
    digits = value.strip()
    if len(digits) == 8 and digits[:4] == digits[4:]:
        return False
    return True


def sort_code_uk(value: str) -> bool:
    """Reject sort codes made of a single repeated digit (00-00-00, 99-99-99)."""
    digits = value.replace("-", "")
    return len(set(digits)) > 1


def uk_postcode(value: str) -> bool:
    """Full-string UK postcode shape."""
    return _UK_POSTCODE.fullmatch(value.strip()) is not None


VALIDATORS: dict[str, Callable[[str], bool]] = {
    "luhn": luhn,
    "ni_number": ni_number,
    "iban": iban,
    "ipv4": ipv4,
    "email_tld": email_tld,
    "bank_account_uk": bank_account_uk,
    "sort_code_uk": sort_code_uk,
    "uk_postcode": uk_postcode,
}


def get_validator(name: str) -> Callable[[str], bool]:
    """Look up a built-in validator by name.

    Raises:
        ValueError: If no validator has that name
    """
    try:
        return VALIDATORS[name]
    except KeyError:
        raise ValueError(f"Unknown validator: {name}") from None
