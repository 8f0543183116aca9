"""Brazilian healthcare registry validators (CNPJ, CNES, CRM state)"""

import re

BRAZILIAN_STATES = frozenset({
    "AC", "AL", "AP", "AM", "BA", "CE", "DF", "ES", "GO", "MA", "MT", "MS", "MG", "PA",
    "PB", "PR", "PE", "PI", "RJ", "RN", "RS", "RO", "RR", "SC", "SP", "SE", "TO",
})


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def _cnpj_check_digit(digits: str) -> int:
    """Mod-11 check digit with weights 2..9 cycling from the rightmost digit"""
    total = 0
    weight = 2
    for char in reversed(digits):
        total += int(char) * weight
        weight = 2 if weight == 9 else weight + 1
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cnpj(cnpj: str) -> bool:
    """
    Validate a CNPJ (company registry number), formatted or bare.

    Requirements:
    - 14 digits after stripping punctuation
    - Not a single repeated digit
    - Both check digits match

    Example:
        "11.222.333/0001-81" -> True
    """
    digits = _digits(cnpj)
    if len(digits) != 14 or len(set(digits)) == 1:
        return False

    first = _cnpj_check_digit(digits[:12])
    second = _cnpj_check_digit(digits[:13])
    return int(digits[12]) == first and int(digits[13]) == second


def is_valid_cnes(cnes: str) -> bool:
    """CNES (health establishment registry): 7 digits, not all the same"""
    digits = _digits(cnes)
    return len(digits) == 7 and len(set(digits)) > 1


def is_valid_crm_state(crm_state: str) -> bool:
    """CRM registrations are issued per federative unit (UF)"""
    return (crm_state or "").upper() in BRAZILIAN_STATES
