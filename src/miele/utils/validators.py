from __future__ import annotations

import re
from datetime import date, datetime

_UFS = frozenset({
    "AC", "AL", "AP", "AM", "BA", "CE", "DF", "ES", "GO",
    "MA", "MT", "MS", "MG", "PA", "PB", "PR", "PE", "PI",
    "RJ", "RN", "RS", "RO", "RR", "SC", "SP", "SE", "TO",
})

_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def _cnpj_digit(digits: str, weights: tuple[int, ...]) -> str:
    total = sum(int(d) * w for d, w in zip(digits, weights, strict=True))
    rest = total % 11
    return "0" if rest < 2 else str(11 - rest)


def validate_cnpj(value: str) -> str:
    """Validate a CNPJ (masked or not) and return its 14 digits.

    Raises ValueError on wrong length, repeated digits or bad check digits.
    """
    digits = re.sub(r"\D", "", value or "")
    if len(digits) != 14:
        raise ValueError(f"CNPJ deve ter 14 digitos: '{value}'")
    if digits == digits[0] * 14:
        raise ValueError(f"CNPJ invalido: '{value}'")
    first = _cnpj_digit(digits[:12], _CNPJ_WEIGHTS_1)
    second = _cnpj_digit(digits[:12] + first, _CNPJ_WEIGHTS_2)
    if digits[12:] != first + second:
        raise ValueError(f"CNPJ invalido: '{value}'")
    return digits


def validate_date(value: str) -> str:
    """Validate an ISO date (YYYY-MM-DD) or datetime string.

    Returns the value unchanged if valid.
    Raises ValueError for anything else.
    """
    try:
        if len(value) <= 10:
            date.fromisoformat(value)
        else:
            datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Data invalida: '{value}'. Use YYYY-MM-DD.") from None
    return value


def validate_uf(value: str) -> str:
    """Validate a Brazilian state code and return it uppercased."""
    uf = (value or "").strip().upper()
    if uf not in _UFS:
        raise ValueError(f"UF invalida: '{value}'")
    return uf
