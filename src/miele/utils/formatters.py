from __future__ import annotations

from decimal import Decimal, InvalidOperation


def format_brl(value: str | None) -> str:
    """Format a decimal string as R$ X.XXX,XX (blank or malformed reads as zero)."""
    try:
        d = Decimal(value or "0")
    except InvalidOperation:
        d = Decimal(0)
    formatted = f"{d:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {formatted}"


def format_cnpj(value: str | None) -> str:
    """Format 14 digits as XX.XXX.XXX/XXXX-XX; anything else is returned as-is."""
    digits = "".join(ch for ch in value or "" if ch.isdigit())
    if len(digits) != 14:
        return value or ""
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"


def format_date(value: str | None) -> str:
    """Format an ISO date or timestamp as DD/MM/AAAA."""
    if not value or len(value) < 10:
        return value or "-"
    parts = value[:10].split("-")
    if len(parts) != 3:
        return value
    year, month, day = parts
    return f"{day}/{month}/{year}"
