from __future__ import annotations


def normalize_serial(value: str) -> str:
    """Strip whitespace and upper-case a serial number for comparison."""
    if not isinstance(value, str):
        raise TypeError("serial number must be a string")
    return value.strip().upper()


def same_serial(a: str | None, b: str | None) -> bool:
    """Case-insensitive serial number match. None never matches."""
    if not a or not b:
        return False
    return normalize_serial(a) == normalize_serial(b)


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter expression."""
    return "'" + value.replace("'", "''") + "'"
