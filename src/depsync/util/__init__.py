from .serial import normalize_serial, odata_quote, same_serial
from .time import (
    format_duration,
    format_local,
    normalize_dt,
    now_utc,
    parse_optional_timestamp,
    parse_rfc3339,
)

__all__ = [
    "normalize_serial",
    "same_serial",
    "odata_quote",
    "now_utc",
    "parse_rfc3339",
    "parse_optional_timestamp",
    "format_local",
    "format_duration",
    "normalize_dt",
]
