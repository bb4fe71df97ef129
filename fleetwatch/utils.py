"""
Time, number and upload decoding helpers shared across the package.
"""
import math
from datetime import datetime, timezone

import chardet


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def decode_upload(raw_data: bytes) -> str:
    """Decode an uploaded log body, guessing the encoding from the first 10KB"""
    if not raw_data:
        return ''
    result = chardet.detect(raw_data[:10000])
    encoding = result.get('encoding', 'utf-8') or 'utf-8'
    try:
        return raw_data.decode(encoding, errors='replace')
    except LookupError:
        return raw_data.decode('utf-8', errors='replace')
