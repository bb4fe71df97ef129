"""
Extraction rules used by the log summarizer: IP addresses, error codes and ISO-8601 timestamps
"""
import re
from datetime import datetime
from typing import List, Optional

ISO_TIMESTAMP_PATTERN = re.compile(r'\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?')

# One scan per line keeps keywords in order of first appearance; codes match in either case
KEYWORD_PATTERN = re.compile(
    r'(?P<ip>\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b)'
    r'|(?P<hex_code>\b0x[0-9A-Fa-f]{4,}\b)'
    r'|(?P<prefixed_code>\b[A-Z][A-Z0-9]*[-_]\d+\b)'
    r'|(?P<short_code>\b(?=[A-Z0-9]*\d)(?=[A-Z0-9]*[A-Z])[A-Z0-9]{4,6}\b)',
    re.IGNORECASE
)


def extract_keywords(text: Optional[str]) -> List[str]:
    """IP addresses and error codes in order of first appearance, de-duplicated"""
    keywords = []
    seen = set()
    for line in (text or '').splitlines():
        # Timestamp fragments such as "15T10" would otherwise read as codes
        scrubbed = ISO_TIMESTAMP_PATTERN.sub(' ', line)
        for match in KEYWORD_PATTERN.finditer(scrubbed):
            keyword = match.group(0)
            if keyword not in seen:
                seen.add(keyword)
                keywords.append(keyword)
    return keywords


def extract_timestamps(text: Optional[str]) -> List[str]:
    """Every ISO-8601 timestamp in the text, in appearance order"""
    return ISO_TIMESTAMP_PATTERN.findall(text or '')


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a timestamp found by extract_timestamps; None if it is not a real date"""
    cleaned = value.replace('T', ' ').rstrip('Z')
    base, _, fraction = cleaned.partition('.')
    try:
        parsed = datetime.strptime(base, '%Y-%m-%d %H:%M:%S')
    except ValueError:
        return None
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, '0')))
    return parsed


def format_duration(seconds: float) -> str:
    """Compact duration such as '2h 5m', '12m' or '40s'"""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{round(seconds)}s"
