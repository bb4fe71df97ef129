"""
Error Normalizer - reduces an error line to a template for "seen before" checks
"""
import re


class ErrorNormalizer:
    """
    Strips volatile tokens so structurally identical errors compare equal.
    The result is lossy on purpose and only meant for grouping.
    """

    # Order matters: timestamps go first so their digits are not turned into <N>
    TIMESTAMP_PATTERN = re.compile(r'\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?')
    IP_PATTERN = re.compile(r'\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}')
    HEX_PATTERN = re.compile(r'\b[0-9a-fA-F]{8,}\b')
    NUMBER_PATTERN = re.compile(r'\d+')

    IP_TOKEN = '<IP>'
    HEX_TOKEN = '<HEX>'
    NUMBER_TOKEN = '<N>'

    def normalize(self, line: str) -> str:
        template = self.TIMESTAMP_PATTERN.sub('', line or '')
        template = self.IP_PATTERN.sub(self.IP_TOKEN, template)
        template = self.HEX_PATTERN.sub(self.HEX_TOKEN, template)
        template = self.NUMBER_PATTERN.sub(self.NUMBER_TOKEN, template)
        return template.strip()

    def same_error(self, first: str, second: str) -> bool:
        return self.normalize(first) == self.normalize(second)
