"""
Line Classifier - keyword based severity for a single log line
"""
import re
from typing import List, Optional

ERROR = 'error'
WARNING = 'warning'
INFO = 'info'


class LineClassifier:
    """
    Classifies one line as error, warning or info.
    Error keywords win over warning keywords; blank lines are not classified.
    """

    ERROR_PATTERN = re.compile(r'\b(ERROR|FATAL|CRITICAL|FAIL|exception|timeout)\b', re.IGNORECASE)
    WARNING_PATTERN = re.compile(r'\b(WARN|WARNING)\b', re.IGNORECASE)

    def classify(self, line: str) -> Optional[str]:
        """Return 'error', 'warning', 'info', or None for a blank line"""
        if not line or not line.strip():
            return None
        if self.ERROR_PATTERN.search(line):
            return ERROR
        if self.WARNING_PATTERN.search(line):
            return WARNING
        return INFO

    def is_error(self, line: str) -> bool:
        return self.classify(line) == ERROR

    @staticmethod
    def split_lines(text: Optional[str]) -> List[str]:
        """Non-blank lines of a log body"""
        if not text:
            return []
        return [line for line in text.splitlines() if line.strip()]

    def error_lines(self, text: Optional[str]) -> List[str]:
        return [line for line in self.split_lines(text) if self.is_error(line)]

    def error_rate(self, text: Optional[str]) -> Optional[float]:
        """
        Fraction of non-blank lines that are errors.
        None when the text has no lines, so callers can skip it as history.
        """
        lines = self.split_lines(text)
        if not lines:
            return None
        errors = sum(1 for line in lines if self.is_error(line))
        return errors / len(lines)
