"""
Log Summarizer - turns one uploaded log into counts, top messages, keywords and a one-line digest
"""
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from fleetwatch.services.error_normalizer import ErrorNormalizer
from fleetwatch.services.extractors import (
    extract_keywords, extract_timestamps, format_duration, parse_timestamp
)
from fleetwatch.services.line_classifier import ERROR, WARNING, LineClassifier
from fleetwatch.utils import round_half_up

logger = logging.getLogger(__name__)

# Metadata key the summary is attached under on a LogEntry
SUMMARY_KEY = 'summary'

MAX_MESSAGE_LENGTH = 200


@dataclass
class LogSummary:
    """Derived view of a LogEntry; the log itself stays the source of truth"""
    line_count: int = 0
    error_count: int = 0
    warn_count: int = 0
    info_count: int = 0
    error_rate: float = 0.0
    top_errors: List[str] = field(default_factory=list)
    top_warnings: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    timespan: Optional[Dict[str, str]] = None
    one_liner: str = ''

    def to_dict(self) -> Dict:
        data = asdict(self)
        if self.timespan is None:
            data.pop('timespan')
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'LogSummary':
        timespan = data.get('timespan')
        return cls(
            line_count=int(data.get('line_count', 0)),
            error_count=int(data.get('error_count', 0)),
            warn_count=int(data.get('warn_count', 0)),
            info_count=int(data.get('info_count', 0)),
            error_rate=float(data.get('error_rate', 0.0)),
            top_errors=list(data.get('top_errors', [])),
            top_warnings=list(data.get('top_warnings', [])),
            keywords=list(data.get('keywords', [])),
            timespan=dict(timespan) if timespan else None,
            one_liner=str(data.get('one_liner', '')),
        )


class LogSummarizer:
    """
    Builds a LogSummary from raw log text.
    Empty or malformed input gives an all-zero summary rather than an error.
    """

    def __init__(self, store=None, classifier: Optional[LineClassifier] = None,
                 normalizer: Optional[ErrorNormalizer] = None, top_n: int = 3):
        self.store = store
        self.classifier = classifier or LineClassifier()
        self.normalizer = normalizer or ErrorNormalizer()
        self.top_n = top_n

    def summarize(self, log) -> LogSummary:
        """Summarize a LogEntry (or anything with a ``content`` attribute)"""
        return self.summarize_text(getattr(log, 'content', None))

    def summarize_text(self, text: Optional[str]) -> LogSummary:
        lines = self.classifier.split_lines(text)
        line_count = len(lines)

        error_count = 0
        warn_count = 0
        info_count = 0
        # template -> [count, representative]; insertion order breaks ties
        error_groups: Dict[str, list] = OrderedDict()
        warning_groups: Dict[str, list] = OrderedDict()

        for line in lines:
            kind = self.classifier.classify(line)
            message = line.strip()[:MAX_MESSAGE_LENGTH]
            if kind == ERROR:
                error_count += 1
                self._count(error_groups, self.normalizer.normalize(line), message)
            elif kind == WARNING:
                warn_count += 1
                self._count(warning_groups, message, message)
            else:
                info_count += 1

        raw_rate = error_count / line_count if line_count else 0.0
        top_errors = self._top(error_groups)
        top_warnings = self._top(warning_groups)

        timespan = None
        timestamps = extract_timestamps(text)
        if timestamps:
            timespan = {'first': timestamps[0], 'last': timestamps[-1]}

        summary = LogSummary(
            line_count=line_count,
            error_count=error_count,
            warn_count=warn_count,
            info_count=info_count,
            error_rate=round_half_up(raw_rate * 1000) / 1000,
            top_errors=top_errors,
            top_warnings=top_warnings,
            keywords=extract_keywords(text),
            timespan=timespan,
        )
        summary.one_liner = self._one_liner(summary, raw_rate)
        return summary

    def summarize_and_store(self, log_id: str) -> Optional[LogSummary]:
        """Compute a summary and attach it to the log's metadata. None if the log is unknown."""
        log = self.store.get_log(log_id)
        if log is None:
            logger.debug(f"Cannot summarize unknown log {log_id}")
            return None

        summary = self.summarize(log)
        self.store.merge_log_metadata(log_id, SUMMARY_KEY, summary.to_dict())
        logger.debug(f"Stored summary for log {log_id}: {summary.one_liner}")
        return summary

    def get_summary(self, log_id: str) -> Optional[LogSummary]:
        """Previously stored summary, or None if missing or unreadable"""
        log = self.store.get_log(log_id)
        if log is None:
            return None
        stored = log.metadata_dict.get(SUMMARY_KEY)
        if not isinstance(stored, dict):
            return None
        try:
            return LogSummary.from_dict(stored)
        except (TypeError, ValueError) as e:
            logger.warning(f"Unreadable stored summary on log {log_id}: {e}")
            return None

    @staticmethod
    def _count(groups: Dict[str, list], key: str, message: str):
        if key in groups:
            groups[key][0] += 1
        else:
            groups[key] = [1, message]

    def _top(self, groups: Dict[str, list]) -> List[str]:
        # sorted() is stable, so equal counts keep first-seen order
        ranked = sorted(groups.values(), key=lambda item: -item[0])
        return [message for _, message in ranked[:self.top_n]]

    def _one_liner(self, summary: LogSummary, raw_rate: float) -> str:
        parts = [f"{summary.line_count} lines"]
        if summary.error_count > 0:
            parts.append(f"{summary.error_count} errors ({round_half_up(raw_rate * 1000) / 10:.1f}%)")
        if summary.warn_count > 0:
            parts.append(f"{summary.warn_count} warnings")

        if summary.timespan:
            span = self._span(summary.timespan['first'], summary.timespan['last'])
            if span:
                parts.append(f"spanning {span}")

        one_liner = ', '.join(parts)

        if summary.top_errors:
            one_liner += f". Top error: {summary.top_errors[0][:60]}"

        if summary.error_count == 0 and summary.warn_count == 0:
            one_liner += '. No errors or warnings detected'

        return one_liner

    @staticmethod
    def _span(first: str, last: str) -> Optional[str]:
        start = parse_timestamp(first)
        end = parse_timestamp(last)
        if start is None or end is None:
            return None
        seconds = (end - start).total_seconds()
        if seconds <= 0:
            return None
        return format_duration(seconds)
