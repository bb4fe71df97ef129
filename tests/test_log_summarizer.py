"""
Tests for LogSummarizer: counts, ranking, keywords, timespan and the one-line digest.
"""
import pytest

from fleetwatch import db
from fleetwatch.services.extractors import extract_keywords, format_duration, parse_timestamp
from fleetwatch.services.log_summarizer import SUMMARY_KEY, LogSummarizer, LogSummary


class TestSummarize:
    """summarize_text on raw log bodies"""

    @pytest.fixture
    def summarizer(self):
        return LogSummarizer()

    def test_reference_example(self, summarizer):
        """Timeout error, two info lines"""
        summary = summarizer.summarize_text('ERROR: timeout\nINFO: running\nINFO: ok')

        assert summary.line_count == 3
        assert summary.error_count == 1
        assert summary.warn_count == 0
        assert summary.info_count == 2
        assert summary.error_rate == 0.333
        assert '3 lines' in summary.one_liner
        assert '1 errors' in summary.one_liner
        assert 'timeout' in summary.one_liner

    def test_one_liner_format(self, summarizer):
        summary = summarizer.summarize_text('ERROR: timeout\nINFO: running\nINFO: ok')
        assert summary.one_liner == '3 lines, 1 errors (33.3%). Top error: ERROR: timeout'

    def test_one_liner_with_warnings(self, summarizer):
        summary = summarizer.summarize_text('ERROR: a\nWARN: b\nWARN: c\nINFO: d')
        assert summary.one_liner.startswith('4 lines, 1 errors (25.0%), 2 warnings')

    def test_empty_input(self, summarizer):
        """Empty text gives zeros, not an error"""
        for text in ('', None, '\n  \n'):
            summary = summarizer.summarize_text(text)
            assert summary.line_count == 0
            assert summary.error_count == 0
            assert summary.error_rate == 0
            assert summary.top_errors == []
            assert summary.timespan is None
            assert summary.one_liner == '0 lines. No errors or warnings detected'

    def test_clean_log_digest(self, summarizer):
        summary = summarizer.summarize_text('INFO: boot\nINFO: ready')
        assert summary.one_liner == '2 lines. No errors or warnings detected'

    def test_counts_add_up(self, summarizer):
        text = 'ERROR a\n\nWARN b\nINFO c\nsomething else\nFATAL d\n   \nWARNING e'
        summary = summarizer.summarize_text(text)
        assert summary.line_count == 6
        assert summary.error_count + summary.warn_count + summary.info_count == summary.line_count
        assert (summary.error_count, summary.warn_count, summary.info_count) == (2, 2, 2)

    def test_error_rate_rounded_to_three_places(self, summarizer):
        summary = summarizer.summarize_text('ERROR a\nERROR b\nINFO c\nINFO d\nINFO e\nINFO f\nINFO g')
        assert summary.error_rate == 0.286

    def test_error_rate_tie_rounds_up(self, summarizer):
        """One error in sixteen lines is exactly 0.0625"""
        summary = summarizer.summarize_text('\n'.join(['ERROR x'] + ['INFO y'] * 15))
        assert summary.error_rate == 0.063
        assert summary.one_liner.startswith('16 lines, 1 errors (6.3%)')

    def test_top_errors_grouped_by_template(self, summarizer):
        """Lines differing only in numbers count as one error; the first one represents it"""
        text = 'ERROR disk 1 failed\nERROR net down\nERROR disk 2 failed\nERROR disk 3 failed'
        summary = summarizer.summarize_text(text)
        assert summary.top_errors == ['ERROR disk 1 failed', 'ERROR net down']

    def test_top_errors_limited_and_ties_keep_first_seen(self, summarizer):
        text = '\n'.join(['ERROR alpha', 'ERROR beta', 'ERROR gamma', 'ERROR delta', 'ERROR delta'])
        summary = summarizer.summarize_text(text)
        assert summary.top_errors == ['ERROR delta', 'ERROR alpha', 'ERROR beta']

    def test_top_n_is_configurable(self):
        summary = LogSummarizer(top_n=1).summarize_text('ERROR alpha\nERROR beta')
        assert summary.top_errors == ['ERROR alpha']

    def test_top_warnings_grouped_by_raw_text(self, summarizer):
        """Warnings are not normalized, so different numbers are different warnings"""
        text = 'WARN temp 80\nWARN battery low\nWARN battery low\nWARN temp 81'
        summary = summarizer.summarize_text(text)
        assert summary.top_warnings == ['WARN battery low', 'WARN temp 80', 'WARN temp 81']

    def test_representatives_truncated(self, summarizer):
        summary = summarizer.summarize_text('ERROR ' + 'x' * 300)
        assert len(summary.top_errors[0]) == 200

    def test_keywords(self, summarizer):
        text = ('ERROR E1001 from 192.168.1.10\n'
                'WARN code ERR-42 addr 0xDEADBEEF\n'
                'ERROR E1001 again from 192.168.1.10')
        summary = summarizer.summarize_text(text)
        assert summary.keywords == ['E1001', '192.168.1.10', 'ERR-42', '0xDEADBEEF']

    def test_timespan_in_appearance_order(self, summarizer):
        """The span is textual: first and last seen, not min and max"""
        text = ('2024-01-15T12:00:00Z INFO late line first\n'
                '2024-01-15T10:00:00Z INFO early line\n'
                '2024-01-15T11:00:00Z INFO last')
        summary = summarizer.summarize_text(text)
        assert summary.timespan == {'first': '2024-01-15T12:00:00Z', 'last': '2024-01-15T11:00:00Z'}
        assert 'spanning' not in summary.one_liner

    def test_spanning_in_digest(self, summarizer):
        text = '2024-01-15T10:00:00Z INFO start\n2024-01-15T12:05:00Z INFO stop'
        summary = summarizer.summarize_text(text)
        assert summary.timespan == {'first': '2024-01-15T10:00:00Z', 'last': '2024-01-15T12:05:00Z'}
        assert summary.one_liner == '2 lines, spanning 2h 5m. No errors or warnings detected'

    def test_single_timestamp(self, summarizer):
        summary = summarizer.summarize_text('2024-01-15 10:00:00 INFO only one')
        assert summary.timespan == {'first': '2024-01-15 10:00:00', 'last': '2024-01-15 10:00:00'}

    def test_timestamps_do_not_become_keywords(self, summarizer):
        summary = summarizer.summarize_text('2024-01-15T10:30:00Z INFO start')
        assert summary.keywords == []

    def test_summary_dict_round_trip(self, summarizer):
        summary = summarizer.summarize_text('2024-01-15T10:00:00Z ERROR E1001\nINFO ok')
        assert LogSummary.from_dict(summary.to_dict()) == summary


class TestStoredSummary:
    """summarize_and_store and get_summary against the database"""

    @pytest.fixture
    def summarizer(self, store):
        return LogSummarizer(store)

    def test_summary_attached_to_metadata(self, summarizer, fleet):
        device = fleet.device()
        log = fleet.log(device, 'ERROR: timeout\nINFO: ok', metadata={'source': 'sftp', 'batch': 7})

        summary = summarizer.summarize_and_store(log.id)

        metadata = db.session.get(type(log), log.id).metadata_dict
        assert metadata['source'] == 'sftp'
        assert metadata['batch'] == 7
        assert metadata[SUMMARY_KEY]['error_count'] == 1
        assert summarizer.get_summary(log.id) == summary

    def test_restore_overwrites_only_summary(self, summarizer, fleet):
        device = fleet.device()
        log = fleet.log(device, 'INFO: ok', metadata={'summary': {'line_count': 99}, 'source': 'api'})

        summarizer.summarize_and_store(log.id)

        stored = summarizer.get_summary(log.id)
        assert stored.line_count == 1
        assert log.metadata_dict['source'] == 'api'

    def test_unknown_log(self, summarizer):
        assert summarizer.summarize_and_store('missing') is None
        assert summarizer.get_summary('missing') is None

    def test_no_summary_yet(self, summarizer, fleet):
        log = fleet.log(fleet.device(), 'INFO: ok')
        assert summarizer.get_summary(log.id) is None

    def test_corrupted_metadata(self, summarizer, fleet):
        """Unreadable metadata is replaced rather than raising"""
        log = fleet.log(fleet.device(), 'ERROR: x')
        log.log_metadata = '{not json'
        db.session.commit()

        assert summarizer.get_summary(log.id) is None
        summary = summarizer.summarize_and_store(log.id)
        assert summary.error_count == 1
        assert list(log.metadata_dict.keys()) == [SUMMARY_KEY]


class TestExtractors:
    """Helpers behind keywords and timespan"""

    def test_prefixed_and_short_codes(self):
        assert extract_keywords('fault DEV_12 and A1B2 and BATT-7') == ['DEV_12', 'A1B2', 'BATT-7']

    def test_plain_words_and_numbers_ignored(self):
        assert extract_keywords('ERROR WARNING 12345 abc status OK') == []

    def test_lowercase_codes(self):
        assert extract_keywords('ERROR code e1234 and abc1, retry-3') == ['e1234', 'abc1', 'retry-3']

    def test_parse_timestamp(self):
        parsed = parse_timestamp('2024-01-15T10:30:00.5Z')
        assert (parsed.hour, parsed.minute, parsed.microsecond) == (10, 30, 500000)

    def test_parse_invalid_timestamp(self):
        assert parse_timestamp('2024-13-45T99:00:00Z') is None

    def test_format_duration(self):
        assert format_duration(7500) == '2h 5m'
        assert format_duration(720) == '12m'
        assert format_duration(40) == '40s'
