"""
Tests for ErrorNormalizer templates.
"""
import pytest

from fleetwatch.services.error_normalizer import ErrorNormalizer


class TestNormalize:

    @pytest.fixture
    def normalizer(self):
        return ErrorNormalizer()

    def test_strips_timestamp_ip_and_numbers(self, normalizer):
        line = '2024-01-15T10:30:00Z ERROR connection to 10.0.0.1 failed after 3 retries'
        assert normalizer.normalize(line) == 'ERROR connection to <IP> failed after <N> retries'

    def test_timestamp_with_space_and_fraction(self, normalizer):
        assert normalizer.normalize('2024-01-15 10:30:00.123 ERROR bus reset') == 'ERROR bus reset'

    def test_ip_is_replaced_before_numbers(self, normalizer):
        """An address becomes one token, not four number tokens"""
        assert normalizer.normalize('ERROR from 192.168.1.20') == 'ERROR from <IP>'

    def test_long_hex_runs(self, normalizer):
        assert normalizer.normalize('ERROR bad block deadbeef01 at 42') == 'ERROR bad block <HEX> at <N>'

    def test_short_hex_is_not_a_hex_token(self, normalizer):
        """Fewer than eight hex characters are left alone apart from digits"""
        assert normalizer.normalize('ERROR code abc12') == 'ERROR code abc<N>'

    def test_trims_whitespace(self, normalizer):
        assert normalizer.normalize('   FATAL halt   ') == 'FATAL halt'

    def test_same_error_ignores_volatile_tokens(self, normalizer):
        assert normalizer.same_error(
            '2024-01-15T10:30:00Z ERROR disk 1 failed on 10.0.0.1',
            '2024-02-01T08:00:00Z ERROR disk 7 failed on 10.0.0.99',
        )

    def test_different_errors_stay_different(self, normalizer):
        assert not normalizer.same_error('ERROR disk 1 failed', 'ERROR fan 1 failed')
