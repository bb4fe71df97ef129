"""
Anomaly Engine - statistical detectors over a device's upload history

Four detectors, each independent of the others:
  error_spike     current error rate far above the device's recent average
  new_pattern     error templates never seen in the device's recent logs
  device_silent   no upload for several times the usual interval
  volume_anomaly  today's upload count far outside the last week's spread
"""
import logging
import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from fleetwatch.models import Anomaly, Device, LogEntry
from fleetwatch.services.error_normalizer import ErrorNormalizer
from fleetwatch.services.line_classifier import LineClassifier
from fleetwatch.utils import round_half_up, start_of_day, utcnow

logger = logging.getLogger(__name__)


class AnomalyType(str, Enum):
    """The closed set of signals the engine can raise"""
    ERROR_SPIKE = "error_spike"
    NEW_PATTERN = "new_pattern"
    DEVICE_SILENT = "device_silent"
    VOLUME_ANOMALY = "volume_anomaly"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# (magnitude strictly above, severity), checked top down
SPIKE_SEVERITY_TIERS = [
    (10, Severity.CRITICAL),
    (5, Severity.HIGH),
    (3, Severity.MEDIUM),
]

MAX_ERROR_LENGTH = 200
MAX_NEW_ERROR_EXAMPLES = 5


class AnomalyEngine:
    """
    Runs the detectors and persists every fired signal through the store.
    Missing or empty history never raises; it just yields no signals.
    """

    def __init__(self, store, classifier: Optional[LineClassifier] = None,
                 normalizer: Optional[ErrorNormalizer] = None,
                 history_window: int = 20,
                 spike_multiplier: float = 2.0,
                 new_pattern_min_history: int = 2,
                 silence_multiplier: float = 3.0,
                 volume_window_days: int = 7,
                 volume_sigma: float = 3.0):
        self.store = store
        self.classifier = classifier or LineClassifier()
        self.normalizer = normalizer or ErrorNormalizer()
        self.history_window = history_window
        self.spike_multiplier = spike_multiplier
        self.new_pattern_min_history = new_pattern_min_history
        self.silence_multiplier = silence_multiplier
        self.volume_window_days = volume_window_days
        self.volume_sigma = volume_sigma

    # ------------------------------------------------------------------
    # Per-upload detectors
    # ------------------------------------------------------------------

    def analyze_log(self, log: LogEntry, now: Optional[datetime] = None) -> List[Anomaly]:
        """Run the error-spike and new-pattern detectors for one freshly uploaded log"""
        lines = self.classifier.split_lines(log.content)
        if not lines:
            return []

        error_lines = [line for line in lines if self.classifier.is_error(line)]
        if not error_lines:
            return []

        history = self.store.recent_logs(log.device_id, limit=self.history_window, exclude_id=log.id)
        created_at = now or utcnow()

        anomalies = []
        spike = self._detect_error_spike(log, lines, error_lines, history, created_at)
        if spike is not None:
            anomalies.append(spike)
        pattern = self._detect_new_pattern(log, error_lines, history, created_at)
        if pattern is not None:
            anomalies.append(pattern)
        return anomalies

    def _detect_error_spike(self, log: LogEntry, lines: List[str], error_lines: List[str],
                            history: List[LogEntry], created_at: datetime) -> Optional[Anomaly]:
        historical_rates = []
        for past in history:
            rate = self.classifier.error_rate(past.content)
            if rate is not None:
                historical_rates.append(rate)

        if not historical_rates:
            return None

        avg_error_rate = sum(historical_rates) / len(historical_rates)
        error_rate = len(error_lines) / len(lines)
        if avg_error_rate <= 0 or error_rate <= avg_error_rate * self.spike_multiplier:
            return None

        magnitude = error_rate / avg_error_rate
        severity = self.spike_severity(magnitude)
        message = (f"Error rate {error_rate * 100:.1f}% is {magnitude:.1f}x the historical "
                   f"average of {avg_error_rate * 100:.1f}%")
        return self._record(
            log.device_id, log.tenant_id, AnomalyType.ERROR_SPIKE, severity, message,
            log_id=log.id, created_at=created_at,
            details={
                'error_rate': error_rate,
                'avg_error_rate': avg_error_rate,
                'magnitude': magnitude,
                'error_count': len(error_lines),
                'total_lines': len(lines),
                'history_size': len(historical_rates),
            }
        )

    @staticmethod
    def spike_severity(magnitude: float) -> Severity:
        for threshold, severity in SPIKE_SEVERITY_TIERS:
            if magnitude > threshold:
                return severity
        return Severity.LOW

    def _detect_new_pattern(self, log: LogEntry, error_lines: List[str],
                            history: List[LogEntry], created_at: datetime) -> Optional[Anomaly]:
        # A single prior log is not enough to call anything "new"
        if len(history) < self.new_pattern_min_history:
            return None

        known = set()
        for past in history:
            for line in self.classifier.error_lines(past.content):
                known.add(self.normalizer.normalize(line))

        new_errors = [
            line.strip()[:MAX_ERROR_LENGTH]
            for line in error_lines
            if self.normalizer.normalize(line) not in known
        ]
        if not new_errors:
            return None

        message = f"{len(new_errors)} new error pattern(s) detected: {new_errors[0][:100]}"
        return self._record(
            log.device_id, log.tenant_id, AnomalyType.NEW_PATTERN, Severity.MEDIUM, message,
            log_id=log.id, created_at=created_at,
            details={
                'new_errors': new_errors[:MAX_NEW_ERROR_EXAMPLES],
                'count': len(new_errors),
            }
        )

    # ------------------------------------------------------------------
    # Batch detectors
    # ------------------------------------------------------------------

    def check_device_silence(self, tenant_id: Optional[str] = None,
                             now: Optional[datetime] = None) -> List[Anomaly]:
        now = now or utcnow()
        anomalies = []
        for device in self.store.list_devices(tenant_id):
            anomaly = self.check_device_silence_for(device, now=now)
            if anomaly is not None:
                anomalies.append(anomaly)
        return anomalies

    def check_device_silence_for(self, device: Device, now: Optional[datetime] = None) -> Optional[Anomaly]:
        """Fire device_silent when the gap since the last upload exceeds the usual cadence"""
        now = now or utcnow()
        uploads = self.store.upload_times(device.id)
        if len(uploads) < 2:
            logger.debug(f"Silence check skipped for {device.id}: {len(uploads)} upload(s)")
            return None

        avg_interval = self._mean_interval(uploads)
        since_last = (now - uploads[-1]).total_seconds()
        if avg_interval <= 0 or since_last <= avg_interval * self.silence_multiplier:
            return None

        hours_overdue = round_half_up((since_last - avg_interval) / 3600)
        expected_hours = round_half_up(avg_interval / 3600)
        message = f"Device has not reported in {hours_overdue}h (expected every {expected_hours}h)"
        return self._record(
            device.id, device.tenant_id, AnomalyType.DEVICE_SILENT, Severity.HIGH, message,
            created_at=now,
            details={
                'avg_interval_seconds': avg_interval,
                'seconds_since_last_log': since_last,
                'hours_overdue': hours_overdue,
            }
        )

    def check_volume_anomaly(self, tenant_id: Optional[str] = None,
                             now: Optional[datetime] = None) -> List[Anomaly]:
        now = now or utcnow()
        anomalies = []
        for device in self.store.list_devices(tenant_id):
            anomaly = self.check_volume_anomaly_for(device, now=now)
            if anomaly is not None:
                anomalies.append(anomaly)
        return anomalies

    def check_volume_anomaly_for(self, device: Device, now: Optional[datetime] = None) -> Optional[Anomaly]:
        """Compare today's upload count against the previous complete calendar days"""
        now = now or utcnow()
        uploads = self.store.upload_times(device.id)
        if len(uploads) < self.volume_window_days:
            logger.debug(f"Volume check skipped for {device.id}: {len(uploads)} upload(s)")
            return None

        today_start = start_of_day(now)
        daily_counts = self.daily_counts(uploads, today_start, self.volume_window_days)
        today_count = sum(1 for uploaded in uploads if uploaded >= today_start)

        mean = sum(daily_counts) / len(daily_counts)
        stddev = math.sqrt(sum((count - mean) ** 2 for count in daily_counts) / len(daily_counts))
        if stddev <= 0 or abs(today_count - mean) <= self.volume_sigma * stddev:
            return None

        direction = 'above' if today_count > mean else 'below'
        deviations = round((today_count - mean) / stddev, 1)
        message = (f"Log volume {direction} normal: {today_count} today vs {mean:.1f} avg "
                   f"({deviations} std devs)")
        return self._record(
            device.id, device.tenant_id, AnomalyType.VOLUME_ANOMALY, Severity.MEDIUM, message,
            created_at=now,
            details={
                'today_count': today_count,
                'mean': mean,
                'stddev': stddev,
                'deviations': deviations,
                'daily_counts': daily_counts,
            }
        )

    @staticmethod
    def daily_counts(uploads: List[datetime], today_start: datetime, days: int) -> List[int]:
        """Upload counts per complete day before today_start, most recent day first"""
        counts = []
        for i in range(1, days + 1):
            day_start = today_start - timedelta(days=i)
            day_end = day_start + timedelta(days=1)
            counts.append(sum(1 for uploaded in uploads if day_start <= uploaded < day_end))
        return counts

    @staticmethod
    def _mean_interval(uploads: List[datetime]) -> float:
        """Mean gap between sorted uploads, in seconds"""
        gaps = [(later - earlier).total_seconds() for earlier, later in zip(uploads, uploads[1:])]
        return sum(gaps) / len(gaps)

    # ------------------------------------------------------------------
    # Queries and triage
    # ------------------------------------------------------------------

    def get_anomalies(self, tenant_id: str) -> List[Anomaly]:
        return self.store.list_anomalies(tenant_id)

    def get_device_anomalies(self, device_id: str) -> List[Anomaly]:
        return self.store.recent_anomalies(device_id)

    def get_unresolved(self, tenant_id: str) -> List[Anomaly]:
        return self.store.list_anomalies(tenant_id, unresolved_only=True)

    def resolve_anomaly(self, anomaly_id: str) -> bool:
        resolved = self.store.resolve_anomaly(anomaly_id)
        if resolved:
            logger.info(f"Anomaly {anomaly_id} resolved")
        return resolved

    def _record(self, device_id: str, tenant_id: Optional[str], anomaly_type: AnomalyType,
                severity: Severity, message: str, log_id: Optional[str] = None,
                details: Optional[Dict] = None, created_at: Optional[datetime] = None) -> Anomaly:
        anomaly = self.store.create_anomaly(
            device_id=device_id,
            tenant_id=tenant_id,
            type=anomaly_type.value,
            severity=severity.value,
            message=message,
            log_id=log_id,
            details=details,
            created_at=created_at,
        )
        logger.info(f"{anomaly_type.value} ({severity.value}) on device {device_id}: {message}")
        return anomaly
