"""
Health Scorer - weighted 0-100 health score per device

Factor weights:
  recency            25  how recently the device was seen
  error_rate         25  pooled error rate over the latest logs
  log_frequency      20  whether uploads are arriving on their usual cadence
  firmware_currency  15  distance from the newest release for the device type
  anomaly_count      15  unresolved anomaly backlog
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fleetwatch.models import Device, DeviceHealth, DeviceHealthHistory
from fleetwatch.services.line_classifier import LineClassifier
from fleetwatch.utils import hours_between, round_half_up, utcnow

logger = logging.getLogger(__name__)

RECENCY_MAX = 25
ERROR_RATE_MAX = 25
LOG_FREQUENCY_MAX = 20
FIRMWARE_MAX = 15
ANOMALY_MAX = 15

ANOMALY_PENALTY = 5
TREND_LOOKBACK = timedelta(hours=24)
TREND_THRESHOLD = 5

IMPROVING = 'improving'
STABLE = 'stable'
DEGRADING = 'degrading'


@dataclass
class HealthFactors:
    recency: int
    error_rate: int
    log_frequency: int
    firmware_currency: int
    anomaly_count: int

    def total(self) -> int:
        return (self.recency + self.error_rate + self.log_frequency
                + self.firmware_currency + self.anomaly_count)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class HealthResult:
    device_id: str
    tenant_id: Optional[str]
    score: int
    factors: HealthFactors
    trend: str

    def to_dict(self) -> Dict:
        return {
            'device_id': self.device_id,
            'tenant_id': self.tenant_id,
            'score': self.score,
            'factors': self.factors.to_dict(),
            'trend': self.trend,
        }


class HealthScorer:
    """
    Computes, stores and reads device health.
    Every compute call upserts the live record and appends one history point.
    """

    def __init__(self, store, classifier: Optional[LineClassifier] = None, error_window: int = 10):
        self.store = store
        self.classifier = classifier or LineClassifier()
        self.error_window = error_window

    def compute_health(self, device_id: str, now: Optional[datetime] = None) -> Optional[HealthResult]:
        device = self.store.get_device(device_id)
        if device is None:
            logger.debug(f"Health requested for unknown device {device_id}")
            return None

        now = now or utcnow()
        factors = self.compute_factors(device, now)
        score = max(0, min(100, factors.total()))
        # Trend looks at history before this run's point is appended
        trend = self.compute_trend(device_id, score, now)

        self.store.upsert_health(device_id, score, factors.to_dict(), trend, updated_at=now)
        self.store.append_health_history(device_id, score, recorded_at=now)
        return HealthResult(device_id=device_id, tenant_id=device.tenant_id,
                            score=score, factors=factors, trend=trend)

    def compute_all_health(self, tenant_id: Optional[str] = None,
                           now: Optional[datetime] = None) -> List[HealthResult]:
        """Health for every device, worst score first"""
        now = now or utcnow()
        results = []
        for device in self.store.list_devices(tenant_id):
            result = self.compute_health(device.id, now=now)
            if result is not None:
                results.append(result)
        results.sort(key=lambda result: result.score)
        return results

    def get_health(self, device_id: str) -> Optional[DeviceHealth]:
        return self.store.get_health(device_id)

    def get_fleet_health(self, tenant_id: str) -> List[DeviceHealth]:
        return self.store.list_health(tenant_id)

    def get_history(self, device_id: str, limit: Optional[int] = None) -> List[DeviceHealthHistory]:
        return self.store.health_history(device_id, limit=limit)

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def compute_factors(self, device: Device, now: datetime) -> HealthFactors:
        logs = self.store.recent_logs(device.id, limit=self.error_window)
        return HealthFactors(
            recency=self.recency_score(device, now),
            error_rate=self.error_rate_score(logs),
            log_frequency=self.log_frequency_score(self.store.upload_times(device.id), now),
            firmware_currency=self.firmware_score(device),
            anomaly_count=self.anomaly_score(self.store.count_unresolved_anomalies(device.id)),
        )

    @staticmethod
    def recency_score(device: Device, now: datetime) -> int:
        if device.status == 'online':
            return RECENCY_MAX
        if device.last_seen is None:
            return 0

        hours = hours_between(device.last_seen, now)
        if hours <= 1:
            return RECENCY_MAX
        if hours <= 24:
            return round_half_up(RECENCY_MAX * (1 - hours / 48))
        return max(0, round_half_up(RECENCY_MAX * (1 - hours / 168)))

    def error_rate_score(self, logs) -> int:
        total_lines = 0
        total_errors = 0
        for log in logs:
            lines = self.classifier.split_lines(log.content)
            total_lines += len(lines)
            total_errors += sum(1 for line in lines if self.classifier.is_error(line))

        if total_lines == 0:
            return ERROR_RATE_MAX
        rate = total_errors / total_lines
        if rate >= 0.5:
            return 0
        return round_half_up(ERROR_RATE_MAX * (1 - rate * 2))

    @staticmethod
    def log_frequency_score(uploads: List[datetime], now: datetime) -> int:
        uploads = sorted(uploaded for uploaded in uploads if uploaded is not None)
        if not uploads:
            return 10
        if len(uploads) == 1:
            return LOG_FREQUENCY_MAX

        gaps = [(later - earlier).total_seconds() for earlier, later in zip(uploads, uploads[1:])]
        avg_interval = sum(gaps) / len(gaps)
        if avg_interval <= 0:
            return LOG_FREQUENCY_MAX

        ratio = (now - uploads[-1]).total_seconds() / avg_interval
        if ratio <= 1.5:
            return LOG_FREQUENCY_MAX
        if ratio >= 3:
            return 0
        return round_half_up(LOG_FREQUENCY_MAX * (1 - (ratio - 1.5) / 1.5))

    def firmware_score(self, device: Device) -> int:
        if not device.firmware_version or not device.tenant_id:
            return FIRMWARE_MAX

        releases = self.store.latest_firmware(device.device_type, device.tenant_id)
        if not releases:
            return FIRMWARE_MAX

        versions = [release.version for release in releases]
        if versions[0] == device.firmware_version:
            return FIRMWARE_MAX
        if device.firmware_version not in versions:
            return 0
        behind = versions.index(device.firmware_version)
        if behind >= 2:
            return 0
        return round_half_up(FIRMWARE_MAX * (1 - behind / 2))

    @staticmethod
    def anomaly_score(unresolved: int) -> int:
        return max(0, ANOMALY_MAX - ANOMALY_PENALTY * unresolved)

    def compute_trend(self, device_id: str, score: int, now: datetime) -> str:
        previous = self.store.score_before(device_id, now - TREND_LOOKBACK)
        if previous is None:
            return STABLE
        diff = score - previous
        if diff > TREND_THRESHOLD:
            return IMPROVING
        if diff < -TREND_THRESHOLD:
            return DEGRADING
        return STABLE
