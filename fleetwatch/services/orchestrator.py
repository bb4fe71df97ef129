"""
Orchestrator - fans the analytics services out over tenants and devices

Entry points are called by the scheduler, the CLI and the upload endpoint.
A failure on one device is logged and the batch moves on to the next.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fleetwatch.models import Anomaly
from fleetwatch.services.anomaly_engine import AnomalyEngine
from fleetwatch.services.health_scorer import HealthResult, HealthScorer
from fleetwatch.services.log_summarizer import LogSummarizer

logger = logging.getLogger(__name__)


class Notifier:
    """Receives analysis results for delivery. Transport is up to the subclass."""

    def anomaly_detected(self, tenant_id: Optional[str], anomaly: Anomaly):
        pass

    def health_updated(self, tenant_id: Optional[str], results: List[HealthResult]):
        pass


class LoggingNotifier(Notifier):
    """Default notifier: writes results to the application log"""

    def anomaly_detected(self, tenant_id, anomaly):
        logger.info(f"[tenant {tenant_id}] anomaly {anomaly.type}/{anomaly.severity} "
                    f"on {anomaly.device_id}: {anomaly.message}")

    def health_updated(self, tenant_id, results):
        worst = results[0] if results else None
        if worst is not None:
            logger.info(f"[tenant {tenant_id}] health updated for {len(results)} device(s), "
                        f"worst {worst.device_id}={worst.score}")


class Orchestrator:
    def __init__(self, store, summarizer: LogSummarizer, engine: AnomalyEngine,
                 scorer: HealthScorer, notifier: Optional[Notifier] = None):
        self.store = store
        self.summarizer = summarizer
        self.engine = engine
        self.scorer = scorer
        self.notifier = notifier or LoggingNotifier()

    def handle_log_ingested(self, log_id: str, now: Optional[datetime] = None) -> List[Anomaly]:
        """Summarize a new upload and run the per-upload detectors on it"""
        log = self.store.get_log(log_id)
        if log is None:
            logger.warning(f"Ingest hook called for unknown log {log_id}")
            return []

        try:
            self.summarizer.summarize_and_store(log_id)
        except Exception:
            logger.exception(f"Summarization failed for log {log_id}")

        try:
            anomalies = self.engine.analyze_log(log, now=now)
        except Exception:
            logger.exception(f"Anomaly analysis failed for log {log_id}")
            return []

        for anomaly in anomalies:
            self._notify_anomaly(log.tenant_id, anomaly)
        return anomalies

    def run_silence_check(self, now: Optional[datetime] = None) -> List[Anomaly]:
        return self._run_device_check('silence', self.engine.check_device_silence_for, now)

    def run_volume_check(self, now: Optional[datetime] = None) -> List[Anomaly]:
        return self._run_device_check('volume', self.engine.check_volume_anomaly_for, now)

    def run_health_compute(self, tenant_id: Optional[str] = None,
                           now: Optional[datetime] = None) -> List[HealthResult]:
        """Recompute health per tenant; each tenant's results are reported worst first"""
        all_results = []
        for tenant_id in self._tenant_ids(tenant_id):
            results = []
            for device in self.store.list_devices(tenant_id):
                try:
                    result = self.scorer.compute_health(device.id, now=now)
                except Exception:
                    logger.exception(f"Health compute failed for device {device.id}")
                    continue
                if result is not None:
                    results.append(result)

            results.sort(key=lambda result: result.score)
            if results:
                try:
                    self.notifier.health_updated(tenant_id, results)
                except Exception:
                    logger.exception(f"Health notification failed for tenant {tenant_id}")
            all_results.extend(results)

        logger.info(f"Health compute finished: {len(all_results)} device(s) scored")
        return all_results

    def _run_device_check(self, name: str, check, now: Optional[datetime]) -> List[Anomaly]:
        anomalies = []
        for tenant_id in self._tenant_ids():
            for device in self.store.list_devices(tenant_id):
                try:
                    anomaly = check(device, now=now)
                except Exception:
                    logger.exception(f"{name.capitalize()} check failed for device {device.id}")
                    continue
                if anomaly is not None:
                    anomalies.append(anomaly)
                    self._notify_anomaly(tenant_id, anomaly)

        logger.info(f"{name.capitalize()} check finished: {len(anomalies)} anomaly(ies)")
        return anomalies

    def _tenant_ids(self, tenant_id: Optional[str] = None) -> List[str]:
        if tenant_id is not None:
            return [tenant_id]
        return [tenant.id for tenant in self.store.list_tenants(active_only=True)]

    def _notify_anomaly(self, tenant_id: Optional[str], anomaly: Anomaly):
        try:
            self.notifier.anomaly_detected(tenant_id, anomaly)
        except Exception:
            logger.exception(f"Anomaly notification failed for {anomaly.id}")
