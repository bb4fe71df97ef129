"""
FleetScheduler - periodic silence, volume and health jobs

The analytics services keep no scheduling state; this class only decides
when the orchestrator entry points run.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)


class FleetScheduler:
    """Runs the orchestrator's batch checks on cron schedules from app config"""

    def __init__(self, app, scheduler=None):
        self.app = app
        self.scheduler = scheduler or BackgroundScheduler(timezone='UTC')

    @property
    def orchestrator(self):
        return self.app.extensions['fleetwatch']

    def register_jobs(self):
        jobs = [
            ('device_silence_check', 'Device Silence Check',
             self.run_silence_check, self.app.config['SILENCE_CHECK_CRON']),
            ('volume_anomaly_check', 'Volume Anomaly Check',
             self.run_volume_check, self.app.config['VOLUME_CHECK_CRON']),
            ('fleet_health_compute', 'Fleet Health Recompute',
             self.run_health_compute, self.app.config['HEALTH_COMPUTE_CRON']),
        ]
        for job_id, name, func, crontab in jobs:
            self.scheduler.add_job(
                func=func,
                trigger=CronTrigger.from_crontab(crontab, timezone='UTC'),
                id=job_id,
                name=name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Scheduled {name} ({crontab})")

    def start(self):
        self.register_jobs()
        self.scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self, wait=False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")

    def run_silence_check(self):
        with self.app.app_context():
            return self.orchestrator.run_silence_check()

    def run_volume_check(self):
        with self.app.app_context():
            return self.orchestrator.run_volume_check()

    def run_health_compute(self):
        with self.app.app_context():
            return self.orchestrator.run_health_compute()
