"""
Tests for FleetScheduler job registration and job bodies.
"""
from datetime import timedelta

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from fleetwatch.scheduler import FleetScheduler

from conftest import NOW


@pytest.fixture
def fleet_scheduler(app):
    return FleetScheduler(app, scheduler=BackgroundScheduler(timezone='UTC'))


class TestFleetScheduler:

    def test_registers_three_cron_jobs(self, fleet_scheduler):
        fleet_scheduler.register_jobs()

        jobs = {job.id: job for job in fleet_scheduler.scheduler.get_jobs()}
        assert set(jobs) == {'device_silence_check', 'volume_anomaly_check', 'fleet_health_compute'}
        assert all(isinstance(job.trigger, CronTrigger) for job in jobs.values())

    def test_cron_comes_from_config(self, app):
        app.config['SILENCE_CHECK_CRON'] = 'not a cron'
        with pytest.raises(ValueError):
            FleetScheduler(app, scheduler=BackgroundScheduler(timezone='UTC')).register_jobs()

    def test_shutdown_without_start(self, fleet_scheduler):
        fleet_scheduler.shutdown()
        assert not fleet_scheduler.scheduler.running

    def test_job_bodies_run_orchestrator(self, fleet_scheduler, fleet):
        device = fleet.device(fleet.tenant())
        fleet.logs(device, ['INFO ok'] * 3, start=NOW - timedelta(hours=30), step=timedelta(hours=2))

        assert len(fleet_scheduler.run_silence_check()) == 1
        assert fleet_scheduler.run_volume_check() == []
        assert [r.device_id for r in fleet_scheduler.run_health_compute()] == [device.id]
