"""
Shared fixtures: an in-memory app per test plus small record factories.
"""
import json
import os
import sys
from datetime import datetime, timedelta

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fleetwatch import create_app, db
from fleetwatch.models import Anomaly, Device, Firmware, LogEntry, Tenant
from fleetwatch.store import FleetStore

# Fixed clock for every time-dependent test
NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def app():
    """Create application for testing"""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def store(app):
    return FleetStore(db.session)


@pytest.fixture
def orchestrator(app):
    return app.extensions['fleetwatch']


class FleetFactory:
    """Creates tenants, devices, logs, anomalies and firmware rows"""

    def __init__(self, session):
        self.session = session
        self._counter = 0

    def _next(self):
        self._counter += 1
        return self._counter

    def _save(self, record):
        self.session.add(record)
        self.session.commit()
        return record

    def tenant(self, name='Acme Utilities', status='active'):
        n = self._next()
        return self._save(Tenant(name=name, slug=f'tenant-{n}', status=status))

    def device(self, tenant=None, device_id=None, status='offline', device_type='gateway',
               firmware_version=None, last_seen=None):
        n = self._next()
        return self._save(Device(
            id=device_id or f'dev-{n}',
            tenant_id=tenant.id if tenant else None,
            name=f'Device {n}',
            device_type=device_type,
            status=status,
            firmware_version=firmware_version,
            last_seen=last_seen,
        ))

    def log(self, device, content='INFO: ok', uploaded_at=None, metadata=None):
        return self._save(LogEntry(
            device_id=device.id,
            tenant_id=device.tenant_id,
            content=content,
            uploaded_at=uploaded_at or NOW,
            log_metadata=json.dumps(metadata or {}),
        ))

    def logs(self, device, contents, start, step=timedelta(hours=1)):
        """One log per content, spaced by step, oldest first"""
        return [self.log(device, content, uploaded_at=start + step * i)
                for i, content in enumerate(contents)]

    def anomaly(self, device, type='error_spike', severity='medium', resolved=False, created_at=None):
        return self._save(Anomaly(
            device_id=device.id,
            tenant_id=device.tenant_id,
            type=type,
            severity=severity,
            message='test anomaly',
            details='{}',
            resolved=resolved,
            created_at=created_at or NOW,
        ))

    def firmware(self, tenant, version, released, device_type='gateway'):
        return self._save(Firmware(
            tenant_id=tenant.id,
            device_type=device_type,
            version=version,
            filename=f'fw-{version}.bin',
            release_date=released,
        ))


@pytest.fixture
def fleet(app):
    return FleetFactory(db.session)


def log_text(errors=0, warnings=0, infos=0, error_line='ERROR: sensor read failed'):
    """Build a log body with the given number of lines of each severity"""
    lines = [error_line] * errors
    lines += ['WARN: battery low'] * warnings
    lines += ['INFO: heartbeat'] * infos
    return '\n'.join(lines)
