"""
Database models for Fleetwatch
"""
import json
import logging
import uuid

from fleetwatch import db
from fleetwatch.utils import utcnow

logger = logging.getLogger(__name__)


def safe_json_loads(data, default=None, context=""):
    """
    Safely parse JSON data, returning default on failure.
    Logs errors for debugging.
    """
    if data is None or data == '':
        return default if default is not None else {}
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Invalid JSON in {context}: {str(e)[:100]}")
        return default if default is not None else {}


def _new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Tenant(db.Model):
    """An organization owning a fleet of devices"""
    __tablename__ = 'tenants'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True)
    status = db.Column(db.String(20), default='active')  # active, suspended
    created_at = db.Column(db.DateTime, default=utcnow)

    devices = db.relationship('Device', backref='tenant', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'status': self.status,
            'created_at': _iso(self.created_at)
        }


class Device(db.Model):
    """A field device that uploads operational logs"""
    __tablename__ = 'devices'

    id = db.Column(db.String(64), primary_key=True)
    tenant_id = db.Column(db.String(64), db.ForeignKey('tenants.id'), index=True)
    name = db.Column(db.String(255), nullable=False)
    device_type = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), default='unknown')  # online, offline, unknown
    firmware_version = db.Column(db.String(50))
    last_seen = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)

    logs = db.relationship('LogEntry', backref='device', lazy='dynamic',
                           cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'device_type': self.device_type,
            'status': self.status,
            'firmware_version': self.firmware_version,
            'last_seen': _iso(self.last_seen),
            'created_at': _iso(self.created_at)
        }


class LogEntry(db.Model):
    """One uploaded log. The content is immutable; metadata may be extended."""
    __tablename__ = 'logs'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    device_id = db.Column(db.String(64), db.ForeignKey('devices.id'), nullable=False)
    tenant_id = db.Column(db.String(64), db.ForeignKey('tenants.id'), index=True)
    filename = db.Column(db.String(255))
    content = db.Column(db.Text, default='')
    uploaded_at = db.Column(db.DateTime, default=utcnow, index=True)
    # 'metadata' is reserved on declarative models, hence the attribute name
    log_metadata = db.Column('metadata', db.Text, default='{}')

    __table_args__ = (
        db.Index('idx_logs_device_uploaded', 'device_id', 'uploaded_at'),
    )

    @property
    def metadata_dict(self):
        data = safe_json_loads(self.log_metadata, default={}, context=f"LogEntry.metadata id={self.id}")
        return data if isinstance(data, dict) else {}

    def to_dict(self, include_content=False):
        result = {
            'id': self.id,
            'device_id': self.device_id,
            'tenant_id': self.tenant_id,
            'filename': self.filename,
            'size': len(self.content or ''),
            'uploaded_at': _iso(self.uploaded_at),
            'metadata': self.metadata_dict
        }
        if include_content:
            result['content'] = self.content
        return result


class Anomaly(db.Model):
    """A detected irregularity. Append-only apart from the resolved flag."""
    __tablename__ = 'anomalies'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    device_id = db.Column(db.String(64), db.ForeignKey('devices.id'), nullable=False)
    tenant_id = db.Column(db.String(64), db.ForeignKey('tenants.id'), index=True)
    type = db.Column(db.String(30), nullable=False)  # error_spike, new_pattern, device_silent, volume_anomaly
    severity = db.Column(db.String(20), nullable=False)  # low, medium, high, critical
    message = db.Column(db.Text, nullable=False)
    log_id = db.Column(db.String(64), db.ForeignKey('logs.id'))
    details = db.Column(db.Text, default='{}')
    resolved = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.Index('idx_anomaly_device_resolved', 'device_id', 'resolved'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'device_id': self.device_id,
            'tenant_id': self.tenant_id,
            'type': self.type,
            'severity': self.severity,
            'message': self.message,
            'log_id': self.log_id,
            'details': safe_json_loads(self.details, default={}, context=f"Anomaly.details id={self.id}"),
            'resolved': bool(self.resolved),
            'created_at': _iso(self.created_at)
        }


class DeviceHealth(db.Model):
    """Live health snapshot, one row per device"""
    __tablename__ = 'device_health'

    device_id = db.Column(db.String(64), db.ForeignKey('devices.id'), primary_key=True)
    score = db.Column(db.Integer, nullable=False)
    factors = db.Column(db.Text, default='{}')
    trend = db.Column(db.String(20), default='stable')  # improving, stable, degrading
    updated_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'device_id': self.device_id,
            'score': self.score,
            'factors': safe_json_loads(self.factors, default={}, context=f"DeviceHealth.factors device={self.device_id}"),
            'trend': self.trend,
            'updated_at': _iso(self.updated_at)
        }


class DeviceHealthHistory(db.Model):
    """Append-only health score time series"""
    __tablename__ = 'device_health_history'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    device_id = db.Column(db.String(64), db.ForeignKey('devices.id'), nullable=False)
    score = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.Index('idx_health_history_device_created', 'device_id', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'device_id': self.device_id,
            'score': self.score,
            'created_at': _iso(self.created_at)
        }


class Firmware(db.Model):
    """A firmware release published for one device type within a tenant"""
    __tablename__ = 'firmware'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    tenant_id = db.Column(db.String(64), db.ForeignKey('tenants.id'), index=True)
    device_type = db.Column(db.String(100), nullable=False)
    version = db.Column(db.String(50), nullable=False)
    filename = db.Column(db.String(255))
    release_date = db.Column(db.DateTime, default=utcnow)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.Index('idx_firmware_type_tenant', 'device_type', 'tenant_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'device_type': self.device_type,
            'version': self.version,
            'filename': self.filename,
            'release_date': _iso(self.release_date),
            'created_at': _iso(self.created_at)
        }
