"""
FleetStore - query and write access to logs, devices, anomalies, health and firmware.

The analytics services never touch the session directly; everything they
read or write goes through this class so it can be swapped or mocked.
"""
import json
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from fleetwatch.models import (
    Anomaly, Device, DeviceHealth, DeviceHealthHistory, Firmware, LogEntry, Tenant
)
from fleetwatch.utils import utcnow

logger = logging.getLogger(__name__)


class FleetStore:
    """Persistence collaborator backed by a SQLAlchemy session"""

    def __init__(self, session):
        self.session = session

    def _commit(self, *records):
        try:
            for record in records:
                self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Store write failed, rolling back: {e}")
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def get_log(self, log_id: str) -> Optional[LogEntry]:
        return self.session.get(LogEntry, log_id)

    def recent_logs(self, device_id: str, limit: Optional[int] = None,
                    exclude_id: Optional[str] = None) -> List[LogEntry]:
        """Logs for a device, most recent upload first."""
        query = self.session.query(LogEntry).filter(LogEntry.device_id == device_id)
        if exclude_id is not None:
            query = query.filter(LogEntry.id != exclude_id)
        query = query.order_by(LogEntry.uploaded_at.desc(), LogEntry.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def upload_times(self, device_id: str) -> List[datetime]:
        """Upload timestamps for a device, oldest first, without loading log bodies."""
        rows = (self.session.query(LogEntry.uploaded_at)
                .filter(LogEntry.device_id == device_id, LogEntry.uploaded_at.isnot(None))
                .order_by(LogEntry.uploaded_at.asc())
                .all())
        return [uploaded_at for (uploaded_at,) in rows]

    def create_log(self, device: Device, content: str, filename: Optional[str] = None,
                   uploaded_at: Optional[datetime] = None, metadata: Optional[Dict] = None,
                   log_id: Optional[str] = None) -> LogEntry:
        log = LogEntry(
            device_id=device.id,
            tenant_id=device.tenant_id,
            filename=filename,
            content=content or '',
            uploaded_at=uploaded_at or utcnow(),
            log_metadata=json.dumps(metadata or {}),
        )
        if log_id:
            log.id = log_id
        self._commit(log)
        return log

    def merge_log_metadata(self, log_id: str, key: str, value) -> Optional[LogEntry]:
        """Set one metadata key, preserving all the others. Returns None if the log is unknown."""
        log = self.get_log(log_id)
        if log is None:
            return None
        metadata = log.metadata_dict
        metadata[key] = value
        log.log_metadata = json.dumps(metadata)
        self._commit(log)
        return log

    # ------------------------------------------------------------------
    # Devices and tenants
    # ------------------------------------------------------------------

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.session.get(Device, device_id)

    def list_devices(self, tenant_id: Optional[str] = None) -> List[Device]:
        query = self.session.query(Device)
        if tenant_id is not None:
            query = query.filter(Device.tenant_id == tenant_id)
        return query.order_by(Device.created_at.desc(), Device.id).all()

    def mark_device_seen(self, device: Device, seen_at: Optional[datetime] = None) -> Device:
        device.last_seen = seen_at or utcnow()
        self._commit(device)
        return device

    def list_tenants(self, active_only: bool = True) -> List[Tenant]:
        query = self.session.query(Tenant)
        if active_only:
            query = query.filter(Tenant.status == 'active')
        return query.order_by(Tenant.created_at).all()

    # ------------------------------------------------------------------
    # Anomalies
    # ------------------------------------------------------------------

    def create_anomaly(self, device_id: str, tenant_id: Optional[str], type: str, severity: str,
                       message: str, log_id: Optional[str] = None, details: Optional[Dict] = None,
                       created_at: Optional[datetime] = None) -> Anomaly:
        anomaly = Anomaly(
            device_id=device_id,
            tenant_id=tenant_id,
            type=type,
            severity=severity,
            message=message,
            log_id=log_id,
            details=json.dumps(details or {}),
            resolved=False,
            created_at=created_at or utcnow(),
        )
        self._commit(anomaly)
        return anomaly

    def get_anomaly(self, anomaly_id: str) -> Optional[Anomaly]:
        return self.session.get(Anomaly, anomaly_id)

    def resolve_anomaly(self, anomaly_id: str) -> bool:
        """Flip resolved false->true. False if unknown or already resolved."""
        anomaly = self.get_anomaly(anomaly_id)
        if anomaly is None or anomaly.resolved:
            return False
        anomaly.resolved = True
        self._commit(anomaly)
        return True

    def recent_anomalies(self, device_id: str, limit: Optional[int] = None) -> List[Anomaly]:
        query = self.session.query(Anomaly).filter(Anomaly.device_id == device_id) \
            .order_by(Anomaly.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_anomalies(self, tenant_id: str, unresolved_only: bool = False) -> List[Anomaly]:
        query = self.session.query(Anomaly).filter(Anomaly.tenant_id == tenant_id)
        if unresolved_only:
            query = query.filter(Anomaly.resolved.is_(False))
        return query.order_by(Anomaly.created_at.desc()).all()

    def count_unresolved_anomalies(self, device_id: str) -> int:
        return self.session.query(Anomaly).filter(
            Anomaly.device_id == device_id,
            Anomaly.resolved.is_(False)
        ).count()

    # ------------------------------------------------------------------
    # Firmware
    # ------------------------------------------------------------------

    def latest_firmware(self, device_type: str, tenant_id: str,
                        limit: Optional[int] = None) -> List[Firmware]:
        """Releases for a device type within a tenant, newest first."""
        query = self.session.query(Firmware).filter(
            Firmware.device_type == device_type,
            Firmware.tenant_id == tenant_id
        ).order_by(Firmware.release_date.desc(), Firmware.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_health(self, device_id: str) -> Optional[DeviceHealth]:
        return self.session.get(DeviceHealth, device_id)

    def list_health(self, tenant_id: str) -> List[DeviceHealth]:
        """Live health rows for a tenant, worst score first."""
        return self.session.query(DeviceHealth).join(Device, DeviceHealth.device_id == Device.id) \
            .filter(Device.tenant_id == tenant_id) \
            .order_by(DeviceHealth.score.asc()) \
            .all()

    def upsert_health(self, device_id: str, score: int, factors: Dict, trend: str,
                      updated_at: Optional[datetime] = None) -> DeviceHealth:
        record = self.get_health(device_id)
        if record is None:
            record = DeviceHealth(device_id=device_id)
        record.score = score
        record.factors = json.dumps(factors)
        record.trend = trend
        record.updated_at = updated_at or utcnow()
        self._commit(record)
        return record

    def append_health_history(self, device_id: str, score: int,
                              recorded_at: Optional[datetime] = None) -> DeviceHealthHistory:
        point = DeviceHealthHistory(
            device_id=device_id,
            score=score,
            created_at=recorded_at or utcnow(),
        )
        self._commit(point)
        return point

    def health_history(self, device_id: str, limit: Optional[int] = None) -> List[DeviceHealthHistory]:
        query = self.session.query(DeviceHealthHistory).filter(DeviceHealthHistory.device_id == device_id) \
            .order_by(DeviceHealthHistory.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def score_before(self, device_id: str, cutoff: datetime) -> Optional[int]:
        """Score of the latest history point recorded at or before cutoff."""
        point = self.session.query(DeviceHealthHistory).filter(
            DeviceHealthHistory.device_id == device_id,
            DeviceHealthHistory.created_at <= cutoff
        ).order_by(DeviceHealthHistory.created_at.desc()).first()
        return point.score if point else None
