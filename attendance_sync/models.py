from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

from attendance_sync.datetime_utils import ms_to_iso

db = SQLAlchemy()

# Keys that belong to the queue row, never to the submission sent upstream
LOCAL_ONLY_FIELDS = ("id", "timestamp", "synced", "syncedAt")


class PendingAttendance(db.Model):
    """An attendance submission accepted locally and not yet confirmed upstream."""
    __tablename__ = "pending_attendance"
    # AUTOINCREMENT so a deleted id is never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    payload = db.Column(db.JSON, nullable=False)
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)  # ms since epoch
    synced = db.Column(db.Boolean, nullable=False, default=False, index=True)
    synced_at = db.Column(db.BigInteger, nullable=True)

    def __repr__(self):
        return f"<PendingAttendance {self.id} - synced={self.synced}>"

    @property
    def class_id(self):
        return (self.payload or {}).get("classId")

    def wire_payload(self):
        """Payload as sent to the remote service, local bookkeeping stripped."""
        return {k: v for k, v in (self.payload or {}).items() if k not in LOCAL_ONLY_FIELDS}

    def to_dict(self):
        return {
            **self.wire_payload(),
            "id": self.id,
            "timestamp": self.timestamp,
            "synced": self.synced,
            "syncedAt": self.synced_at,
            "createdAt": ms_to_iso(self.timestamp),
        }


class SyncState(db.Model):
    """Small key/value slot for sticky sync state (failed ids, logged error keys)."""
    __tablename__ = "sync_state"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SyncState {self.key}>"


class SyncLease(db.Model):
    """Time-limited claim on the sync run, shared by every process on the queue file."""
    __tablename__ = "sync_leases"

    name = db.Column(db.String(64), primary_key=True)
    owner = db.Column(db.String(128), nullable=True)
    operation = db.Column(db.String(128), nullable=True)
    acquired_at = db.Column(db.BigInteger, nullable=True)  # ms since epoch
    expires_at = db.Column(db.BigInteger, nullable=True)

    def __repr__(self):
        return f"<SyncLease {self.name} - {self.owner}>"


class SyncEvent(db.Model):
    """Local backup log of sync successes and failures for the monitor view."""
    __tablename__ = "sync_events"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(10), nullable=False, index=True)  # 'error' or 'success'
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)
    class_id = db.Column(db.Integer, nullable=True, index=True)
    class_name = db.Column(db.String(128), nullable=True)
    attendance_date = db.Column(db.String(10), nullable=True)
    attendance_type = db.Column(db.String(64), nullable=True)
    attendance_id = db.Column(db.Integer, nullable=True)
    error = db.Column(db.Text, nullable=True)
    record_count = db.Column(db.Integer, default=0)
    online = db.Column(db.Boolean, nullable=True)

    def __repr__(self):
        return f"<SyncEvent {self.kind} - {self.attendance_id}>"

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.kind,
            "timestamp": self.timestamp,
            "classId": self.class_id,
            "className": self.class_name,
            "attendanceDate": self.attendance_date,
            "attendanceType": self.attendance_type,
            "attendanceId": self.attendance_id,
            "error": self.error,
            "recordCount": self.record_count,
            "online": self.online,
        }


class CachedProjection(db.Model):
    """Read-through copy of server data for one class (roster, history, sheet)."""
    __tablename__ = "cached_projections"
    __table_args__ = (db.UniqueConstraint("class_id", "kind", name="_class_kind_uc"),)

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)  # 'class', 'students', 'history', 'excel'
    data = db.Column(db.JSON, nullable=True)
    last_updated = db.Column(db.BigInteger, nullable=False)

    def __repr__(self):
        return f"<CachedProjection {self.class_id} - {self.kind}>"
