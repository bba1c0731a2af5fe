from datetime import datetime, timezone

from sqlalchemy.orm import validates
from werkzeug.security import generate_password_hash, check_password_hash

from staff_portal import db
from staff_portal.errors import ImmutableFieldError


def _utcnow():
    return datetime.now(timezone.utc)


class StaffRecord(db.Model):
    __tablename__ = 'staff_record'

    # Every field an import row or a full-record edit may carry, in display order
    FIELDS = (
        'fileno', 'full_name', 'rank', 'station', 'dob', 'qualification', 'sex',
        'state', 'lga', 'email', 'phone', 'conr', 'remark', 'dofa', 'dopa', 'doan',
    )
    EDITABLE_FIELDS = FIELDS[1:]
    CONTACT_FIELDS = ('email', 'phone')

    id = db.Column(db.Integer, primary_key=True)
    fileno = db.Column(db.String(50), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(150), nullable=False)
    rank = db.Column(db.String(100))
    station = db.Column(db.String(100))
    dob = db.Column(db.String(6))  # YYMMDD, also the staff login password
    qualification = db.Column(db.String(150))
    sex = db.Column(db.String(10))
    state = db.Column(db.String(100))
    lga = db.Column(db.String(100))
    email = db.Column(db.String(150))
    phone = db.Column(db.String(50))
    conr = db.Column(db.String(50))
    remark = db.Column(db.Text)
    dofa = db.Column(db.String(30))
    dopa = db.Column(db.String(30))
    doan = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    @validates('fileno')
    def validate_fileno(self, key, value):
        if self.fileno is not None and value != self.fileno:
            raise ImmutableFieldError(f"fileno is immutable (record {self.fileno})")
        return value

    @classmethod
    def max_length(cls, field):
        """Declared column length of ``field``, or None for unbounded text."""
        return getattr(cls.__table__.c[field].type, 'length', None)

    def to_dict(self):
        data = {'id': self.id}
        for field in self.FIELDS:
            data[field] = getattr(self, field)
        return data

    def __repr__(self):
        return f'<StaffRecord {self.fileno}>'


class Account(db.Model):
    __tablename__ = 'account'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    full_name = db.Column(db.String(100))
    email = db.Column(db.String(100))
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='admin')
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class IngestionLog(db.Model):
    __tablename__ = 'ingestion_log'

    id = db.Column(db.Integer, primary_key=True)
    mode = db.Column(db.String(20), nullable=False)
    filename = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False)  # completed, rejected
    rows_received = db.Column(db.Integer, nullable=False, default=0)
    created = db.Column(db.Integer, nullable=False, default=0)
    updated = db.Column(db.Integer, nullable=False, default=0)
    deleted = db.Column(db.Integer, nullable=False, default=0)
    error_count = db.Column(db.Integer, nullable=False, default=0)
    uploaded_by = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'mode': self.mode,
            'filename': self.filename,
            'status': self.status,
            'rows_received': self.rows_received,
            'created': self.created,
            'updated': self.updated,
            'deleted': self.deleted,
            'error_count': self.error_count,
            'uploaded_by': self.uploaded_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
