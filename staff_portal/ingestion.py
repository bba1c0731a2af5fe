"""Bulk roster writes: replace-all, append and bulk-update.

Every mode runs as one transaction and either applies the whole batch or
none of it. Roster-wide writes, delete-all included, are serialized through
``_roster_write_lock`` so one bulk writer runs at a time in this process.
"""
import logging
import threading
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from staff_portal import db
from staff_portal.errors import IngestionRejected
from staff_portal.models import StaffRecord, IngestionLog
from staff_portal.roster_io import RowError

logger = logging.getLogger(__name__)

REPLACE_ALL = 'upload'
APPEND = 'append'
BULK_UPDATE = 'bulk-update'

_roster_write_lock = threading.Lock()


@dataclass
class IngestionReport:
    mode: str
    rows_received: int
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: list = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors

    def to_dict(self):
        return {
            'mode': self.mode,
            'rows_received': self.rows_received,
            'created': self.created,
            'updated': self.updated,
            'deleted': self.deleted,
            'errors': [e.to_dict() for e in self.errors],
        }


def _require_names(rows, report):
    for row in rows:
        if not row.values.get('full_name'):
            report.errors.append(RowError(row.row, row.fileno, 'full_name is required for new records'))


def _new_record(values):
    return StaffRecord(**{k: v for k, v in values.items() if k in StaffRecord.FIELDS})


def _replace_all(rows, report):
    _require_names(rows, report)
    if not report.ok:
        return
    report.deleted = StaffRecord.query.delete()
    # Flush the deletes first so re-used filenos don't trip the unique index
    db.session.flush()
    for row in rows:
        db.session.add(_new_record(row.values))
    report.created = len(rows)


def _append(rows, report):
    _require_names(rows, report)
    existing = {fileno for (fileno,) in db.session.query(StaffRecord.fileno)}
    for row in rows:
        if row.fileno in existing:
            report.errors.append(RowError(row.row, row.fileno, 'fileno already exists'))
    if not report.ok:
        return
    for row in rows:
        db.session.add(_new_record(row.values))
    report.created = len(rows)


def _bulk_update(rows, report):
    records = {r.fileno: r for r in StaffRecord.query.all()}
    for row in rows:
        if row.fileno not in records:
            report.errors.append(RowError(row.row, row.fileno, 'fileno not found'))
    if not report.ok:
        return
    for row in rows:
        record = records[row.fileno]
        changed = False
        for name, value in row.values.items():
            # Blank cells leave the stored value alone
            if name == 'fileno' or value is None:
                continue
            if getattr(record, name) != value:
                setattr(record, name, value)
                changed = True
        if changed:
            report.updated += 1


_HANDLERS = {
    REPLACE_ALL: _replace_all,
    APPEND: _append,
    BULK_UPDATE: _bulk_update,
}


def _log_attempt(report, filename, uploaded_by):
    entry = IngestionLog(
        mode=report.mode,
        filename=filename,
        status='completed' if report.ok else 'rejected',
        rows_received=report.rows_received,
        created=report.created,
        updated=report.updated,
        deleted=report.deleted,
        error_count=len(report.errors),
        uploaded_by=uploaded_by,
    )
    db.session.add(entry)


def ingest(mode, parsed, filename=None, uploaded_by=None):
    """Apply a parsed roster in ``mode``; raise IngestionRejected if any row fails."""
    if mode not in _HANDLERS:
        raise ValueError(f'Unknown ingestion mode: {mode}')

    report = IngestionReport(mode=mode, rows_received=len(parsed.rows) + len(parsed.errors))
    report.errors.extend(parsed.errors)

    with _roster_write_lock:
        # Handlers check every row and only write when no row has failed so far
        try:
            _HANDLERS[mode](parsed.rows, report)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Database error during {mode} of {filename}")
            raise

        if not report.ok:
            db.session.rollback()
            report.errors.sort(key=lambda e: e.row)
            # Rejected batches leave the roster untouched; only the audit row is kept
            report.created = report.updated = report.deleted = 0
            _log_attempt(report, filename, uploaded_by)
            db.session.commit()
            logger.warning(f"{mode} of {filename} rejected: {len(report.errors)} row error(s)")
            raise IngestionRejected(
                f'{mode} rejected: {len(report.errors)} row(s) failed; no changes were made',
                report,
            )

        _log_attempt(report, filename, uploaded_by)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Commit failed during {mode} of {filename}")
            raise

    logger.info(
        f"{mode} of {filename} by {uploaded_by}: {report.rows_received} rows, "
        f"created {report.created}, updated {report.updated}, deleted {report.deleted}"
    )
    return report


def delete_all():
    with _roster_write_lock:
        count = StaffRecord.query.delete()
        db.session.commit()
    logger.info(f"Deleted all {count} staff records")
    return count
