import logging
from datetime import datetime

from flask import Blueprint, Response, current_app, jsonify, request, send_file
from flask_login import current_user
from sqlalchemy import or_

from staff_portal import db
from staff_portal.auth import role_required
from staff_portal.dates import normalize_dob
from staff_portal.errors import ImmutableFieldError, PermissionDenied, ValidationError
from staff_portal.ingestion import APPEND, BULK_UPDATE, REPLACE_ALL, delete_all, ingest
from staff_portal.models import IngestionLog, StaffRecord
from staff_portal.policy import ADMIN, STAFF, ensure_can_read, ensure_can_write
from staff_portal.roster_io import export_contacts_csv, export_roster_xlsx, load_upload

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')
staff_bp = Blueprint('staff', __name__, url_prefix='/api/staff')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _clean_field(name, value):
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if name == 'dob':
        try:
            return normalize_dob(text)
        except ValueError as e:
            raise ValidationError(str(e))
    limit = StaffRecord.max_length(name)
    if limit is not None and len(text) > limit:
        raise ValidationError(f'{name} is longer than {limit} characters', field=name)
    return text


def _apply_changes(record, new_values):
    """Check and apply ``new_values`` to ``record``; return the names of fields that changed."""
    new_fileno = new_values.pop('fileno', record.fileno)
    if new_fileno != record.fileno and current_user.role == ADMIN:
        raise ImmutableFieldError('fileno cannot be changed')

    changed = {name: value for name, value in new_values.items() if getattr(record, name) != value}
    if new_fileno != record.fileno:
        changed['fileno'] = new_fileno
    ensure_can_write(current_user, record, changed)

    for name, value in changed.items():
        setattr(record, name, value)
    db.session.commit()
    return sorted(changed)


def _roster_query():
    return StaffRecord.query.order_by(StaffRecord.id)


# ==========================================
# ADMIN: ROSTER
# ==========================================

@admin_bp.route('/staff', methods=['GET'])
@role_required(ADMIN)
def list_staff():
    query = _roster_query()
    search_query = request.args.get('q', '').strip()
    if search_query:
        query = query.filter(or_(
            StaffRecord.full_name.ilike(f'%{search_query}%'),
            StaffRecord.fileno.ilike(f'%{search_query}%'),
        ))
    return jsonify([r.to_dict() for r in query.all()])


@admin_bp.route('/staff/<int:id>', methods=['GET'])
@role_required(ADMIN)
def get_staff(id):
    record = db.get_or_404(StaffRecord, id, description='Staff record not found')
    return jsonify(record.to_dict())


@admin_bp.route('/staff/<int:id>', methods=['PUT'])
@role_required(ADMIN)
def update_staff(id):
    record = db.get_or_404(StaffRecord, id, description='Staff record not found')
    data = _json_body()

    # Full replace: every editable field takes the body's value, absent ones are cleared
    new_values = {name: _clean_field(name, data.get(name)) for name in StaffRecord.EDITABLE_FIELDS}
    if not new_values['full_name']:
        raise ValidationError('full_name is required')
    if 'fileno' in data:
        new_values['fileno'] = _clean_field('fileno', data['fileno'])

    changed = _apply_changes(record, new_values)
    logger.info(f"{current_user.username} updated {record.fileno}: {', '.join(changed) or 'no changes'}")
    return jsonify(record.to_dict())


@admin_bp.route('/staff/<int:id>', methods=['DELETE'])
@role_required(ADMIN)
def delete_staff(id):
    record = db.get_or_404(StaffRecord, id, description='Staff record not found')
    fileno = record.fileno
    db.session.delete(record)
    db.session.commit()
    logger.info(f"{current_user.username} deleted {fileno}")
    return jsonify({'detail': f'Staff record {fileno} deleted'})


@admin_bp.route('/staff/delete-all', methods=['DELETE'])
@role_required(ADMIN)
def delete_all_staff():
    count = delete_all()
    return jsonify({'detail': f'{count} staff records deleted', 'deleted': count})


@admin_bp.route('/staff/export', methods=['GET'])
@role_required(ADMIN)
def export_staff():
    records = _roster_query().all()
    today = datetime.now().strftime('%Y-%m-%d')

    if request.args.get('format', 'csv').lower() == 'xlsx':
        return send_file(
            export_roster_xlsx(records),
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            download_name=f'staff_records_{today}.xlsx',
            as_attachment=True,
        )

    return Response(
        export_contacts_csv(records),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=staff_export_{today}.csv'},
    )


# ==========================================
# ADMIN: BULK INGESTION
# ==========================================

def _run_ingestion(mode):
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError('No file part named "file" in the request')
    parsed = load_upload(upload, current_app.config['ALLOWED_UPLOAD_EXTENSIONS'])
    report = ingest(mode, parsed, filename=upload.filename, uploaded_by=current_user.username)
    return jsonify(report.to_dict())


@admin_bp.route('/upload', methods=['POST'])
@role_required(ADMIN)
def upload_roster():
    return _run_ingestion(REPLACE_ALL)


@admin_bp.route('/append', methods=['POST'])
@role_required(ADMIN)
def append_roster():
    return _run_ingestion(APPEND)


@admin_bp.route('/bulk-update', methods=['POST'])
@role_required(ADMIN)
def bulk_update_roster():
    return _run_ingestion(BULK_UPDATE)


@admin_bp.route('/uploads', methods=['GET'])
@role_required(ADMIN)
def upload_history():
    limit = request.args.get('limit', 20, type=int)
    entries = IngestionLog.query.order_by(IngestionLog.id.desc()).limit(max(1, min(limit, 200))).all()
    return jsonify([e.to_dict() for e in entries])


# ==========================================
# STAFF: SELF SERVICE
# ==========================================

def _own_record():
    record = StaffRecord.query.filter_by(fileno=current_user.fileno).first()
    if record is None:
        raise PermissionDenied('No staff record is linked to this login')
    ensure_can_read(current_user, record)
    return record


@staff_bp.route('/me', methods=['GET'])
@role_required(STAFF)
def my_record():
    return jsonify(_own_record().to_dict())


@staff_bp.route('/me', methods=['PUT'])
@role_required(STAFF)
def update_my_record():
    record = _own_record()
    data = _json_body()

    # Unchanged copies of read-only fields are accepted; only real changes are checked
    new_values = {name: _clean_field(name, data[name]) for name in StaffRecord.FIELDS if name in data}
    changed = _apply_changes(record, new_values)
    logger.info(f"{current_user.username} updated own record: {', '.join(changed) or 'no changes'}")
    return jsonify(record.to_dict())
