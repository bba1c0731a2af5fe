"""Who may read or write which fields of which staff record.

An identity is anything with ``role`` and ``fileno`` attributes; staff
identities carry the file number of their own record.
"""
from staff_portal.errors import PermissionDenied

ADMIN = 'admin'
STAFF = 'staff'

STAFF_WRITABLE_FIELDS = frozenset({'email', 'phone'})


def _owns(identity, record):
    return identity.fileno is not None and record.fileno == identity.fileno


def can_read(identity, record):
    if identity.role == ADMIN:
        return True
    if identity.role == STAFF:
        return _owns(identity, record)
    return False


def can_write(identity, record, field):
    if identity.role == ADMIN:
        return True
    if identity.role == STAFF:
        return _owns(identity, record) and field in STAFF_WRITABLE_FIELDS
    return False


def denied_fields(identity, record, fields):
    return sorted(f for f in fields if not can_write(identity, record, f))


def ensure_can_read(identity, record):
    if not can_read(identity, record):
        raise PermissionDenied('You are not allowed to view this record')


def ensure_can_write(identity, record, fields):
    denied = denied_fields(identity, record, fields)
    if denied:
        raise PermissionDenied(
            'You are not allowed to change these fields',
            fields=denied,
        )
