import hmac
import logging
from functools import wraps

from flask import Blueprint, current_app, jsonify, request
from flask_login import UserMixin, current_user, login_required
from itsdangerous import BadSignature, URLSafeTimedSerializer

from staff_portal import login_manager
from staff_portal.errors import AuthenticationError, PermissionDenied, ValidationError
from staff_portal.models import Account, StaffRecord
from staff_portal.policy import ADMIN, STAFF

logger = logging.getLogger(__name__)

auth = Blueprint('auth', __name__, url_prefix='/api/auth')

TOKEN_SALT = 'staff-portal-access-token'


class Identity(UserMixin):
    """The authenticated caller: an admin account or a staff member's own record."""

    def __init__(self, role, username, fileno=None, account_id=None):
        self.role = role
        self.username = username
        self.fileno = fileno
        self.account_id = account_id

    def get_id(self):
        if self.account_id is not None:
            return f'account:{self.account_id}'
        return f'staff:{self.fileno}'

    @property
    def is_admin(self):
        return self.role == ADMIN

    def to_dict(self):
        return {'username': self.username, 'role': self.role, 'fileno': self.fileno}


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(identity):
    if identity.account_id is not None:
        payload = {'kind': 'account', 'id': identity.account_id}
    else:
        payload = {'kind': 'staff', 'fileno': identity.fileno}
    return _serializer().dumps(payload)


def _identity_from_payload(payload):
    if payload.get('kind') == 'account':
        account = Account.query.filter_by(id=payload.get('id')).first()
        if account:
            return Identity(account.role, account.username, account_id=account.id)
    elif payload.get('kind') == 'staff':
        record = StaffRecord.query.filter_by(fileno=payload.get('fileno')).first()
        if record:
            return Identity(STAFF, record.fileno, fileno=record.fileno)
    return None


def load_token(token):
    try:
        payload = _serializer().loads(token, max_age=current_app.config['TOKEN_MAX_AGE'])
    except BadSignature:
        return None
    if not isinstance(payload, dict):
        return None
    return _identity_from_payload(payload)


@login_manager.request_loader
def load_identity_from_request(req):
    header = req.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        return None
    return load_token(token.strip())


@login_manager.unauthorized_handler
def unauthorized():
    raise AuthenticationError('Not authenticated')


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_user.role not in roles:
                raise PermissionDenied('You do not have access to this resource')
            return f(*args, **kwargs)
        return login_required(decorated_function)
    return decorator


def authenticate(username, password):
    """Resolve credentials to an Identity.

    Admin accounts are checked first; otherwise the username is a file number
    and the password is that record's ``dob`` (YYMMDD).
    """
    account = Account.query.filter_by(username=username).first()
    if account is not None:
        if account.check_password(password):
            return Identity(account.role, account.username, account_id=account.id)
        return None

    record = StaffRecord.query.filter_by(fileno=username).first()
    if record is not None and record.dob and hmac.compare_digest(record.dob.encode(), password.encode()):
        return Identity(STAFF, record.fileno, fileno=record.fileno)
    return None


@auth.route('/login', methods=['POST'])
def login():
    username = (request.form.get('username') or '').strip()
    password = request.form.get('password') or ''
    if not username or not password:
        raise ValidationError('username and password are required')

    identity = authenticate(username, password)
    if identity is None:
        logger.warning(f"Failed login for {username}")
        raise AuthenticationError('Incorrect username or password')

    logger.info(f"Login: {username} as {identity.role}")
    return jsonify({
        'access_token': issue_token(identity),
        'token_type': 'bearer',
        'role': identity.role,
    })


@auth.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())
