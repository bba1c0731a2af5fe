import io

import pytest

from staff_portal import create_app, db
from staff_portal.config import TestingConfig
from staff_portal.models import Account, StaffRecord

ROSTER_CSV = (
    "FILE NO,FULL NAME,RANK,STATION,DOB,SEX,STATE,LGA,EMAIL,PHONE,DOFA\n"
    "1001,Aisha Bello,Director,Headquarters,810426,F,Niger,Chanchaga,aisha@example.org,08030000001,1998-08-11 00:00:00\n"
    "1002,Musa Okafor,Senior Officer,Lagos,790102,M,Lagos,Ikeja,musa@example.org,08030000002,2001-03-01 00:00:00\n"
    "1003,Ngozi Eze,Officer I,Enugu,900715,F,Enugu,Nsukka,,,\n"
)


@pytest.fixture()
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        admin = Account(username='registrar', full_name='Roster Admin', role='admin')
        admin.set_password('s3cret-pass')
        db.session.add(admin)
        db.session.commit()

    # No context is held here: each test-client request pushes its own, so the
    # identity Flask-Login caches on g never leaks into the next request
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def ctx(app):
    """App context for tests that call the roster functions directly."""
    with app.app_context():
        yield


@pytest.fixture()
def client(app):
    return app.test_client()


def csv_upload(text, filename='roster.csv'):
    return {'file': (io.BytesIO(text.encode('utf-8')), filename)}


def login(client, username, password):
    return client.post('/api/auth/login', data={'username': username, 'password': password})


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


def fetch_record(app, fileno):
    """Current stored values of one record, read in a fresh context."""
    with app.app_context():
        record = StaffRecord.query.filter_by(fileno=fileno).first()
        return record.to_dict() if record else None


def record_count(app):
    with app.app_context():
        return StaffRecord.query.count()


@pytest.fixture()
def admin_headers(client):
    response = login(client, 'registrar', 's3cret-pass')
    assert response.status_code == 200
    return bearer(response.get_json()['access_token'])


@pytest.fixture()
def roster(app, client, admin_headers):
    response = client.post('/api/admin/upload', data=csv_upload(ROSTER_CSV),
                           headers=admin_headers, content_type='multipart/form-data')
    assert response.status_code == 200, response.get_json()
    with app.app_context():
        return {r.fileno: r.id for r in StaffRecord.query.all()}


@pytest.fixture()
def staff_headers(client, roster):
    response = login(client, '1001', '810426')
    assert response.status_code == 200
    return bearer(response.get_json()['access_token'])
