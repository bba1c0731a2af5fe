import csv
import io
from types import SimpleNamespace

import pandas as pd
import pytest
from werkzeug.datastructures import FileStorage
from xlrd import XLRDError

from staff_portal.errors import ValidationError
from staff_portal.roster_io import (
    clean_value, export_contacts_csv, export_roster_xlsx, load_upload, normalize_header,
    parse_roster, read_table,
)

ALLOWED = {'csv', 'xlsx', 'xls'}


def frame(text):
    return read_table(io.StringIO(text), 'roster.csv')


def test_normalize_header_aliases():
    assert normalize_header('FILE NO.') == 'fileno'
    assert normalize_header('File_No') == 'fileno'
    assert normalize_header('Full Name') == 'full_name'
    assert normalize_header('Date of Birth') == 'dob'
    assert normalize_header('Phone Number') == 'phone'
    assert normalize_header('Favourite Colour') is None


def test_clean_value():
    assert clean_value('  Lagos ') == 'Lagos'
    assert clean_value('') is None
    assert clean_value(float('nan')) is None
    assert clean_value('12345.0', 'fileno') == '12345'
    assert clean_value('12345.0', 'remark') == '12345.0'


def test_parse_roster_maps_columns_and_keeps_leading_zeros():
    parsed = parse_roster(frame("FILE NO,NAME,DOB,Unused\n00123,Aisha Bello,010426,x\n"))
    assert parsed.errors == []
    assert set(parsed.columns) == {'fileno', 'full_name', 'dob'}
    row = parsed.rows[0]
    assert row.row == 2
    assert row.values == {'fileno': '00123', 'full_name': 'Aisha Bello', 'dob': '010426'}


def test_parse_roster_requires_fileno_column():
    with pytest.raises(ValidationError):
        parse_roster(frame("name,dob\nAisha,810426\n"))


def test_parse_roster_reports_row_problems():
    parsed = parse_roster(frame(
        "fileno,full_name,dob\n"
        "1001,Aisha,810426\n"
        ",Nameless,810426\n"
        "1001,Aisha Again,810426\n"
        "1004,Bad Dob,1981-04-26\n"
        ",,\n"
        "1005,Slashed,26/04/81\n"
    ))
    assert [r.fileno for r in parsed.rows] == ['1001', '1005']
    assert parsed.rows[1].values['dob'] == '810426'
    errors = {(e.row, e.fileno) for e in parsed.errors}
    assert errors == {(3, None), (4, '1001'), (5, '1004')}


def test_load_upload_rejects_unknown_extension():
    upload = FileStorage(stream=io.BytesIO(b"fileno\n1\n"), filename='roster.txt')
    with pytest.raises(ValidationError):
        load_upload(upload, ALLOWED)


def test_load_upload_rejects_empty_file():
    upload = FileStorage(stream=io.BytesIO(b""), filename='roster.csv')
    with pytest.raises(ValidationError):
        load_upload(upload, ALLOWED)


def test_load_upload_reads_xlsx():
    buffer = io.BytesIO()
    pd.DataFrame({'File No': ['2001'], 'Full Name': ['Emeka Nwosu'], 'DOB': ['850930']}).to_excel(
        buffer, index=False, engine='openpyxl')
    buffer.seek(0)
    parsed = load_upload(FileStorage(stream=buffer, filename='roster.xlsx'), ALLOWED)
    assert parsed.errors == []
    assert parsed.rows[0].values == {'fileno': '2001', 'full_name': 'Emeka Nwosu', 'dob': '850930'}


def _records():
    return [
        SimpleNamespace(fileno='1002', phone='0803', email='b@example.org'),
        SimpleNamespace(fileno='1001', phone=None, email='a@example.org'),
        SimpleNamespace(fileno='1003', phone='0805', email=None),
    ]


def test_export_contacts_csv_layout():
    output = export_contacts_csv(_records())
    lines = output.split('\n')
    assert lines[0] == 'fileno,phone,email'
    assert lines[1] == '"1002","0803","b@example.org"'
    assert lines[2] == '"1001","","a@example.org"'
    assert lines[3] == '"1003","0805",""'


def test_export_contacts_csv_row_count_matches_records():
    records = _records()
    rows = list(csv.reader(io.StringIO(export_contacts_csv(records))))
    assert rows[0] == ['fileno', 'phone', 'email']
    assert len(rows) - 1 == len(records)
    assert [r[0] for r in rows[1:]] == ['1002', '1001', '1003']


def test_export_contacts_csv_is_deterministic():
    assert export_contacts_csv(_records()) == export_contacts_csv(_records())


def test_export_roster_xlsx():
    record = SimpleNamespace(
        fileno='1001', full_name='Aisha Bello', rank='Director', station='HQ', dob='810426',
        qualification=None, sex='F', state='Niger', lga=None, email=None, phone=None,
        conr=None, remark=None, dofa='1998-08-11 00:00:00', dopa=None, doan=None,
    )
    df = pd.read_excel(export_roster_xlsx([record]), sheet_name='Staff Records', dtype=str)
    assert list(df['File No']) == ['1001']
    assert list(df['DOB']) == ['26/04/81']
    assert list(df['DOFA']) == ['11/08/1998']


def test_parse_roster_flags_values_longer_than_their_column():
    parsed = parse_roster(frame(
        "fileno,full_name,sex,remark\n"
        "1001,Aisha Bello,Not specified,ok\n"
        f"1002,Musa Okafor,M,{'x' * 500}\n"
    ))
    assert [(e.row, e.fileno, e.reason) for e in parsed.errors] == [
        (2, '1001', 'sex is longer than 10 characters'),
    ]
    # remark is unbounded text
    assert [r.fileno for r in parsed.rows] == ['1002']


def test_unreadable_xls_is_a_validation_error(monkeypatch):
    def broken_workbook(*args, **kwargs):
        raise XLRDError('Unsupported format, or corrupt file')

    monkeypatch.setattr(pd, 'read_excel', broken_workbook)
    upload = FileStorage(stream=io.BytesIO(b'\xd0\xcf\x11\xe0truncated'), filename='roster.xls')
    with pytest.raises(ValidationError) as exc:
        load_upload(upload, ALLOWED)
    assert 'Could not read file' in exc.value.detail
