"""Reading roster spreadsheets and writing roster exports."""
import csv
import logging
import os
import re
import zipfile
from dataclasses import dataclass, field
from io import BytesIO, StringIO

import pandas as pd
from xlrd import XLRDError
from xlrd.compdoc import CompDocError

from staff_portal.dates import format_dob, format_general_date, normalize_dob
from staff_portal.errors import ValidationError
from staff_portal.models import StaffRecord

logger = logging.getLogger(__name__)

# Header spellings seen in roster sheets, keyed by normalized form
COLUMN_ALIASES = {
    'fileno': 'fileno',
    'filenumber': 'fileno',
    'fullname': 'full_name',
    'name': 'full_name',
    'staffname': 'full_name',
    'rank': 'rank',
    'designation': 'rank',
    'station': 'station',
    'dob': 'dob',
    'dateofbirth': 'dob',
    'qualification': 'qualification',
    'qualifications': 'qualification',
    'sex': 'sex',
    'gender': 'sex',
    'state': 'state',
    'stateoforigin': 'state',
    'lga': 'lga',
    'email': 'email',
    'emailaddress': 'email',
    'phone': 'phone',
    'phoneno': 'phone',
    'phonenumber': 'phone',
    'gsm': 'phone',
    'conr': 'conr',
    'remark': 'remark',
    'remarks': 'remark',
    'dofa': 'dofa',
    'dopa': 'dopa',
    'doan': 'doan',
}

# Spreadsheet numerics turn these into "12345.0"
_NUMERIC_TEXT_FIELDS = ('fileno', 'dob', 'phone')

EXPORT_COLUMNS = ['fileno', 'phone', 'email']


@dataclass
class RowError:
    row: int
    fileno: str
    reason: str

    def to_dict(self):
        return {'row': self.row, 'fileno': self.fileno, 'reason': self.reason}


@dataclass
class ParsedRow:
    row: int
    values: dict

    @property
    def fileno(self):
        return self.values['fileno']


@dataclass
class ParsedRoster:
    columns: list
    rows: list = field(default_factory=list)
    errors: list = field(default_factory=list)


def allowed_file(filename, allowed_extensions):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed_extensions


def normalize_header(header):
    key = re.sub(r'[^a-z0-9]', '', str(header).lower())
    return COLUMN_ALIASES.get(key)


def clean_value(value, field_name=None):
    """Cell value as stripped text, or None for blanks."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    text = str(value).strip()
    if not text or text.lower() == 'nan':
        return None
    if field_name in _NUMERIC_TEXT_FIELDS and re.fullmatch(r'\d+\.0', text):
        text = text[:-2]
    return text


def length_error(values):
    """Message for the first value longer than its column allows, else None."""
    for name, value in values.items():
        limit = StaffRecord.max_length(name)
        if value is not None and limit is not None and len(value) > limit:
            return f'{name} is longer than {limit} characters'
    return None


def read_table(stream, filename):
    """Load an uploaded CSV/XLSX/XLS into a DataFrame with every cell as text."""
    ext = os.path.splitext(filename)[1].lower()
    try:
        if ext == '.csv':
            return pd.read_csv(stream, dtype=str, keep_default_na=False)
        if ext in ('.xlsx', '.xls'):
            return pd.read_excel(stream, dtype=str, keep_default_na=False)
    except (ValueError, pd.errors.ParserError, zipfile.BadZipFile, XLRDError, CompDocError) as e:
        logger.warning(f"Could not read {filename}: {e}")
        raise ValidationError(f'Could not read file: {e}')
    raise ValidationError(f'Unsupported file type: {ext or filename}')


def parse_roster(df):
    """Map a DataFrame onto staff record fields and collect per-row problems.

    Row numbers match the spreadsheet: the header is row 1.
    """
    mapping = {}
    for column in df.columns:
        target = normalize_header(column)
        if target and target not in mapping.values():
            mapping[column] = target

    if 'fileno' not in mapping.values():
        raise ValidationError('Uploaded file has no fileno column')

    parsed = ParsedRoster(columns=list(mapping.values()))
    seen = {}

    for idx, raw in enumerate(df.to_dict('records')):
        row_number = idx + 2
        values = {target: clean_value(raw[column], target) for column, target in mapping.items()}

        if all(v is None for v in values.values()):
            continue

        fileno = values['fileno']
        if fileno is None:
            parsed.errors.append(RowError(row_number, None, 'fileno is missing'))
            continue

        if fileno in seen:
            parsed.errors.append(RowError(
                row_number, fileno, f'fileno repeated in file (first seen on row {seen[fileno]})'))
            continue
        seen[fileno] = row_number

        if 'dob' in values:
            try:
                values['dob'] = normalize_dob(values['dob'])
            except ValueError as e:
                parsed.errors.append(RowError(row_number, fileno, str(e)))
                continue

        too_long = length_error(values)
        if too_long:
            parsed.errors.append(RowError(row_number, fileno, too_long))
            continue

        parsed.rows.append(ParsedRow(row_number, values))

    logger.debug(f"Parsed {len(parsed.rows)} rows, {len(parsed.errors)} errors, columns {parsed.columns}")
    return parsed


def load_upload(file_storage, allowed_extensions):
    filename = file_storage.filename or ''
    if not filename:
        raise ValidationError('No file selected')
    if not allowed_file(filename, allowed_extensions):
        raise ValidationError(
            f"File type not allowed; use one of: {', '.join(sorted(allowed_extensions))}")
    df = read_table(file_storage.stream, filename)
    return parse_roster(df)


def export_contacts_csv(records):
    """``fileno,phone,email`` header, then one fully quoted row per record, in the given order."""
    output = StringIO()
    output.write(','.join(EXPORT_COLUMNS) + '\n')
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
    for r in records:
        writer.writerow([r.fileno or '', r.phone or '', r.email or ''])
    return output.getvalue()


def export_roster_xlsx(records):
    data = []
    for r in records:
        data.append({
            'File No': r.fileno,
            'Full Name': r.full_name,
            'Rank': r.rank or '',
            'Station': r.station or '',
            'DOB': format_dob(r.dob),
            'Qualification': r.qualification or '',
            'Sex': r.sex or '',
            'State': r.state or '',
            'LGA': r.lga or '',
            'Email': r.email or '',
            'Phone': r.phone or '',
            'CONR': r.conr or '',
            'Remark': r.remark or '',
            'DOFA': format_general_date(r.dofa),
            'DOPA': format_general_date(r.dopa),
            'DOAN': format_general_date(r.doan),
        })

    df = pd.DataFrame(data, columns=[
        'File No', 'Full Name', 'Rank', 'Station', 'DOB', 'Qualification', 'Sex', 'State',
        'LGA', 'Email', 'Phone', 'CONR', 'Remark', 'DOFA', 'DOPA', 'DOAN',
    ])
    output = BytesIO()
    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        df.to_excel(writer, index=False, sheet_name='Staff Records')
        workbook = writer.book
        worksheet = writer.sheets['Staff Records']
        wrap_format = workbook.add_format({'text_wrap': True, 'valign': 'top'})

        for idx, col in enumerate(df.columns):
            values_len = df[col].astype(str).map(len).max() if len(df) else 0
            max_len = max(values_len, len(col)) + 2
            if col == 'Remark':
                worksheet.set_column(idx, idx, min(max_len, 40), wrap_format)
            else:
                worksheet.set_column(idx, idx, max_len)
    output.seek(0)
    return output
