"""Date helpers for the roster's date-of-birth and appointment fields.

``dob`` is stored as ``YYMMDD`` and shown as ``dd/mm/yy``. Appointment dates
(``dofa``, ``dopa``, ``doan``) are stored as they arrive, usually
``YYYY-MM-DD HH:MM:SS``, and shown as ``dd/mm/yyyy``.
"""
import re

import pandas as pd

_DOB_RE = re.compile(r'^\d{6}$')


def format_dob(date_str):
    """``"810426"`` -> ``"26/04/81"``. Anything not 6 characters long is returned as is."""
    if not date_str or len(date_str) != 6:
        return date_str or ''

    yy = date_str[0:2]
    mm = date_str[2:4]
    dd = date_str[4:6]
    return f'{dd}/{mm}/{yy}'


def parse_dob(date_str):
    """``"26/04/81"`` -> ``"810426"``. Anything without three ``/`` parts is returned as is."""
    if not date_str:
        return ''
    parts = date_str.split('/')
    if len(parts) != 3:
        return date_str

    dd = parts[0].zfill(2)
    mm = parts[1].zfill(2)
    yy = parts[2].zfill(2)
    return f'{yy}{mm}{dd}'


def normalize_dob(value):
    """Return the canonical 6-digit ``YYMMDD`` form of ``value``, or None when blank.

    Accepts ``dd/mm/yy`` and 5-digit values whose leading zero was lost in a
    spreadsheet. Raises ValueError for anything else.
    """
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if '/' in value:
        value = parse_dob(value)
    if value.endswith('.0'):
        value = value[:-2]
    if value.isdigit() and len(value) == 5:
        value = value.zfill(6)
    if not _DOB_RE.match(value):
        raise ValueError(f"dob must be 6 digits (YYMMDD), got '{value}'")
    return value


def format_general_date(date_str):
    """``"1998-08-11 00:00:00"`` -> ``"11/08/1998"``; unparseable input is returned unchanged."""
    if not date_str:
        return ''

    only_date = date_str.split(' ')[0]
    parts = only_date.split('-')
    if len(parts) == 3:
        y, m, d = parts
        return f'{d}/{m}/{y}'

    try:
        parsed = pd.to_datetime(date_str, dayfirst=True)
    except (ValueError, TypeError, OverflowError):
        return date_str
    if pd.isna(parsed):
        return date_str
    return parsed.strftime('%d/%m/%Y')
