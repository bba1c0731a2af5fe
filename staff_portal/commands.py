import random
from datetime import date, timedelta

import click

from staff_portal import db
from staff_portal.models import Account, StaffRecord

RANKS = ["Director", "Deputy Director", "Assistant Director", "Chief Officer",
         "Principal Officer", "Senior Officer", "Officer I", "Officer II"]
STATIONS = ["Headquarters", "Abuja", "Lagos", "Kano", "Enugu", "Port Harcourt", "Ibadan"]
STATES = ["Niger", "Lagos", "Kano", "Enugu", "Rivers", "Oyo", "Kaduna", "Ogun"]
QUALIFICATIONS = ["B.Sc", "M.Sc", "HND", "OND", "Ph.D", "B.Ed"]
FIRST_NAMES = ["Aisha", "Musa", "Chinedu", "Ngozi", "Tunde", "Fatima", "Emeka", "Bola", "Ibrahim", "Grace"]
LAST_NAMES = ["Bello", "Okafor", "Adeyemi", "Abubakar", "Eze", "Ogunleye", "Danjuma", "Nwosu"]


def random_date(start_year, end_year):
    start = date(start_year, 1, 1)
    end = date(end_year, 12, 31)
    return start + timedelta(days=random.randint(0, (end - start).days))


def make_demo_record(number):
    dob = random_date(1965, 2000)
    first_year = max(dob.year + 21, 1990)
    first_appointment = random_date(first_year, max(first_year, 2020))
    present_appointment = random_date(first_appointment.year, max(first_appointment.year, 2023))
    next_appointment = present_appointment + timedelta(days=3 * 365)
    first, last = random.choice(FIRST_NAMES), random.choice(LAST_NAMES)
    return StaffRecord(
        fileno=f'{number:05d}',
        full_name=f'{first} {last}',
        rank=random.choice(RANKS),
        station=random.choice(STATIONS),
        dob=dob.strftime('%y%m%d'),
        qualification=random.choice(QUALIFICATIONS),
        sex=random.choice(['M', 'F']),
        state=random.choice(STATES),
        lga=f'LGA {random.randint(1, 20)}',
        email=f'{first.lower()}.{last.lower()}{number}@example.org',
        phone=f'080{random.randint(10000000, 99999999)}',
        dofa=first_appointment.strftime('%Y-%m-%d 00:00:00'),
        dopa=present_appointment.strftime('%Y-%m-%d 00:00:00'),
        doan=next_appointment.strftime('%Y-%m-%d 00:00:00'),
    )


def register_commands(app):

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('Database tables created.')

    @app.cli.command('create-admin')
    @click.argument('username')
    @click.password_option()
    @click.option('--full-name', default=None)
    def create_admin(username, password, full_name):
        """Create an administrator account."""
        if Account.query.filter_by(username=username).first():
            raise click.ClickException(f'Account {username} already exists.')
        account = Account(username=username, full_name=full_name, role='admin')
        account.set_password(password)
        db.session.add(account)
        db.session.commit()
        click.echo(f'Admin account {username} created.')

    @app.cli.command('seed-demo')
    @click.option('--count', default=100, show_default=True, help='Number of records to add.')
    def seed_demo(count):
        """Fill the roster with random demo records."""
        start = (db.session.query(db.func.max(StaffRecord.id)).scalar() or 0) + 1
        existing = {fileno for (fileno,) in db.session.query(StaffRecord.fileno)}
        added = 0
        number = start
        while added < count:
            record = make_demo_record(number)
            number += 1
            if record.fileno in existing:
                continue
            db.session.add(record)
            added += 1
        db.session.commit()
        click.echo(f'{added} demo staff records added.')
