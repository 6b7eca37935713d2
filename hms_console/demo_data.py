"""
Demo data seeding with Faker: one account per role plus patients,
appointments, lab tests, bills, stock and notifications.
"""

import random
from datetime import datetime, timedelta
from typing import Dict, List

from faker import Faker
from sqlalchemy import select

from hms_console.backend import (
    SqlBackend,
    appointments,
    bills,
    inventory,
    lab_tests,
    notifications,
    patients,
    pharmacy_items,
    prescriptions,
)
from hms_console.config import PROFILES_TABLE
from hms_console.models import Role

NUM_PATIENTS = 50
NUM_STOCK_ITEMS = 20

DEMO_PASSWORD = "changeme123"

DEMO_ACCOUNTS = [
    ("admin@hms.local", Role.ADMIN, "Ada", "Admin"),
    ("doctor@hms.local", Role.DOCTOR, "Derek", "House"),
    ("nurse@hms.local", Role.NURSE, "Nina", "Hale"),
    ("pharmacist@hms.local", Role.PHARMACIST, "Paul", "Reyes"),
    ("lab@hms.local", Role.LAB_TECHNICIAN, "Lara", "Kim"),
    ("patient@hms.local", Role.PATIENT, "Pat", "Doe"),
]

STATUSES = ["pending", "completed", "cancelled"]


def random_datetime_within(days_back=90):
    now = datetime.utcnow()
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


def seed_accounts(backend: SqlBackend, password: str = DEMO_PASSWORD) -> Dict[Role, str]:
    """Create one identity + profile per demo role; returns role -> user id."""
    ids = {}
    for email, role, first, last in DEMO_ACCOUNTS:
        existing = backend.find_identity(email)
        if existing:
            ids[role] = existing["id"]
            continue
        identity = backend.create_identity(email, password, {"first_name": first, "last_name": last})
        backend.insert_row(PROFILES_TABLE, {
            "user_id": identity.user_id,
            "role": role.value,
            "first_name": first,
            "last_name": last,
            "email": email,
        })
        ids[role] = identity.user_id
    return ids


def seed_patients(conn, fake: Faker, doctor_id: str, n=NUM_PATIENTS) -> List[int]:
    rows = [
        {
            "first_name": fake.first_name(),
            "last_name": fake.last_name(),
            "doctor_id": doctor_id if random.random() < 0.6 else None,
            "created_at": random_datetime_within(365),
        }
        for _ in range(n)
    ]
    conn.execute(patients.insert(), rows)
    return conn.execute(select(patients.c.id)).scalars().all()


def seed_clinical(conn, fake: Faker, patient_ids: List[int], doctor_id: str):
    appt_rows, test_rows, bill_rows, rx_rows = [], [], [], []
    for pid in patient_ids:
        for _ in range(random.randint(0, 3)):
            appt_rows.append({
                "patient_id": pid,
                "doctor_id": doctor_id if random.random() < 0.5 else None,
                "scheduled_at": random_datetime_within(30),
                "status": random.choice(STATUSES),
            })
        for _ in range(random.randint(0, 2)):
            test_rows.append({
                "patient_id": pid,
                "test_name": random.choice(["CBC", "Lipid panel", "HbA1c", "Urinalysis"]),
                "status": random.choice(STATUSES),
            })
        for _ in range(random.randint(0, 2)):
            bill_rows.append({
                "patient_id": pid,
                "amount": round(random.uniform(20, 900), 2),
                "status": random.choice(["pending", "paid"]),
            })
        for _ in range(random.randint(0, 2)):
            rx_rows.append({
                "patient_id": pid,
                "doctor_id": doctor_id,
                "medication": fake.word().capitalize(),
                "status": random.choice(["pending", "dispensed"]),
            })
    for table, rows in ((appointments, appt_rows), (lab_tests, test_rows),
                        (bills, bill_rows), (prescriptions, rx_rows)):
        if rows:
            conn.execute(table.insert(), rows)


def seed_stock(conn, fake: Faker, n=NUM_STOCK_ITEMS):
    for table in (inventory, pharmacy_items):
        rows = []
        for _ in range(n):
            row = {
                "name": fake.word().capitalize(),
                "quantity": random.randint(0, 100),
                "reorder_level": random.randint(5, 30),
            }
            if table is pharmacy_items:
                row["unit_price"] = round(random.uniform(1, 80), 2)
            rows.append(row)
        conn.execute(table.insert(), rows)


def seed_notifications(conn, fake: Faker, user_ids: List[str]):
    rows = []
    for uid in user_ids:
        for _ in range(random.randint(2, 8)):
            rows.append({
                "user_id": uid,
                "title": fake.sentence(nb_words=4).rstrip("."),
                "message": fake.text(max_nb_chars=120),
                "created_at": random_datetime_within(14),
                "read": random.random() < 0.4,
            })
    conn.execute(notifications.insert(), rows)


def seed_demo_data(backend: SqlBackend, seed: int = 42) -> Dict[Role, str]:
    """Create the schema and fill it with demo records."""
    fake = Faker()
    random.seed(seed)
    Faker.seed(seed)

    backend.create_schema()
    ids = seed_accounts(backend)
    with backend.engine.begin() as conn:
        patient_ids = seed_patients(conn, fake, ids[Role.DOCTOR])
        seed_clinical(conn, fake, patient_ids, ids[Role.DOCTOR])
        seed_stock(conn, fake)
        seed_notifications(conn, fake, list(ids.values()))
    return ids
