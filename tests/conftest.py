"""
Pytest configuration for the scheduling API tests
"""

from datetime import datetime

import pytest

from app import create_app
from models import db

# Monday 2026-10-19, noon
FIXED_NOW = datetime(2026, 10, 19, 12, 0)
TUESDAY = "2026-10-20"
SATURDAY = "2026-10-24"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "CLOCK": lambda: FIXED_NOW,
        "COMMIT_RETRIES": 0,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def doctor(client):
    resp = client.post("/api/doctors", json={"name": "Dr. Mehta"})
    assert resp.status_code == 201
    return resp.get_json()["id"]


@pytest.fixture
def patient(client):
    resp = client.post("/api/patients", json={"name": "Charlie", "phone": "+37499000000"})
    assert resp.status_code == 201
    return resp.get_json()["id"]


@pytest.fixture
def book(client, doctor, patient):
    """Book an appointment for the default doctor/patient, returning the response."""
    def _book(start, duration=30, **extra):
        payload = {
            "doctor_id": extra.pop("doctor_id", doctor),
            "patient_id": extra.pop("patient_id", patient),
            "appointment_date": start,
            "duration": duration,
        }
        payload.update(extra)
        return client.post("/api/appointments", json=payload)
    return _book
