# models.py
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timedelta

db = SQLAlchemy()

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED)

# appointment length bounds, minutes
MIN_DURATION = 15
MAX_DURATION = 240


def fmt_time(t):
    return t.strftime("%H:%M") if t is not None else None


def fmt_dt(dt):
    return dt.isoformat() if dt is not None else None


class Doctor(db.Model):
    __tablename__ = "doctors"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name}


class Patient(db.Model):
    __tablename__ = "patients"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=False)
    phone = db.Column(db.String, nullable=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "phone": self.phone}


class DoctorSchedule(db.Model):
    """One weekday of a doctor's recurring hours; a doctor owns exactly 7 of these once saved."""
    __tablename__ = "doctor_schedules"
    __table_args__ = (db.UniqueConstraint("doctor_id", "day_of_week"),)

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = db.Column(db.Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    is_working = db.Column(db.Boolean, nullable=False, default=True)
    start_time = db.Column(db.Time, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TreatmentCategory(db.Model):
    __tablename__ = "treatment_categories"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String, nullable=False, unique=True)
    default_duration = db.Column(db.Integer, nullable=False, default=30)
    color = db.Column(db.String, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "default_duration": self.default_duration,
            "color": self.color,
        }


class Appointment(db.Model):
    __tablename__ = "appointments"
    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    appointment_date = db.Column(db.DateTime, nullable=False, index=True)
    duration = db.Column(db.Integer, nullable=False, default=30)  # minutes
    status = db.Column(db.String, nullable=False, default=PENDING, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.String(1000), nullable=True)
    cancellation_reason = db.Column(db.String, nullable=True)
    suggested_new_date = db.Column(db.DateTime, nullable=True)
    registered_at = db.Column(db.DateTime, nullable=False)
    version = db.Column(db.Integer, nullable=False)

    doctor = db.relationship("Doctor", backref="appointments")
    patient = db.relationship("Patient", backref="appointments")

    # UPDATE ... WHERE version = :seen; a lost race surfaces as StaleDataError
    __mapper_args__ = {"version_id_col": version}

    @property
    def end_time(self):
        return self.appointment_date + timedelta(minutes=self.duration)

    def to_dict(self):
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "patient_id": self.patient_id,
            "appointment_date": fmt_dt(self.appointment_date),
            "end_time": fmt_dt(self.end_time),
            "duration": self.duration,
            "status": self.status,
            "amount": str(self.amount) if self.amount is not None else None,
            "reason": self.reason,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "suggested_new_date": fmt_dt(self.suggested_new_date),
            "registered_at": fmt_dt(self.registered_at),
            "version": self.version,
        }
