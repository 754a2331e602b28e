# app.py
import logging

from flask import Flask, request, jsonify

from appointments import (
    create_appointment, create_category, create_doctor, create_patient,
    get_appointment_or_404, get_availability, get_busy_slots, list_appointments,
    parse_date, parse_duration, parse_id, reschedule_appointment, transition_status,
    update_amount, update_appointment,
)
from config import Config
from errors import ValidationError, register_error_handlers
from models import db, TreatmentCategory
from schedules import get_weekly_schedule, parse_schedule_payload, replace_weekly_schedule


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    register_error_handlers(app)
    register_routes(app)

    with app.app_context():
        db.create_all()
    return app


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def optional_arg(name, parse):
    value = request.args.get(name)
    return parse(value, name) if value not in (None, "") else None


def register_routes(app):

    # -------------------------
    # Doctors, patients, categories
    # -------------------------

    @app.route("/api/doctors", methods=["POST"])
    def add_doctor():
        return jsonify(create_doctor(json_body()).to_dict()), 201

    @app.route("/api/patients", methods=["POST"])
    def add_patient():
        return jsonify(create_patient(json_body()).to_dict()), 201

    @app.route("/api/treatment-categories", methods=["GET"])
    def get_categories():
        categories = TreatmentCategory.query.order_by(TreatmentCategory.name).all()
        return jsonify([c.to_dict() for c in categories])

    @app.route("/api/treatment-categories", methods=["POST"])
    def add_category():
        return jsonify(create_category(json_body()).to_dict()), 201

    # -------------------------
    # Schedule & availability
    # -------------------------

    @app.route("/api/doctors/<int:doctor_id>/schedule", methods=["GET"])
    def get_schedule(doctor_id):
        return jsonify(get_weekly_schedule(doctor_id).to_dict())

    @app.route("/api/doctors/<int:doctor_id>/schedule", methods=["PUT"])
    def put_schedule(doctor_id):
        schedule = parse_schedule_payload(doctor_id, json_body().get("schedule"))
        return jsonify(replace_weekly_schedule(schedule).to_dict())

    @app.route("/api/doctors/<int:doctor_id>/availability", methods=["GET"])
    def get_available_slots(doctor_id):
        """
        Query params:
         - date=YYYY-MM-DD (required)
         - duration (optional) -> length of the booking being placed, minutes
         - interval (optional) -> granularity with which we propose slots
        """
        date_str = request.args.get("date")
        if not date_str:
            raise ValidationError("date param required YYYY-MM-DD", field="date")
        target = parse_date(date_str)
        duration = optional_arg("duration", parse_duration)
        interval = optional_arg("interval", parse_id)
        return jsonify(get_availability(doctor_id, target, duration, interval))

    @app.route("/api/doctors/<int:doctor_id>/busy-slots", methods=["GET"])
    def get_busy(doctor_id):
        date_str = request.args.get("date")
        if not date_str:
            raise ValidationError("date param required YYYY-MM-DD", field="date")
        target = parse_date(date_str)
        return jsonify({
            "doctor_id": doctor_id,
            "date": target.isoformat(),
            "busy": [b.to_dict() for b in get_busy_slots(doctor_id, target)],
        })

    # -------------------------
    # Appointments
    # -------------------------

    @app.route("/api/appointments", methods=["GET"])
    def get_appointments():
        appts = list_appointments(
            doctor_id=optional_arg("doctor_id", parse_id),
            patient_id=optional_arg("patient_id", parse_id),
            status=request.args.get("status") or None,
            date_from=optional_arg("date_from", parse_date),
            date_to=optional_arg("date_to", parse_date),
        )
        return jsonify([a.to_dict() for a in appts])

    @app.route("/api/appointments", methods=["POST"])
    def post_appointment():
        return jsonify(create_appointment(json_body()).to_dict()), 201

    @app.route("/api/appointments/<int:appointment_id>", methods=["GET"])
    def get_appointment(appointment_id):
        return jsonify(get_appointment_or_404(appointment_id).to_dict())

    @app.route("/api/appointments/<int:appointment_id>", methods=["PATCH"])
    def patch_appointment(appointment_id):
        return jsonify(update_appointment(appointment_id, json_body()).to_dict())

    @app.route("/api/appointments/<int:appointment_id>/status", methods=["POST"])
    def post_status(appointment_id):
        data = json_body()
        if not data.get("status"):
            raise ValidationError("status is required", field="status")
        return jsonify(transition_status(appointment_id, data["status"], data).to_dict())

    @app.route("/api/appointments/<int:appointment_id>/amount", methods=["PUT"])
    def put_amount(appointment_id):
        data = json_body()
        return jsonify(update_amount(appointment_id, data.get("amount"), data).to_dict())

    @app.route("/api/appointments/<int:appointment_id>/reschedule", methods=["POST"])
    def post_reschedule(appointment_id):
        data = json_body()
        if not data.get("appointment_date"):
            raise ValidationError("appointment_date is required", field="appointment_date")
        appt = reschedule_appointment(
            appointment_id, data["appointment_date"], data.get("duration"), data)
        return jsonify(appt.to_dict())


if __name__ == "__main__":
    create_app().run(debug=True, port=5000)
