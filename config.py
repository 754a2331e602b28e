# config.py
import os
from datetime import datetime
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(__file__)
DB_PATH = os.path.join(BASE_DIR, "app.db")


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # granularity of the picker grid, in minutes
    SLOT_INTERVAL_MINUTES = int(os.getenv("SLOT_INTERVAL_MINUTES", 30))
    DEFAULT_APPOINTMENT_DURATION = int(os.getenv("DEFAULT_APPOINTMENT_DURATION", 30))

    # extra attempts for a booking/transition whose commit hit a transient db error
    COMMIT_RETRIES = int(os.getenv("COMMIT_RETRIES", 2))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # every "now" in the engine comes from here; tests swap in a fixed clock
    CLOCK = staticmethod(datetime.now)
