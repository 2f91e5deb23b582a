"""Environment-driven settings shared by the API, CLI, and Streamlit app."""

from __future__ import annotations

import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DB_PATH = Path(os.environ.get("DONORFLOW_DB_PATH", ".data/donorflow.db"))
SECRET_KEY = os.environ.get("DONORFLOW_SECRET_KEY", "change-this-secret-in-production")
COOKIE_SECURE = os.environ.get("DONORFLOW_COOKIE_SECURE", "0") == "1"
SESSION_DAYS = int(os.environ.get("DONORFLOW_SESSION_DAYS", "14"))
HOST = os.environ.get("DONORFLOW_HOST", os.environ.get("HOST", "127.0.0.1"))
PORT = int(os.environ.get("DONORFLOW_PORT", os.environ.get("PORT", "8080")))
LOG_LEVEL = os.environ.get("DONORFLOW_LOG_LEVEL", "INFO").strip().upper()
DEFAULT_LOCALE = os.environ.get("DONORFLOW_DEFAULT_LOCALE", "en").strip().lower()
MAX_UPLOAD_BYTES = int(os.environ.get("DONORFLOW_MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

STORE_EXTENSION = "donorflow_store"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
