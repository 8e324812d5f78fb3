"""
Configuration constants and environment setup.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.parent
DB_PATH = PROJECT_ROOT / "data" / "db" / "voice-reports.db"
LOCAL_WORKBOOK_PATH = PROJECT_ROOT / "data" / "reports.xlsx"
LOCAL_UPLOAD_DIR = PROJECT_ROOT / "data" / "uploads"

# =============================================================================
# WORKBOOK LAYOUT
# =============================================================================

MAIN_LOG_SHEET = "Main Report Log"
PAYROLL_SHEET = "Payroll Summary"
EMPLOYEES_SHEET = "Employee Reference"

# Column order is read by downstream consumers; append new columns at the end only.
MAIN_LOG_HEADERS = [
    "Timestamp",          # A
    "Job Site",           # B
    "Employee Name",      # C
    "Regular Hours",      # D
    "OT Hours",           # E
    "Deliveries",         # F
    "Equipment",          # G
    "Safety",             # H
    "Weather",            # I
    "Shortages",          # J
    "Audio Link",         # K
    "Transcript Link",    # L
    "Delays",             # M
    "Notes",              # N
    "Subcontractors",     # O
    "Work Performed",     # P
    "Report ID",          # Q
    "Call ID",            # R
]
PAYROLL_HEADERS = [
    "Date", "Job Site", "Employee Name", "Regular Hours", "OT Hours", "Total Hours"
]
EMPLOYEE_HEADERS = ["Name", "Status"]

AUDIO_LINK_COLUMN = "K"
TRANSCRIPT_LINK_COLUMN = "L"
REPORT_ID_COLUMN = "Q"
CALL_ID_COLUMN = "R"

INACTIVE_STATUSES = {"false", "inactive"}

# =============================================================================
# MATCHING
# =============================================================================

NAME_MATCH_THRESHOLD = 0.6

# Report submission may precede the provider's call end by up to a minute
# (clock skew) and follow it by up to five minutes (confirmation delay).
MATCH_WINDOW_BEFORE_SECONDS = 60
MATCH_WINDOW_AFTER_SECONDS = 300

SWEEP_CALL_LIMIT = 50

# A claim younger than this belongs to an attempt still fetching artifacts;
# an older one is treated as abandoned and may be resumed.
CLAIM_LEASE_SECONDS = 15 * 60

# Accepted age of a signed post-call notification
SIGNATURE_TOLERANCE_SECONDS = 30 * 60

# =============================================================================
# ARTIFACT NAMING
# =============================================================================

ARTIFACT_NAME_PREFIX = "Daily Report"
AUDIO_MIME_TYPE = "audio/mpeg"
TRANSCRIPT_MIME_TYPE = "text/plain"

# =============================================================================
# API CONFIGURATION
# =============================================================================

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
API_DEBUG = os.environ.get("API_DEBUG", "false").lower() == "true"
API_VERSION = "1.0.0"


class Settings(BaseModel):
    """Runtime settings wired into the store, blob and provider clients."""

    DATA_ADAPTER: Literal["graph", "local"] = "local"

    # MS Graph credentials and workbook location
    GRAPH_TENANT_ID: str = ""
    GRAPH_APP_ID: str = ""
    GRAPH_CLIENT_SECRET: str = ""
    WORKBOOK_DRIVE_ID: str = ""
    WORKBOOK_ITEM_ID: str = ""
    MAIN_LOG_TABLE: str = "ReportLog"
    PAYROLL_TABLE: str = "PayrollSummary"
    DRIVE_AUDIO_FOLDER_ID: str = ""
    DRIVE_TRANSCRIPTS_FOLDER_ID: str = ""

    # Local development adapters
    LOCAL_WORKBOOK_PATH: Path = LOCAL_WORKBOOK_PATH
    LOCAL_UPLOAD_DIR: Path = LOCAL_UPLOAD_DIR
    PUBLIC_BASE_URL: str = "/uploads"

    # Voice provider
    ELEVENLABS_API_KEY: str = ""
    ELEVENLABS_BASE_URL: str = "https://api.elevenlabs.io"
    ELEVENLABS_AGENT_ID: str = ""
    ELEVENLABS_WEBHOOK_SECRET: str = ""
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Webhooks and correlation
    WEBHOOK_API_KEY: str = ""
    REPORT_TIMEZONE: str = "America/Chicago"
    PER_CALL_STRATEGY: Literal["latest", "windowed"] = "latest"
    SWEEP_CALL_LIMIT: int = SWEEP_CALL_LIMIT
    NAME_MATCH_THRESHOLD: float = NAME_MATCH_THRESHOLD

    DB_PATH: Path = DB_PATH
    LOG_LEVEL: str = "INFO"


def load_settings() -> Settings:
    """Build settings from the environment, ignoring unset variables."""
    values = {
        name: os.environ[name] for name in Settings.model_fields if name in os.environ
    }
    return Settings(**values)


@lru_cache
def get_settings() -> Settings:
    return load_settings()
