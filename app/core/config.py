"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    GEMINI_API_KEY            — API key for the audit engine (Google Gemini)
    GEMINI_MODEL              — Model used for audits (default: gemini-3-flash-preview)
    GEMINI_BASE_URL           — REST base URL for the Generative Language API
    GEMINI_THINKING_BUDGET    — Thinking token budget per audit (default: 4096)
    AUDIT_TIMEOUT_SECONDS     — Hard ceiling for a single audit call (default: 120)
    LOCATION_TIMEOUT_SECONDS  — Max wait for the optional location hint (default: 5)
    AUDIT_PROFILE_PATH        — YAML audit profile (platforms, directives, schema knobs)
    PUBLIC_APP_URL            — Base URL used when building share links
    REPORT_EXPORT_DIR         — Directory for exported report documents
    LOG_DIR                   — Directory for daily log files
    CORS_ORIGINS              — Comma separated list of allowed front-end origins

Timeout Philosophy:
    The audit call is the only long-running operation. It is awaited once
    and either completes or fails; there are no automatic retries. The
    location hint is best-effort and never delays submission beyond
    LOCATION_TIMEOUT_SECONDS.
"""
import os
from dotenv import load_dotenv

load_dotenv()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
GEMINI_THINKING_BUDGET = int(os.getenv("GEMINI_THINKING_BUDGET", 4096))

# Execution ceilings in seconds
AUDIT_TIMEOUT_SECONDS = float(os.getenv("AUDIT_TIMEOUT_SECONDS", 120))
LOCATION_TIMEOUT_SECONDS = float(os.getenv("LOCATION_TIMEOUT_SECONDS", 5))

AUDIT_PROFILE_PATH = os.getenv(
    "AUDIT_PROFILE_PATH",
    os.path.join(os.path.dirname(__file__), "audit_profile.yaml"),
)

PUBLIC_APP_URL = os.getenv("PUBLIC_APP_URL", "http://localhost:3000")
REPORT_EXPORT_DIR = os.getenv("REPORT_EXPORT_DIR", "exports")
LOG_DIR = os.getenv("LOG_DIR", "logs")

CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if origin.strip()
]
