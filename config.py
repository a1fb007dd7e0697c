"""
config.py — Environment-driven settings and fixed product constants.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ── Database ──────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./resume_screening.db")

# ── Auth ──────────────────────────────────────────────

SECRET_KEY = os.getenv(
    "SECRET_KEY", "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# ── AI gateway ────────────────────────────────────────

AI_GATEWAY_URL = os.getenv(
    "AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions"
)
AI_GATEWAY_API_KEY = os.getenv("AI_GATEWAY_API_KEY")
AI_MODEL = os.getenv("AI_MODEL", "google/gemini-2.5-flash")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))

# ── E-mail ────────────────────────────────────────────

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Resume Analyzer <onboarding@resend.dev>")
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5173")

# ── Analysis limits ───────────────────────────────────

MIN_TEXT_LENGTH = 50
REQUEST_TEXT_LIMIT = 30_000
STORED_TEXT_LIMIT = 50_000
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
BATCH_DELAY_SECONDS = float(os.getenv("BATCH_DELAY_SECONDS", "1.0"))

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_CONTENT_TYPE = "text/plain"
ALLOWED_CONTENT_TYPES = PDF_CONTENT_TYPES | {DOCX_CONTENT_TYPE, TEXT_CONTENT_TYPE}

# ── Collaboration & history ───────────────────────────

INVITATION_TTL_DAYS = 7
HISTORY_PAGE_SIZE = 20
ADMIN_ANALYSES_LIMIT = 100
ADMIN_USAGE_LOG_LIMIT = 500

# Comma-separated; accounts signing up with these addresses get the admin role.
ADMIN_EMAILS = {
    email.strip().lower() for email in os.getenv("ADMIN_EMAILS", "").split(",") if email.strip()
}

# ── Logging ───────────────────────────────────────────

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()
