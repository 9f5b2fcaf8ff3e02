"""
Scanara — Configuration & Constants
All environment variables, feature flags and audit limits.
Secrets are read from the environment only; nothing has a hardcoded fallback.
"""
import os
from pathlib import Path

# ============================================================
# PATHS
# ============================================================
BASE_DIR = Path(__file__).parent.parent.parent
DATA_DIR = Path(os.environ.get("SCANARA_DATA_DIR", BASE_DIR / "data"))
DB_PATH = DATA_DIR / "db.json"

# ============================================================
# STORAGE
# ============================================================
PERSIST_DATA = os.environ.get("PERSIST_DATA", "true").lower() == "true"
DATABASE_URL = os.environ.get("DATABASE_URL")

# ============================================================
# AUTH
# ============================================================
JWT_SECRET_FROM_ENV = bool(os.environ.get("JWT_SECRET"))
JWT_SECRET = os.environ.get("JWT_SECRET") or os.urandom(32).hex()
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
JWT_EXPIRY_HOURS = int(os.environ.get("JWT_EXPIRY_HOURS", "72"))

# ============================================================
# ANALYSIS ORACLE
# ============================================================
USE_REAL_API = bool(os.environ.get("ANTHROPIC_API_KEY"))
AUDIT_MODEL = os.environ.get("AUDIT_MODEL", "claude-sonnet-4-20250514")
AUDIT_TEMPERATURE = float(os.environ.get("AUDIT_TEMPERATURE", "0.2"))
AUDIT_MAX_TOKENS = int(os.environ.get("AUDIT_MAX_TOKENS", "8000"))
ORACLE_TIMEOUT_SECONDS = float(os.environ.get("ORACLE_TIMEOUT_SECONDS", "120"))
ORACLE_MAX_RETRIES = int(os.environ.get("ORACLE_MAX_RETRIES", "2"))

# Files beyond this prefix of a snapshot are not sent to the oracle.
AUDIT_MAX_FILES = int(os.environ.get("AUDIT_MAX_FILES", "100"))

# ============================================================
# COMPLIANCE THRESHOLDS
# ============================================================
COMPLIANT_MIN_SCORE = 80.0
NEEDS_ATTENTION_MIN_SCORE = 60.0

# ============================================================
# SERVER
# ============================================================
PORT = int(os.environ.get("PORT", "8000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
_origins = os.environ.get("CORS_ORIGINS", "")
CORS_ORIGINS = [o.strip() for o in _origins.split(",") if o.strip()] or ["*"]

# ============================================================
# VERSION
# ============================================================
VERSION = "1.0.0"
PRODUCT_NAME = "Scanara"
SCANNER_ID = "scanara-ai-v1"
