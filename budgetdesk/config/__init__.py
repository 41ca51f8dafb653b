"""
BudgetDesk — Configuration & Constants
All environment variables, feature flags, role matrix and domain enumerations.
"""
import os
from pathlib import Path

# ============================================================
# PATHS
# ============================================================
BASE_DIR = Path(__file__).parent.parent.parent
DATA_DIR = Path(os.environ.get("BUDGETDESK_DATA_DIR", str(BASE_DIR / "data")))

DATA_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = DATA_DIR / "db.json"

# ============================================================
# FEATURE FLAGS
# ============================================================
PERSIST_DATA = os.environ.get("PERSIST_DATA", "true").lower() == "true"

# First super admin, created at startup when the user table is empty
BOOTSTRAP_ADMIN_EMAIL = os.environ.get("BOOTSTRAP_ADMIN_EMAIL")
BOOTSTRAP_ADMIN_PASSWORD = os.environ.get("BOOTSTRAP_ADMIN_PASSWORD")

PORT = int(os.environ.get("PORT", "8000"))

# ============================================================
# LOGGING
# ============================================================
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.environ.get("LOG_FILE")  # unset → console only

# ============================================================
# AUTH
# ============================================================
JWT_SECRET = os.environ.get("JWT_SECRET", os.urandom(32).hex())
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = int(os.environ.get("JWT_EXPIRY_HOURS", "72"))
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = 6

# ============================================================
# ROLE MATRIX
# ============================================================
ROLE_MATRIX = {
    "viewer":  {"title": "Viewer",  "level": 1},
    "manager": {"title": "Manager", "level": 2},
    "admin":   {"title": "Admin",   "level": 3},
}
DEFAULT_ROLE = "viewer"
ROLE_MANAGER = ROLE_MATRIX["manager"]["level"]
ROLE_ADMIN = ROLE_MATRIX["admin"]["level"]

# ============================================================
# CACHE
# ============================================================
CACHE_TTL_SECONDS = float(os.environ.get("CACHE_TTL_SECONDS", "3"))
CACHE_CONTROL_HEADER = f"private, max-age={int(CACHE_TTL_SECONDS)}"

# ============================================================
# ALERTS
# ============================================================
ALERT_EXPIRY_WINDOW_DAYS = int(os.environ.get("ALERT_EXPIRY_WINDOW_DAYS", "30"))
ALERT_CATEGORY_LIMIT = int(os.environ.get("ALERT_CATEGORY_LIMIT", "5"))

# ============================================================
# DOMAIN ENUMERATIONS (stored values)
# ============================================================
INVOICE_STATUS_PAID = "Payée"
INVOICE_STATUS_PENDING = "En attente"
INVOICE_STATUS_LATE = "Retard"
INVOICE_STATUSES = (INVOICE_STATUS_PAID, INVOICE_STATUS_PENDING, INVOICE_STATUS_LATE)

CONTRACT_STATUSES = ("Actif", "Expirant", "Expiré")

NATURE_OPERATING = "Fonctionnement"
NATURE_CAPITAL = "Investissement"
NATURES = (NATURE_CAPITAL, NATURE_OPERATING)

PURCHASE_ORDER_STATUSES = ("DRAFT", "SENT", "CONFIRMED", "DELIVERED", "INVOICED", "CANCELLED")

# French short month labels, January first
MONTH_LABELS = ["janv.", "févr.", "mars", "avr.", "mai", "juin",
                "juil.", "août", "sept.", "oct.", "nov.", "déc."]

# ============================================================
# PAGINATION
# ============================================================
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

# ============================================================
# VERSION
# ============================================================
VERSION = "1.4.0"
