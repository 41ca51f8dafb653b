"""
BudgetDesk — Database Layer
File-based JSON store with PostgreSQL upgrade path.

Collections are plain lists of camelCase records. Tenant-scoped records
carry organizationId; every lookup helper below takes it so that a record
of another tenant is indistinguishable from a missing one.
"""
import os, json, uuid, logging
from datetime import datetime

from budgetdesk.config import DB_PATH, PERSIST_DATA

logger = logging.getLogger(__name__)

# ============================================================
# DATABASE URL (PostgreSQL optional, file-based default)
# ============================================================
DATABASE_URL = os.environ.get("DATABASE_URL")

# ============================================================
# EMPTY DB SCHEMA
# ============================================================
EMPTY_DB = {
    "organizations": [], "users": [],
    "budget_types": [], "budget_domains": [],
    "budget_lines": [], "yearly_budgets": [], "annual_budgets": [],
    "budget_line_comments": [], "pole_allocations": [],
    "contracts": [], "invoices": [], "purchase_orders": [],
    "forecast_budget_lines": [], "forecast_expenses": [],
    "services": [], "poles": [],
    "audit_log": [],
}


def _fresh_db():
    """Return a fresh empty database."""
    return json.loads(json.dumps(EMPTY_DB))


# ============================================================
# FILE BACKEND
# ============================================================
_db_cache = None


def _file_load():
    global _db_cache
    if PERSIST_DATA and DB_PATH.exists():
        try:
            with open(DB_PATH) as f:
                _db_cache = json.load(f)
            # Ensure all collections exist
            for k, v in EMPTY_DB.items():
                if k not in _db_cache:
                    _db_cache[k] = type(v)()
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("[DB] Could not read %s (%s), starting empty", DB_PATH, e)
            _db_cache = _fresh_db()
    else:
        _db_cache = _fresh_db()
    return _db_cache


def _file_save(db):
    global _db_cache
    _db_cache = db
    if PERSIST_DATA:
        with open(DB_PATH, "w") as f:
            json.dump(db, f, indent=2, default=str)


def _file_get():
    if _db_cache is None:
        return _file_load()
    return _db_cache


# ============================================================
# POSTGRES BACKEND (optional)
# ============================================================
_pg_pool = None


def _pg_connect():
    """Initialize PostgreSQL connection pool."""
    global _pg_pool
    if DATABASE_URL and not _pg_pool:
        from psycopg2.pool import SimpleConnectionPool
        _pg_pool = SimpleConnectionPool(1, 5, DATABASE_URL)
        _pg_init()
        logger.info("[DB] Connected to PostgreSQL")


def _pg_init():
    """Create the state table if it doesn't exist."""
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                id TEXT PRIMARY KEY DEFAULT 'main',
                data JSONB NOT NULL DEFAULT '{}',
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        cur.execute("INSERT INTO app_state (id, data) VALUES ('main', %s) ON CONFLICT DO NOTHING",
                    (json.dumps(EMPTY_DB),))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pg_pool.putconn(conn)


def _pg_load():
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("SELECT data FROM app_state WHERE id='main'")
        row = cur.fetchone()
        db = row[0] if row else _fresh_db()
        for k, v in EMPTY_DB.items():
            db.setdefault(k, type(v)())
        return db
    finally:
        _pg_pool.putconn(conn)


def _pg_save(db):
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("UPDATE app_state SET data=%s, updated_at=NOW() WHERE id='main'",
                    (json.dumps(db, default=str),))
        conn.commit()
    finally:
        _pg_pool.putconn(conn)


# ============================================================
# PUBLIC API
# ============================================================
if DATABASE_URL:
    logger.info("[DB] Using PostgreSQL backend")
    _pg_connect()
    load_db = _pg_load
    save_db = _pg_save
    get_db = _pg_load
else:
    logger.info("[DB] Using file backend (%s)", DB_PATH.name)
    load_db = _file_load
    save_db = _file_save
    get_db = _file_get


def reset_db() -> dict:
    """Replace the store with an empty database. Used by tests and /reset."""
    db = _fresh_db()
    save_db(db)
    return db


# ============================================================
# RECORD HELPERS
# ============================================================
def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now().isoformat()


def find_by_id(db: dict, collection: str, record_id: str, org_id: str = None):
    """Return the record with this id (restricted to org_id when given), else None."""
    for r in db.get(collection, []):
        if r.get("id") == record_id and (org_id is None or r.get("organizationId") == org_id):
            return r
    return None


def org_records(db: dict, collection: str, org_id: str) -> list:
    return [r for r in db.get(collection, []) if r.get("organizationId") == org_id]


def remove_by_id(db: dict, collection: str, record_id: str) -> None:
    db[collection] = [r for r in db.get(collection, []) if r.get("id") != record_id]


def parse_date(value):
    """ISO date/datetime string → naive datetime. None/empty/unparseable → None."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def paginate(records: list, page: int, page_size: int) -> dict:
    total = len(records)
    start = (page - 1) * page_size
    return {"data": records[start:start + page_size], "total": total,
            "page": page, "pageSize": page_size,
            "totalPages": (total + page_size - 1) // page_size}


# ============================================================
# UTILITIES
# ============================================================
def _n(val, default=0):
    """Safe numeric conversion: None/empty → default, strings → float."""
    if val is None or val == "":
        return float(default)
    try:
        return float(val)
    except (ValueError, TypeError):
        return float(default)
