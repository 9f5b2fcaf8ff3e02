"""
Scanara — Document Store
File-based JSON store with PostgreSQL upgrade path.

Collections:
  apps       — tracked applications (owner, name, codebase pointer, latest audit)
  codebases  — immutable snapshots of imported repositories ({path, content} files)
  audits     — one record per audit run

Any failure reading or writing the backing store surfaces as StoreError.
"""
import os, json, uuid, copy, logging, threading
from contextlib import contextmanager
from datetime import datetime, timezone

from scanara.config import DB_PATH, DATA_DIR, PERSIST_DATA, DATABASE_URL
from scanara.errors import StoreError

logger = logging.getLogger(__name__)

# ============================================================
# EMPTY DB SCHEMA
# ============================================================
EMPTY_DB = {"apps": [], "codebases": [], "audits": []}
COLLECTIONS = tuple(EMPTY_DB)

def _fresh_db():
    """Return a fresh empty database."""
    return json.loads(json.dumps(EMPTY_DB))

# ============================================================
# FILE BACKEND
# ============================================================
_db_cache = None

def _file_load():
    global _db_cache
    if DB_PATH.exists():
        try:
            with open(DB_PATH) as f:
                _db_cache = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt database file {DB_PATH}: {e}") from e
        except OSError as e:
            raise StoreError(f"Cannot read database file {DB_PATH}: {e}") from e
        # Ensure all collections exist
        for k, v in EMPTY_DB.items():
            if k not in _db_cache:
                _db_cache[k] = type(v)()
    else:
        _db_cache = _fresh_db()
    return _db_cache

def _file_save(db):
    global _db_cache
    if not PERSIST_DATA:
        _db_cache = db
        return
    tmp_path = DB_PATH.with_suffix(".tmp")
    try:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w") as f:
            json.dump(db, f, indent=2, default=str)
        os.replace(tmp_path, DB_PATH)
    except OSError as e:
        raise StoreError(f"Cannot write database file {DB_PATH}: {e}") from e
    _db_cache = db

def _file_get():
    if _db_cache is None:
        return _file_load()
    return _db_cache

def reset_cache():
    """Drop the in-memory copy so the next read goes back to disk."""
    global _db_cache
    _db_cache = None

# ============================================================
# POSTGRES BACKEND (optional)
# ============================================================
_pg_pool = None

def _pg_connect():
    """Initialize PostgreSQL connection pool."""
    global _pg_pool
    if DATABASE_URL and not _pg_pool:
        import psycopg2
        from psycopg2.pool import SimpleConnectionPool
        _pg_pool = SimpleConnectionPool(1, 5, DATABASE_URL)
        _pg_init()
        logger.info("Connected to PostgreSQL")

def _pg_init():
    """Create the state table if it doesn't exist."""
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS scanara_state (
                id TEXT PRIMARY KEY DEFAULT 'main',
                data JSONB NOT NULL DEFAULT '{}',
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        cur.execute("INSERT INTO scanara_state (id, data) VALUES ('main', %s) ON CONFLICT DO NOTHING",
                    (json.dumps(EMPTY_DB),))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pg_pool.putconn(conn)

def _pg_load():
    if not _pg_pool:
        raise StoreError("PostgreSQL pool is not initialized")
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("SELECT data FROM scanara_state WHERE id='main'")
        row = cur.fetchone()
        db = row[0] if row else _fresh_db()
    except Exception as e:
        raise StoreError(f"PostgreSQL read failed: {e}") from e
    finally:
        _pg_pool.putconn(conn)
    for k, v in EMPTY_DB.items():
        db.setdefault(k, type(v)())
    return db

def _pg_save(db):
    if not _pg_pool:
        raise StoreError("PostgreSQL pool is not initialized")
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("UPDATE scanara_state SET data=%s, updated_at=NOW() WHERE id='main'",
                    (json.dumps(db, default=str),))
        conn.commit()
    except Exception as e:
        conn.rollback()
        raise StoreError(f"PostgreSQL write failed: {e}") from e
    finally:
        _pg_pool.putconn(conn)

# ============================================================
# PUBLIC API
# ============================================================
if DATABASE_URL:
    logger.info("Using PostgreSQL backend")
    _pg_connect()
    save_db = _pg_save
    get_db = _pg_load
else:
    logger.info("Using file backend (%s)", DB_PATH)
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    save_db = _file_save
    get_db = _file_get

# ============================================================
# COLLECTION HELPERS
# ============================================================
_lock = threading.RLock()

def new_id() -> str:
    return uuid.uuid4().hex

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def _collection(db: dict, name: str) -> list:
    if name not in COLLECTIONS:
        raise StoreError(f"Unknown collection: {name}")
    return db.setdefault(name, [])

@contextmanager
def _transaction():
    """Yield the database under the store lock; save it if the block succeeds."""
    with _lock:
        db = copy.deepcopy(get_db())
        yield db
        save_db(db)

def get_doc(collection: str, doc_id: str):
    """Return a copy of one document, or None if absent."""
    with _lock:
        for doc in _collection(get_db(), collection):
            if doc.get("id") == doc_id:
                return copy.deepcopy(doc)
    return None

def find_docs(collection: str, **filters) -> list:
    """Return copies of all documents whose fields equal the given filters."""
    with _lock:
        docs = _collection(get_db(), collection)
        return [copy.deepcopy(d) for d in docs
                if all(d.get(k) == v for k, v in filters.items())]

def add_doc(collection: str, data: dict) -> dict:
    """Insert a document, assigning an id. Returns the stored copy."""
    doc = {**copy.deepcopy(data), "id": data.get("id") or new_id()}
    with _transaction() as db:
        _collection(db, collection).append(doc)
    return copy.deepcopy(doc)

def update_doc(collection: str, doc_id: str, updates: dict, expect: dict = None) -> dict:
    """Merge updates into a document. Returns the updated copy.

    expect: field values the stored document must still hold, checked under the
    store lock before writing.
    """
    with _transaction() as db:
        for doc in _collection(db, collection):
            if doc.get("id") == doc_id:
                for k, v in (expect or {}).items():
                    if doc.get(k) != v:
                        raise StoreError(
                            f"{collection}/{doc_id}: expected {k}={v!r}, found {doc.get(k)!r}")
                doc.update(copy.deepcopy(updates))
                return copy.deepcopy(doc)
        raise StoreError(f"{collection}/{doc_id} does not exist")
