"""Hospital/batch whitelist and admin accounts, kept in sqlite."""
import logging
import re
import secrets
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path

import bcrypt

from .errors import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

BATCH_RE = re.compile(r'^[A-Za-z0-9-]{6,32}$')
DEFAULT_ADMIN = 'admin'
BCRYPT_ROUNDS = 12


def validate_pair(hospital_name, product_batch):
    """Return the trimmed pair or raise ValidationError."""
    hospital_name = (hospital_name or '').strip()
    product_batch = (product_batch or '').strip()
    if not hospital_name or not product_batch:
        raise ValidationError('Hospital name and product batch are required')
    if not BATCH_RE.match(product_batch):
        raise ValidationError('Product batch format is invalid')
    return hospital_name, product_batch


class WhitelistStore:
    def __init__(self, db_path: str, bcrypt_rounds: int = BCRYPT_ROUNDS):
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self.bcrypt_rounds = bcrypt_rounds
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self):
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self):
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS auth_pairs (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  hospital_name TEXT NOT NULL,
                  product_batch TEXT NOT NULL,
                  created_at INTEGER NOT NULL,
                  UNIQUE(hospital_name, product_batch)
                );

                CREATE TABLE IF NOT EXISTS admin_users (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  username TEXT UNIQUE NOT NULL,
                  password_hash TEXT NOT NULL,
                  created_at INTEGER NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_auth_pairs_created_at ON auth_pairs(created_at);
                """
            )

    # ----------------- Whitelist pairs -----------------

    def lookup(self, hospital_name, product_batch):
        with self.connection() as conn:
            row = conn.execute(
                'SELECT * FROM auth_pairs WHERE hospital_name = ? AND product_batch = ?',
                ((hospital_name or '').strip(), (product_batch or '').strip()),
            ).fetchone()
        return dict(row) if row else None

    def get(self, pair_id):
        with self.connection() as conn:
            row = conn.execute('SELECT * FROM auth_pairs WHERE id = ?', (pair_id,)).fetchone()
        return dict(row) if row else None

    def list_pairs(self, keyword='', page=1, page_size=10):
        page = max(int(page), 1)
        page_size = min(max(int(page_size), 1), 500)
        where = ''
        params = []
        if keyword:
            where = ' WHERE hospital_name LIKE ? OR product_batch LIKE ?'
            params = [f'%{keyword}%', f'%{keyword}%']
        with self.connection() as conn:
            total = conn.execute(f'SELECT COUNT(*) FROM auth_pairs{where}', params).fetchone()[0]
            rows = conn.execute(
                f'SELECT * FROM auth_pairs{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?',
                params + [page_size, (page - 1) * page_size],
            ).fetchall()
        return [dict(r) for r in rows], total

    def all_pairs(self):
        with self.connection() as conn:
            rows = conn.execute('SELECT * FROM auth_pairs ORDER BY id').fetchall()
        return [dict(r) for r in rows]

    def create(self, hospital_name, product_batch):
        hospital_name, product_batch = validate_pair(hospital_name, product_batch)
        now = int(time.time())
        try:
            with self._lock, self.connection() as conn:
                cur = conn.execute(
                    'INSERT INTO auth_pairs (hospital_name, product_batch, created_at) VALUES (?, ?, ?)',
                    (hospital_name, product_batch, now),
                )
                pair_id = cur.lastrowid
        except sqlite3.IntegrityError:
            raise Conflict('This hospital name and product batch combination already exists')
        return {'id': pair_id, 'hospital_name': hospital_name,
                'product_batch': product_batch, 'created_at': now}

    def update(self, pair_id, hospital_name=None, product_batch=None):
        existing = self.get(pair_id)
        if not existing:
            raise NotFound(f'No whitelist entry with id {pair_id}')
        hospital_name, product_batch = validate_pair(
            hospital_name if hospital_name is not None else existing['hospital_name'],
            product_batch if product_batch is not None else existing['product_batch'],
        )
        try:
            with self._lock, self.connection() as conn:
                conn.execute(
                    'UPDATE auth_pairs SET hospital_name = ?, product_batch = ? WHERE id = ?',
                    (hospital_name, product_batch, pair_id),
                )
        except sqlite3.IntegrityError:
            raise Conflict('This hospital name and product batch combination already exists')
        return {**existing, 'hospital_name': hospital_name, 'product_batch': product_batch}

    def delete(self, pair_id):
        with self._lock, self.connection() as conn:
            cur = conn.execute('DELETE FROM auth_pairs WHERE id = ?', (pair_id,))
        if cur.rowcount == 0:
            raise NotFound(f'No whitelist entry with id {pair_id}')

    def bulk_import(self, pairs):
        """Insert many pairs in one transaction; duplicates and invalid rows count as failed."""
        now = int(time.time())
        success = failed = 0
        with self._lock, self.connection() as conn:
            for hospital_name, product_batch in pairs:
                try:
                    hospital_name, product_batch = validate_pair(hospital_name, product_batch)
                except ValidationError:
                    failed += 1
                    continue
                cur = conn.execute(
                    'INSERT OR IGNORE INTO auth_pairs (hospital_name, product_batch, created_at) VALUES (?, ?, ?)',
                    (hospital_name, product_batch, now),
                )
                if cur.rowcount > 0:
                    success += 1
                else:
                    failed += 1
        return success, failed

    # ----------------- Admin accounts -----------------

    def set_admin_password(self, username, password):
        password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(self.bcrypt_rounds)).decode('utf-8')
        with self._lock, self.connection() as conn:
            conn.execute(
                """
                INSERT INTO admin_users (username, password_hash, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(username) DO UPDATE SET password_hash = excluded.password_hash
                """,
                (username, password_hash, int(time.time())),
            )

    def verify_admin(self, username, password) -> bool:
        if not username or not password:
            return False
        with self.connection() as conn:
            row = conn.execute(
                'SELECT password_hash FROM admin_users WHERE username = ?', (username,)
            ).fetchone()
        if not row:
            return False
        return bcrypt.checkpw(password.encode('utf-8'), row['password_hash'].encode('utf-8'))

    def ensure_default_admin(self, password=None):
        """Create the 'admin' account on an empty table. Returns the password used, or None."""
        with self.connection() as conn:
            count = conn.execute('SELECT COUNT(*) FROM admin_users').fetchone()[0]
        if count:
            return None
        generated = not password
        password = password or secrets.token_hex(8)
        self.set_admin_password(DEFAULT_ADMIN, password)
        if generated:
            logger.warning(
                f"Initial admin account created: username={DEFAULT_ADMIN} password={password} "
                "(shown once, save it now)"
            )
        return password
