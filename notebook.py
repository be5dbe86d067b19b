import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from config import db_name_from_env, kdf_params_from_env
from errors import CategoryNotFound, NoteNotFound, StorageError, StorageUnavailable
from models import Category, ChangeEvent, Note
from note_crypto import NoteCrypto
from record import EMPTY, EncryptedRecord

logger = logging.getLogger(__name__)

DEFAULT_NOTE_TITLE = "New Note"
UNTITLED = "Untitled Note"
TITLE_MAX_LEN = 50

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    parent_id TEXT REFERENCES categories(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    salt BLOB,
    nonce BLOB,
    tag BLOB,
    ciphertext BLOB,
    CHECK (
        (salt IS NULL AND nonce IS NULL AND tag IS NULL AND ciphertext IS NULL)
        OR (salt IS NOT NULL AND nonce IS NOT NULL
            AND tag IS NOT NULL AND ciphertext IS NOT NULL
            AND length(salt) = 16 AND length(nonce) = 12
            AND length(tag) = 16 AND length(ciphertext) > 0)
    )
);
"""

NOTE_COLUMNS = "id, title, category_id, created_at, updated_at, salt, nonce, ciphertext, tag"


def _now():
    return datetime.now(timezone.utc).isoformat()


def extract_title(content):
    """First non-blank line of the content, capped at TITLE_MAX_LEN."""
    for line in content.strip().splitlines():
        line = line.strip()
        if line:
            return line[:TITLE_MAX_LEN].strip()
    return UNTITLED


def _note_from_row(row):
    note_id, title, category_id, created_at, updated_at, salt, nonce, ciphertext, tag = row
    return Note(
        id=note_id,
        title=title,
        category_id=category_id,
        created_at=created_at,
        updated_at=updated_at,
        body=EncryptedRecord.from_row(salt, nonce, ciphertext, tag),
    )


class Notebook:
    """
    Category tree and encrypted notes in one sqlite file.

    Note bodies are sealed by NoteCrypto; the four record fields are always
    written by a single UPDATE so a note is either fully sealed or untouched.
    """

    def __init__(self, db_name=None, kdf_params=None):
        if db_name is None:
            db_name = db_name_from_env()
        if kdf_params is None:
            kdf_params = kdf_params_from_env()

        self.db_name = db_name
        self.crypto = NoteCrypto(kdf_params)
        self._subscribers = []
        self._note_locks = {}  # note_id -> [lock, holders]
        self._locks_guard = threading.Lock()

        try:
            self._init_db()
        except sqlite3.Error as e:
            logger.error("Could not open notebook database %s: %s", db_name, e)
            raise StorageUnavailable(f"Could not open notebook database: {e}") from e

    # ───────── Internal helpers ─────────

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_name)
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _note_lock(self, note_id):
        """Serialize work on one note. Entries are dropped once nobody holds or waits."""
        with self._locks_guard:
            entry = self._note_locks.get(note_id)
            if entry is None:
                entry = self._note_locks[note_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._note_locks[note_id]

    def _category_exists(self, conn, category_id):
        cur = conn.execute("SELECT 1 FROM categories WHERE id = ?", (category_id,))
        return cur.fetchone() is not None

    # ───────── Change notifications ─────────

    def subscribe(self, callback):
        """Register callback(ChangeEvent); returns a function that unsubscribes."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, kind, entity_id):
        event = ChangeEvent(kind=kind, entity_id=entity_id)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed handling %s", kind)

    # ───────── Categories ─────────

    def add_category(self, name, parent_id=None):
        category_id = str(uuid.uuid4())
        with self._connect() as conn:
            if parent_id is not None and not self._category_exists(conn, parent_id):
                raise CategoryNotFound(parent_id)
            conn.execute(
                "INSERT INTO categories (id, name, parent_id) VALUES (?, ?, ?)",
                (category_id, name, parent_id),
            )
        logger.info("Added category %s", category_id)
        self._emit("category_added", category_id)
        return category_id

    def get_category(self, category_id):
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT id, name, parent_id FROM categories WHERE id = ?",
                (category_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise CategoryNotFound(category_id)
        return Category(*row)

    def rename_category(self, category_id, new_name):
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE categories SET name = ? WHERE id = ?", (new_name, category_id)
            )
            if cur.rowcount == 0:
                raise CategoryNotFound(category_id)
        self._emit("category_renamed", category_id)

    def delete_category(self, category_id):
        """Delete a category together with its subcategories and their notes."""
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
            if cur.rowcount == 0:
                raise CategoryNotFound(category_id)
        logger.info("Deleted category %s", category_id)
        self._emit("category_deleted", category_id)

    def list_root_categories(self):
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT id, name, parent_id FROM categories "
                "WHERE parent_id IS NULL ORDER BY name"
            )
            return [Category(*r) for r in cur.fetchall()]

    def list_subcategories(self, parent_id):
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT id, name, parent_id FROM categories "
                "WHERE parent_id = ? ORDER BY name",
                (parent_id,),
            )
            return [Category(*r) for r in cur.fetchall()]

    # ───────── Notes ─────────

    def create_note(self, category_id, title=DEFAULT_NOTE_TITLE):
        """Create an unsealed placeholder note. Every note belongs to a category."""
        if category_id is None:
            raise CategoryNotFound("a note needs a category")
        note_id = str(uuid.uuid4())
        now = _now()
        with self._connect() as conn:
            if not self._category_exists(conn, category_id):
                raise CategoryNotFound(category_id)
            conn.execute(
                "INSERT INTO notes (id, category_id, title, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (note_id, category_id, title, now, now),
            )
        self._emit("note_created", note_id)
        return note_id

    def get_note(self, note_id):
        with self._connect() as conn:
            cur = conn.execute(
                f"SELECT {NOTE_COLUMNS} FROM notes WHERE id = ?", (note_id,)
            )
            row = cur.fetchone()
        if row is None:
            raise NoteNotFound(note_id)
        return _note_from_row(row)

    def list_notes(self, category_id):
        """Notes in a category, newest first."""
        with self._connect() as conn:
            cur = conn.execute(
                f"SELECT {NOTE_COLUMNS} FROM notes WHERE category_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (category_id,),
            )
            return [_note_from_row(r) for r in cur.fetchall()]

    def save_note(self, note_id, content, password):
        """
        Seal content under password and persist it.

        Every save re-seals with a fresh salt and nonce. Title and
        updated_at are written in the same statement as the record.
        """
        if not content.strip():
            raise ValueError("Note content cannot be empty")
        if not password:
            raise ValueError("A password is required to save a note")

        with self._note_lock(note_id):
            record = self.crypto.seal(content, password)
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    UPDATE notes
                    SET title = ?,
                        updated_at = ?,
                        salt = ?,
                        nonce = ?,
                        tag = ?,
                        ciphertext = ?
                    WHERE id = ?
                    """,
                    (
                        extract_title(content),
                        _now(),
                        record.salt,
                        record.nonce,
                        record.tag,
                        record.ciphertext,
                        note_id,
                    ),
                )
                if cur.rowcount == 0:
                    raise NoteNotFound(note_id)

        logger.info("Saved note %s", note_id)
        self._emit("note_saved", note_id)

    def unlock_note(self, note_id, password):
        with self._note_lock(note_id):
            note = self.get_note(note_id)
            return self.crypto.open(note.body, password)

    def rename_note(self, note_id, title):
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE notes SET title = ?, updated_at = ? WHERE id = ?",
                (title or UNTITLED, _now(), note_id),
            )
            if cur.rowcount == 0:
                raise NoteNotFound(note_id)
        self._emit("note_renamed", note_id)

    def delete_note(self, note_id):
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            if cur.rowcount == 0:
                raise NoteNotFound(note_id)
        self._emit("note_deleted", note_id)

    def discard_if_unsealed(self, note_id):
        """Drop a placeholder that was never saved. Returns True if deleted."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM notes WHERE id = ? AND ciphertext IS NULL", (note_id,)
            )
            deleted = cur.rowcount > 0
        if deleted:
            self._emit("note_deleted", note_id)
        return deleted

    # ───────── Export / Import ─────────

    def export(self, filename):
        """Write categories and sealed notes to JSON. Bodies stay encrypted."""
        with self._connect() as conn:
            categories = conn.execute(
                "SELECT id, name, parent_id FROM categories ORDER BY rowid"
            ).fetchall()
            notes = [
                _note_from_row(r)
                for r in conn.execute(f"SELECT {NOTE_COLUMNS} FROM notes").fetchall()
            ]

        data = {
            "categories": [
                {"id": c, "name": n, "parent_id": p} for c, n, p in categories
            ],
            "notes": [
                {
                    "id": note.id,
                    "title": note.title,
                    "category_id": note.category_id,
                    "created_at": note.created_at,
                    "updated_at": note.updated_at,
                    "record": note.body.to_dict() if note.is_sealed else None,
                }
                for note in notes
            ],
        }

        with open(filename, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def import_data(self, filename):
        with open(filename, "r", encoding="utf-8") as f:
            data = json.load(f)

        try:
            with self._connect() as conn:
                for c in data.get("categories", []):
                    conn.execute(
                        "INSERT OR IGNORE INTO categories (id, name, parent_id) VALUES (?, ?, ?)",
                        (c["id"], c["name"], c["parent_id"]),
                    )
                for n in data.get("notes", []):
                    body = EncryptedRecord.from_dict(n["record"]) if n.get("record") else EMPTY
                    # zero-length ciphertext means the note was never sealed
                    fields = (
                        (body.salt, body.nonce, body.tag, body.ciphertext)
                        if body and body.ciphertext else (None, None, None, None)
                    )
                    conn.execute(
                        "INSERT OR REPLACE INTO notes "
                        "(id, category_id, title, created_at, updated_at, salt, nonce, tag, ciphertext) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (n["id"], n["category_id"], n["title"], n["created_at"], n["updated_at"])
                        + fields,
                    )
        except sqlite3.IntegrityError as e:
            logger.error("Rejected notebook import from %s: %s", filename, e)
            raise StorageError(f"Import rejected, nothing was written: {e}") from e
        logger.info("Imported notebook data from %s", filename)
        self._emit("imported", str(filename))
