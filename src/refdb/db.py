"""SQLite-backed reference documentation database.

A database lives in a directory prefix. The prefix holds a single SQLite file
with the documentation tables, their full-text indexes and a small key/value
property table (``version``, ``encoding``).
"""

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from refdb.errors import DatabaseError
from refdb.sources import load_tree

DB_FILENAME = "docs.db"
DEFAULT_ENCODING = "utf-8"
REQUIRED_TABLES = ("properties", "pages", "sections", "code_examples")
REQUIRED_PROPERTIES = ("version", "encoding")

SCHEMA_SQL = """
-- Database-wide metadata (version, encoding)
CREATE TABLE IF NOT EXISTS properties (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- One row per source document
CREATE TABLE IF NOT EXISTS pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE,
    format TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT,
    content_html TEXT,
    built_at TEXT DEFAULT (datetime('now'))
);

-- Sections within pages (h2/h3/h4 level)
CREATE TABLE IF NOT EXISTS sections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    page_id INTEGER NOT NULL REFERENCES pages(id) ON DELETE CASCADE,
    heading TEXT NOT NULL,
    level INTEGER,
    content TEXT,
    anchor TEXT
);

-- Code examples extracted from pages
CREATE TABLE IF NOT EXISTS code_examples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    page_id INTEGER NOT NULL REFERENCES pages(id) ON DELETE CASCADE,
    section_id INTEGER REFERENCES sections(id) ON DELETE SET NULL,
    language TEXT,
    code TEXT NOT NULL,
    context TEXT
);

-- Full-text search indexes
CREATE VIRTUAL TABLE IF NOT EXISTS pages_fts USING fts5(
    title, content, content=pages, content_rowid=id
);

CREATE VIRTUAL TABLE IF NOT EXISTS sections_fts USING fts5(
    heading, content, content=sections, content_rowid=id
);

-- Triggers to keep FTS in sync
CREATE TRIGGER IF NOT EXISTS pages_ai AFTER INSERT ON pages BEGIN
    INSERT INTO pages_fts(rowid, title, content) VALUES (new.id, new.title, new.content);
END;
CREATE TRIGGER IF NOT EXISTS pages_ad AFTER DELETE ON pages BEGIN
    INSERT INTO pages_fts(pages_fts, rowid, title, content) VALUES('delete', old.id, old.title, old.content);
END;

CREATE TRIGGER IF NOT EXISTS sections_ai AFTER INSERT ON sections BEGIN
    INSERT INTO sections_fts(rowid, heading, content) VALUES (new.id, new.heading, new.content);
END;
CREATE TRIGGER IF NOT EXISTS sections_ad AFTER DELETE ON sections BEGIN
    INSERT INTO sections_fts(sections_fts, rowid, heading, content) VALUES('delete', old.id, old.heading, old.content);
END;

CREATE INDEX IF NOT EXISTS idx_sections_page_id ON sections(page_id);
CREATE INDEX IF NOT EXISTS idx_code_examples_page_id ON code_examples(page_id);
"""


def get_connection(db_dir: Path) -> sqlite3.Connection:
    """Create a read-only SQLite connection to a built database."""
    path = Path(db_dir) / DB_FILENAME
    if not path.is_file():
        raise FileNotFoundError(f"Database not found: {path}")
    conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def get_writable_connection(db_path: Path) -> sqlite3.Connection:
    """Create a writable SQLite connection with explicit transaction control."""
    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    # Rollback journal: the published directory must not need -wal/-shm sidecars
    conn.execute("PRAGMA journal_mode=DELETE")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def read_db(db_dir: Path):
    """Context manager for read-only database access."""
    conn = get_connection(db_dir)
    try:
        yield conn
    finally:
        conn.close()


class Database:
    """A documentation database rooted at ``prefix``."""

    def __init__(self, prefix: Path):
        self.prefix = Path(prefix)

    @property
    def path(self) -> Path:
        return self.prefix / DB_FILENAME

    def init(self) -> None:
        """Create the prefix directory and an empty schema."""
        if self.path.exists():
            raise DatabaseError(f"database already exists: {self.prefix}")
        try:
            self.prefix.mkdir(parents=True, exist_ok=True)
            conn = get_writable_connection(self.path)
            try:
                conn.executescript(SCHEMA_SQL)
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as e:
            raise DatabaseError(f"cannot initialize database at {self.prefix}: {e}") from e

    @contextmanager
    def transaction(self):
        """Open an atomic write transaction.

        Everything done through the yielded ``Transaction`` is committed when
        the block exits normally and rolled back when it raises.
        """
        if not self.path.exists():
            raise DatabaseError(f"database not initialized: {self.prefix}")
        conn = get_writable_connection(self.path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield Transaction(conn)
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        finally:
            conn.close()

    def validate(self) -> list[str]:
        """Check the structure of a built database.

        Returns a list of problems, empty when the database is usable.
        """
        problems = []
        try:
            with read_db(self.prefix) as conn:
                tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
                for table in REQUIRED_TABLES:
                    if table not in tables:
                        problems.append(f"table '{table}' missing")
                if problems:
                    return problems

                for key in REQUIRED_PROPERTIES:
                    if get_property(conn, key) is None:
                        problems.append(f"property '{key}' not set")

                page_count = conn.execute("SELECT COUNT(*) FROM pages").fetchone()[0]
                if page_count == 0:
                    problems.append("no pages loaded")

                empty_titles = conn.execute("SELECT COUNT(*) FROM pages WHERE title = ''").fetchone()[0]
                if empty_titles:
                    problems.append(f"{empty_titles} page(s) with empty title")

                if page_count and not _title_search_works(conn):
                    problems.append("full-text index does not find pages by title")
        except (OSError, sqlite3.Error) as e:
            problems.append(str(e))
        return problems


class Transaction:
    """Write operations available inside ``Database.transaction()``."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def propset(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO properties (key, value) VALUES (?, ?)",
            (key, value),
        )

    def propget(self, key: str) -> str | None:
        return get_property(self.conn, key)

    def update_from_source_tree(self, root: Path) -> dict:
        """Replace all documents with the contents of the source tree at ``root``.

        Documents are decoded with the database's ``encoding`` property.
        Returns stats dict with counts.
        """
        encoding = self.propget("encoding") or DEFAULT_ENCODING
        documents = load_tree(Path(root), encoding)

        self.conn.execute("DELETE FROM pages")
        stats = {"pages": 0, "sections": 0, "code_examples": 0, "skipped": 0}

        for doc in documents:
            try:
                cursor = self.conn.execute(
                    "INSERT INTO pages (path, format, title, content, content_html) VALUES (?, ?, ?, ?, ?)",
                    (doc["path"], doc["format"], doc["title"], doc["content_text"], doc.get("content_html", "")),
                )
            except sqlite3.IntegrityError as e:
                print(f"  [SKIP] {doc['path']}: {e}")
                stats["skipped"] += 1
                continue
            page_id = cursor.lastrowid
            stats["pages"] += 1

            for section in doc["sections"]:
                self.conn.execute(
                    "INSERT INTO sections (page_id, heading, level, content, anchor) VALUES (?, ?, ?, ?, ?)",
                    (page_id, section["heading"], section["level"], section["content"], section["anchor"]),
                )
                stats["sections"] += 1

            for ex in doc["code_examples"]:
                # Attach the example to the section it appeared under
                section_id = None
                if ex.get("context"):
                    row = self.conn.execute(
                        "SELECT id FROM sections WHERE page_id = ? AND heading = ? LIMIT 1",
                        (page_id, ex["context"]),
                    ).fetchone()
                    if row:
                        section_id = row[0]

                self.conn.execute(
                    "INSERT INTO code_examples (page_id, section_id, language, code, context) VALUES (?, ?, ?, ?, ?)",
                    (page_id, section_id, ex["language"], ex["code"], ex["context"]),
                )
                stats["code_examples"] += 1

        print(
            f"[build] Loaded {stats['pages']} pages, {stats['sections']} sections, "
            f"{stats['code_examples']} code examples, {stats['skipped']} skipped"
        )
        return stats


# --- Query helpers for reading a built database ---


def get_property(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM properties WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def search_pages(conn: sqlite3.Connection, query: str, limit: int = 10) -> list[dict]:
    """Full-text search across documentation pages."""
    try:
        rows = conn.execute(
            """
            SELECT p.id, p.path, p.title,
                   snippet(pages_fts, 1, '>>>','<<<', '...', 40) AS snippet
            FROM pages_fts
            JOIN pages p ON p.id = pages_fts.rowid
            WHERE pages_fts MATCH ?
            ORDER BY rank
            LIMIT ?
            """,
            (query, limit),
        ).fetchall()
    except sqlite3.OperationalError:
        return []
    return [dict(row) for row in rows]


def get_page_by_path(conn: sqlite3.Connection, path: str) -> dict | None:
    """Get a page by its path relative to the source tree."""
    row = conn.execute("SELECT * FROM pages WHERE path = ?", (path,)).fetchone()
    return dict(row) if row else None



def fts_phrase(text: str) -> str:
    """Quote ``text`` as a single FTS5 phrase."""
    return '"' + text.replace('"', '""') + '"'


def _title_search_works(conn: sqlite3.Connection) -> bool:
    # Titles without word characters produce an empty phrase
    for row in conn.execute("SELECT id, title FROM pages ORDER BY id"):
        if re.search(r"\w", row["title"]):
            hits = search_pages(conn, f"title : {fts_phrase(row['title'])}", limit=50)
            return any(hit["id"] == row["id"] for hit in hits)
    return True
