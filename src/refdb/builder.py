"""Build a fresh documentation database into a staging directory."""

import shutil
from pathlib import Path

from refdb.db import Database
from refdb.errors import DatabaseError


def build_database(prefix: Path, doctree: Path, version: str, encoding: str = "utf-8") -> Database:
    """Initialise a database at ``prefix`` and load ``doctree`` into it.

    Properties and documents are written in two separate transactions.
    Raises a ``BuildError`` subclass on any failure.
    """
    prefix = Path(prefix)
    if prefix.exists():
        print(f"[build] Removing stale staging directory: {prefix}")
        try:
            shutil.rmtree(prefix)
        except OSError as e:
            raise DatabaseError(f"cannot remove stale staging directory {prefix}: {e}") from e

    print(f"[build] Initializing database: {prefix}")
    db = Database(prefix)
    db.init()
    with db.transaction() as tx:
        tx.propset("version", version)
        tx.propset("encoding", encoding)
    with db.transaction() as tx:
        tx.update_from_source_tree(doctree)

    problems = db.validate()
    if problems:
        raise DatabaseError(f"built database is invalid: {'; '.join(problems)}")
    return db
