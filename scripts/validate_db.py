"""Post-build validation for a published documentation database."""

import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from refdb.db import DB_FILENAME, Database, get_property, read_db


def validate(db_dir: Path) -> bool:
    """Run validation checks on a built database directory."""
    if not (db_dir / DB_FILENAME).exists():
        print(f"FAIL: Database not found: {db_dir}")
        return False

    passed = True

    def check(name: str, condition: bool, detail: str = ""):
        nonlocal passed
        status = "PASS" if condition else "FAIL"
        if not condition:
            passed = False
        msg = f"  [{status}] {name}"
        if detail:
            msg += f" - {detail}"
        print(msg)

    print(f"Validating: {db_dir}\n")

    problems = Database(db_dir).validate()
    check("Structure", not problems, "; ".join(problems))

    with read_db(db_dir) as conn:
        check("Version property", get_property(conn, "version") is not None, str(get_property(conn, "version")))
        check("Encoding property", get_property(conn, "encoding") is not None, str(get_property(conn, "encoding")))

        page_count = conn.execute("SELECT COUNT(*) FROM pages").fetchone()[0]
        section_count = conn.execute("SELECT COUNT(*) FROM sections").fetchone()[0]
        example_count = conn.execute("SELECT COUNT(*) FROM code_examples").fetchone()[0]
        check("Pages loaded", page_count > 0, f"got {page_count}")
        print(f"  [INFO] {section_count} sections, {example_count} code examples")

        try:
            fts_result = conn.execute("SELECT COUNT(*) FROM pages_fts").fetchone()[0]
            check("FTS index populated", fts_result == page_count, f"{fts_result} indexed")
        except sqlite3.OperationalError as e:
            check("FTS index populated", False, str(e))

    print(f"\n{'ALL CHECKS PASSED' if passed else 'SOME CHECKS FAILED'}")
    return passed


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: validate_db.py DBDIR", file=sys.stderr)
        sys.exit(1)
    success = validate(Path(sys.argv[1]))
    sys.exit(0 if success else 1)
