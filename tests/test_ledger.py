from refdb.errors import SourceError
from refdb.ledger import ErrorLedger, ErrorRecord


def _raise_source_error():
    raise SourceError("bad.md:3: unterminated code block")


def test_serialize_puts_frames_on_indented_lines():
    record = ErrorRecord("disk full", "DatabaseError", ("a.py:1:in f", "b.py:2:in g"))

    assert record.serialize() == "disk full (DatabaseError)\n\ta.py:1:in f\n\tb.py:2:in g"


def test_from_exception_captures_kind_and_frames():
    try:
        _raise_source_error()
    except SourceError as e:
        record = ErrorRecord.from_exception(e)

    assert record.message == "bad.md:3: unterminated code block"
    assert record.kind == "SourceError"
    assert record.frames[-1].endswith(":in _raise_source_error")
    assert record.frames[0].endswith(":in test_from_exception_captures_kind_and_frames")


def test_is_new_without_ledger_file(tmp_path):
    ledger = ErrorLedger(tmp_path / "lasterror.log")

    assert ledger.is_new(ErrorRecord("boom", "BuildError"))


def test_save_then_same_record_is_not_new(tmp_path):
    ledger = ErrorLedger(tmp_path / "lasterror.log")
    record = ErrorRecord("boom", "BuildError", ("x.py:1:in f",))

    ledger.save(record)

    assert ledger.path.read_text() == record.serialize()
    assert not ledger.is_new(ErrorRecord("boom", "BuildError", ("x.py:1:in f",)))


def test_different_frames_make_a_new_record(tmp_path):
    ledger = ErrorLedger(tmp_path / "lasterror.log")
    ledger.save(ErrorRecord("boom", "BuildError", ("x.py:1:in f",)))

    assert ledger.is_new(ErrorRecord("boom", "BuildError", ("x.py:2:in f",)))
    assert ledger.is_new(ErrorRecord("boom", "PublishError", ("x.py:1:in f",)))


def test_clear_removes_file_and_tolerates_absence(tmp_path):
    ledger = ErrorLedger(tmp_path / "lasterror.log")
    ledger.save(ErrorRecord("boom", "BuildError"))

    ledger.clear()
    ledger.clear()

    assert not ledger.path.exists()
