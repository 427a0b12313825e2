import pytest

from refdb.config import LEDGER_FILENAME
from refdb.db import get_page_by_path, get_property, read_db
from refdb.errors import NotifyError
from refdb.update import main, parse_config, run_lock, run_update
from tests.conftest import FakeReporter

BROKEN_DOC = "# Broken\n\n```ruby\nputs 1\n"


def _break_source(work_root, name="broken.md"):
    (work_root / "src" / name).write_text(BROKEN_DOC)


def _live_snapshot(live):
    return {p.relative_to(live).as_posix(): p.read_bytes() for p in sorted(live.rglob("*")) if p.is_file()}


# --- command line ---


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["one", "two"],
        ["--smtp-port=abc", "work"],
        ["--bogus", "work"],
    ],
)
def test_bad_command_line_exits_1(argv, capsys):
    assert main(argv) == 1
    err = capsys.readouterr().err
    assert "usage: refdb-update" in err


def test_wrong_argument_count_message(capsys):
    main(["a", "b"])

    assert "wrong number of arguments (expected 1, got 2)" in capsys.readouterr().err


def test_help_exits_0(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--help"])

    assert exc_info.value.code == 0
    assert "--smtp-host NAME" in capsys.readouterr().out


def test_parse_config_reads_options_and_env(monkeypatch, tmp_path):
    monkeypatch.setenv("REFDB_VERSION", "2.0.0")
    monkeypatch.chdir(tmp_path)

    config = parse_config([
        "--from=bot@example.org",
        "--to=docs@example.org",
        "--smtp-host=mail.example.org",
        "--smtp-port=2525",
        "/srv/refdb",
    ])

    assert config.smtp.host == "mail.example.org"
    assert config.smtp.port == 2525
    assert config.smtp.sender == "bot@example.org"
    assert config.smtp.recipient == "docs@example.org"
    assert str(config.live_path) == "/srv/refdb/var/2.0.0"
    assert str(config.source_tree) == "/srv/refdb/src"
    assert config.ledger_path == tmp_path / LEDGER_FILENAME
    assert config.encoding == "utf-8"


def test_parse_config_defaults(tmp_path):
    config = parse_config([str(tmp_path)])

    assert config.version == "1.9.0"
    assert config.smtp.host is None
    assert config.smtp.port == 25


# --- successful runs ---


def test_successful_run_publishes_and_clears_ledger(config, reporter):
    config.ledger_path.write_text("old failure (BuildError)")

    assert run_update(config, reporter) == 0

    assert not config.ledger_path.exists()
    assert not config.staging_path.exists()
    assert reporter.reports == []
    with read_db(config.live_path) as conn:
        assert get_property(conn, "version") == "1.9.0"
        assert get_property(conn, "encoding") == "utf-8"
        assert get_page_by_path(conn, "library/json")["title"] == "json"


def test_rebuild_is_idempotent(config, reporter, work_root):
    assert run_update(config, reporter) == 0
    (work_root / "src" / "library" / "os.md").write_text("# os\n\nOperating system interfaces.\n")

    assert run_update(config, reporter) == 0

    assert not config.ledger_path.exists()
    with read_db(config.live_path) as conn:
        assert get_page_by_path(conn, "library/os")["title"] == "os"
    assert sorted(p.name for p in config.live_path.parent.iterdir()) == ["1.9.0"]


# --- failing runs ---


def test_failed_build_leaves_live_tree_untouched(config, reporter, work_root):
    run_update(config, reporter)
    before = _live_snapshot(config.live_path)
    _break_source(work_root)

    assert run_update(config, reporter) == 0

    assert _live_snapshot(config.live_path) == before
    assert not config.staging_path.exists()
    assert config.ledger_path.read_text().startswith("broken.md:3: unterminated code block (SourceError)\n\t")


def test_identical_failures_are_reported_once(config, reporter, work_root):
    _break_source(work_root)

    run_update(config, reporter)
    first = config.ledger_path.read_bytes()
    run_update(config, reporter)

    assert len(reporter.reports) == 1
    assert reporter.reports[0].kind == "SourceError"
    assert config.ledger_path.read_bytes() == first


def test_different_failures_are_each_reported(config, reporter, work_root):
    _break_source(work_root, "a_broken.md")
    run_update(config, reporter)
    (work_root / "src" / "a_broken.md").unlink()
    _break_source(work_root, "b_broken.md")

    run_update(config, reporter)

    assert [r.message for r in reporter.reports] == [
        "a_broken.md:3: unterminated code block",
        "b_broken.md:3: unterminated code block",
    ]


def test_failure_after_success_is_reported_again(config, reporter, work_root):
    _break_source(work_root)
    run_update(config, reporter)
    (work_root / "src" / "broken.md").unlink()
    run_update(config, reporter)
    _break_source(work_root)

    run_update(config, reporter)

    assert len(reporter.reports) == 2


def test_empty_source_tree_is_reported(config, reporter, work_root):
    for path in (work_root / "src" / "library").iterdir():
        path.unlink()

    run_update(config, reporter)

    assert reporter.reports[0].kind == "DatabaseError"
    assert "no pages loaded" in reporter.reports[0].message
    assert not config.live_path.exists()


def test_publish_failure_is_reported(mocker, config, reporter):
    mocker.patch("refdb.publisher.shutil.move", side_effect=OSError("read-only file system"))

    assert run_update(config, reporter) == 0

    assert reporter.reports[0].kind == "PublishError"
    assert config.ledger_path.exists()


def test_notify_failure_still_saves_ledger(config, work_root, capsys):
    _break_source(work_root)
    reporter = FakeReporter(fail_with=NotifyError("relay down"))

    assert run_update(config, reporter) == 0

    assert config.ledger_path.exists()
    assert "[ERROR] relay down" in capsys.readouterr().err


def test_unexpected_errors_propagate(mocker, config, reporter):
    mocker.patch("refdb.update.build_database", side_effect=ValueError("bug"))

    with pytest.raises(ValueError):
        run_update(config, reporter)
    assert not config.ledger_path.exists()


def test_interrupted_swap_is_restored_even_when_build_fails(config, reporter, work_root):
    run_update(config, reporter)
    before = _live_snapshot(config.live_path)
    # A run killed between the two renames leaves only the backup behind
    config.live_path.rename(config.live_path.with_name("1.9.0.old"))
    _break_source(work_root)

    assert run_update(config, reporter) == 0

    assert _live_snapshot(config.live_path) == before
    assert not config.live_path.with_name("1.9.0.old").exists()
    assert reporter.reports[0].kind == "SourceError"


def test_build_request_derives_live_path(config):
    request = config.build_request()

    assert request.work_directory == config.work_root
    assert request.live_path == config.work_root / "var" / "1.9.0"
    assert config.live_path == request.live_path


def test_concurrent_run_is_skipped(config, reporter):
    with run_lock(config.lock_path) as acquired:
        assert acquired
        assert run_update(config, reporter) == 0

    assert not config.live_path.exists()


# --- end to end through main() ---


def test_main_end_to_end_without_relay(work_root, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert main([str(work_root)]) == 0

    assert (work_root / "var" / "1.9.0" / "docs.db").is_file()
    assert not (tmp_path / LEDGER_FILENAME).exists()
    assert not (tmp_path / "db.tmp").exists()


def test_main_end_to_end_failure_mails_once(mocker, work_root, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    smtp_cls = mocker.patch("refdb.notifier.smtplib.SMTP")
    smtp = smtp_cls.return_value.__enter__.return_value
    _break_source(work_root)
    argv = ["--smtp-host=localhost", "--from=bot@example.org", "--to=docs@example.org", str(work_root)]

    assert main(argv) == 0
    ledger = (tmp_path / LEDGER_FILENAME).read_bytes()
    assert main(argv) == 0

    assert smtp.send_message.call_count == 1
    assert (tmp_path / LEDGER_FILENAME).read_bytes() == ledger
    assert not (work_root / "var" / "1.9.0").exists()
