"""Rebuild the documentation database, publish it, and report failures once.

Intended to run unattended from cron::

    refdb-update --smtp-host=mail.example.org --from=bot@example.org \\
        --to=docs@example.org /srv/refdb

A failed build is recorded in the error ledger and mailed, and the process
still exits 0. Only command line errors exit non-zero.
"""

import argparse
import fcntl
import os
import sys
from contextlib import contextmanager
from pathlib import Path

from refdb.builder import build_database
from refdb.config import DEFAULT_SMTP_PORT, BuildRequest, SMTPSettings, UpdateConfig
from refdb.errors import BuildError, CLIArgumentError, NotifyError, PublishError
from refdb.ledger import ErrorLedger, ErrorRecord
from refdb.notifier import SMTPReporter
from refdb.publisher import Publisher


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise CLIArgumentError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="refdb-update",
        description="Rebuild WORKDIR/var/<version> from WORKDIR/src and mail build errors.",
    )
    parser.add_argument("workdir", nargs="*", help="Working directory holding src/ and var/")
    parser.add_argument("--from", dest="sender", metavar="ADDR", help="Sender address of error reports.")
    parser.add_argument("--to", dest="recipient", metavar="ADDR", help="Recipient address of error reports.")
    parser.add_argument("--smtp-host", metavar="NAME", help="SMTP host to send mail.")
    parser.add_argument(
        "--smtp-port", metavar="NUM", type=int, default=DEFAULT_SMTP_PORT, help="SMTP port to send mail."
    )
    return parser


def parse_config(argv: list[str] | None = None) -> UpdateConfig:
    """Turn command line arguments into an ``UpdateConfig``.

    Raises ``CLIArgumentError`` on bad options or a wrong argument count.
    """
    args = _build_parser().parse_args(argv)
    if len(args.workdir) != 1:
        raise CLIArgumentError(f"wrong number of arguments (expected 1, got {len(args.workdir)})")
    smtp = SMTPSettings(
        host=args.smtp_host,
        port=args.smtp_port,
        sender=args.sender,
        recipient=args.recipient,
    )
    return UpdateConfig.from_env(Path(args.workdir[0]), smtp=smtp)


@contextmanager
def run_lock(path: Path):
    """Hold an exclusive lock on ``path``; yields False if another run holds it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            yield False
            return
        try:
            yield True
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def update_database(request: BuildRequest, staging_path: Path, encoding: str = "utf-8") -> None:
    """Build into ``staging_path`` and swap it into the request's live path.

    A swap interrupted by an earlier run is undone before building, so a
    failing build never leaves the live path missing.
    """
    publisher = Publisher(staging_path, request.live_path)
    try:
        publisher.recover()
        build_database(staging_path, request.source_tree, request.version, encoding)
        publisher.publish()
    finally:
        publisher.cleanup()


def report_failure(err: Exception, ledger: ErrorLedger, reporter: SMTPReporter) -> ErrorRecord:
    """Mail ``err`` unless it repeats the last recorded error, then record it."""
    record = ErrorRecord.from_exception(err)
    print(f"[ERROR] {record.message} ({record.kind})", file=sys.stderr)
    if ledger.is_new(record):
        try:
            reporter.report_error(record)
        except NotifyError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
    else:
        print("[update] Same error as the last run, not reporting again")
    ledger.save(record)
    return record


def run_update(config: UpdateConfig, reporter: SMTPReporter | None = None) -> int:
    """Run one update and return the process exit status."""
    ledger = ErrorLedger(config.ledger_path)
    reporter = reporter or SMTPReporter(config.smtp)

    with run_lock(config.lock_path) as acquired:
        if not acquired:
            print(f"[update] Another update holds {config.lock_path}, skipping this run")
            return 0

        print(f"[update] Building {config.live_path} from {config.source_tree}")
        try:
            update_database(config.build_request(), config.staging_path, config.encoding)
        except (BuildError, PublishError) as err:
            report_failure(err, ledger, reporter)
        else:
            ledger.clear()
            print("[update] Done")
    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        config = parse_config(argv)
    except CLIArgumentError as e:
        print(e, file=sys.stderr)
        print(_build_parser().format_help(), file=sys.stderr)
        return 1
    return run_update(config)


if __name__ == "__main__":
    sys.exit(main())
