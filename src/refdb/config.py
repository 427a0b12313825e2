"""Run configuration for the database updater."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_VERSION = "1.9.0"
DEFAULT_ENCODING = "utf-8"
DEFAULT_SMTP_PORT = 25

STAGING_DIRNAME = "db.tmp"
LEDGER_FILENAME = "lasterror.log"
LOCK_FILENAME = "update.lock"


@dataclass(frozen=True)
class BuildRequest:
    work_directory: Path
    source_tree: Path
    version: str

    @property
    def live_path(self) -> Path:
        return self.work_directory / "var" / self.version


@dataclass(frozen=True)
class SMTPSettings:
    host: str | None = None
    port: int = DEFAULT_SMTP_PORT
    sender: str | None = None
    recipient: str | None = None
    timeout: float = 60.0


@dataclass(frozen=True)
class UpdateConfig:
    """Everything one update run needs to know.

    ``state_dir`` holds the staging directory, the error ledger and the run
    lock; it defaults to the process working directory.
    """

    work_root: Path
    version: str = DEFAULT_VERSION
    encoding: str = DEFAULT_ENCODING
    state_dir: Path = field(default_factory=Path.cwd)
    smtp: SMTPSettings = field(default_factory=SMTPSettings)

    @classmethod
    def from_env(cls, work_root: Path, smtp: SMTPSettings | None = None, **overrides) -> "UpdateConfig":
        """Build a config, reading ``REFDB_VERSION`` and ``REFDB_ENCODING`` when set."""
        values = {
            "version": os.environ.get("REFDB_VERSION") or DEFAULT_VERSION,
            "encoding": os.environ.get("REFDB_ENCODING") or DEFAULT_ENCODING,
        }
        values.update(overrides)
        return cls(work_root=Path(work_root), smtp=smtp or SMTPSettings(), **values)

    @property
    def source_tree(self) -> Path:
        return self.work_root / "src"

    @property
    def live_path(self) -> Path:
        return self.build_request().live_path

    @property
    def staging_path(self) -> Path:
        return self.state_dir / STAGING_DIRNAME

    @property
    def ledger_path(self) -> Path:
        return self.state_dir / LEDGER_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.state_dir / LOCK_FILENAME

    def build_request(self) -> BuildRequest:
        return BuildRequest(
            work_directory=self.work_root,
            source_tree=self.source_tree,
            version=self.version,
        )
