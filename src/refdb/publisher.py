"""Swap a freshly built database into its live path."""

import os
import shutil
import sys
from pathlib import Path

from refdb.errors import PublishError

BACKUP_SUFFIX = ".old"


class Publisher:
    """Replace ``live_path`` with ``staging_path``.

    The live database is first renamed to a sibling backup, then the staging
    tree is moved into the vacated path. A process that dies between the two
    renames leaves the backup behind; ``recover()`` puts it back on the next
    run.
    """

    def __init__(self, staging_path: Path, live_path: Path):
        self.staging_path = Path(staging_path)
        self.live_path = Path(live_path)
        self.backup_path = self.live_path.with_name(self.live_path.name + BACKUP_SUFFIX)

    def recover(self) -> bool:
        """Restore the backup if the live path was left empty. Returns True if restored."""
        if self.live_path.exists() or not self.backup_path.exists():
            return False
        print(f"[publish] Restoring {self.live_path} from interrupted swap")
        try:
            os.rename(self.backup_path, self.live_path)
        except OSError as e:
            raise PublishError(f"cannot restore {self.live_path} from {self.backup_path}: {e}") from e
        return True

    def publish(self) -> None:
        try:
            self.recover()
            self._swap()
        finally:
            self.cleanup()

    def _swap(self) -> None:
        if not self.staging_path.is_dir():
            raise PublishError(f"staging database not found: {self.staging_path}")

        try:
            self.live_path.parent.mkdir(parents=True, exist_ok=True)
            if self.backup_path.exists():
                shutil.rmtree(self.backup_path)
            if self.live_path.exists():
                os.rename(self.live_path, self.backup_path)
        except OSError as e:
            raise PublishError(f"cannot move {self.live_path} aside: {e}") from e

        try:
            shutil.move(str(self.staging_path), str(self.live_path))
        except OSError as e:
            self._rollback()
            raise PublishError(f"cannot move {self.staging_path} to {self.live_path}: {e}") from e
        print(f"[publish] Published {self.live_path}")

    def _rollback(self) -> None:
        if not self.backup_path.exists():
            return
        try:
            if self.live_path.exists():
                shutil.rmtree(self.live_path)
            os.rename(self.backup_path, self.live_path)
        except OSError as e:
            print(f"[WARN] Rollback of {self.live_path} failed: {e}", file=sys.stderr)

    def cleanup(self) -> None:
        """Remove the backup and staging trees. Never raises."""
        # The backup is the only complete copy while the live path is missing
        if self.live_path.exists():
            _remove_tree(self.backup_path)
        elif self.backup_path.exists():
            print(f"[WARN] Keeping {self.backup_path}: {self.live_path} is missing", file=sys.stderr)
        _remove_tree(self.staging_path)


def _remove_tree(path: Path) -> None:
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        print(f"[WARN] Could not remove {path}: {e}", file=sys.stderr)


def publish(staging_path: Path, live_path: Path) -> None:
    Publisher(staging_path, live_path).publish()
