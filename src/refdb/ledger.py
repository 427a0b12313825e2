"""Remember the last reported failure so recurring errors are mailed once."""

import traceback
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ErrorRecord:
    """A caught failure in comparable form.

    ``frames`` follow Python traceback order, outermost call first and the
    raising frame last. Two records are the same error only if message, kind
    and every frame match.
    """

    message: str
    kind: str
    frames: tuple[str, ...] = ()

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorRecord":
        frames = tuple(
            f"{fs.filename}:{fs.lineno}:in {fs.name}"
            for fs in traceback.extract_tb(exc.__traceback__)
        )
        return cls(message=str(exc), kind=type(exc).__name__, frames=frames)

    def serialize(self) -> str:
        """Canonical text: ``message (kind)`` then one tab-indented frame per line."""
        lines = [f"{self.message} ({self.kind})"]
        lines.extend(f"\t{frame}" for frame in self.frames)
        return "\n".join(lines)


class ErrorLedger:
    """A single-file record of the most recently reported error."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def is_new(self, record: ErrorRecord) -> bool:
        if not self.path.exists():
            return True
        return self.path.read_bytes() != record.serialize().encode("utf-8")

    def save(self, record: ErrorRecord) -> None:
        self.path.write_bytes(record.serialize().encode("utf-8"))

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
